"""Subprocess adapters for the command and sound actions."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Dict, List, Optional, Sequence

from core.errors import ActionError, SoundPlaybackError

LOGGER = logging.getLogger(__name__)

PATH_TOKEN = "{path}"
# Every player process also gets the sound file in this environment variable,
# so a command line can use it without any quoting.
SOUND_PATH_ENV = "NGS_LOG_WATCH_SOUND"


def default_sound_player() -> List[str]:
    """Return the platform's stock command line for playing a WAV file."""

    if sys.platform.startswith("win"):
        return [
            "powershell",
            "-NoProfile",
            "-c",
            f"(New-Object Media.SoundPlayer $env:{SOUND_PATH_ENV}).PlaySync()",
        ]
    if sys.platform == "darwin":
        return ["afplay", PATH_TOKEN]
    return ["aplay", "-q", PATH_TOKEN]


async def _spawn(argv: Sequence[str], env: Optional[Dict[str, str]] = None) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
        env=env,
    )


class SubprocessCommandRunner:
    """CommandPort implementation; output is discarded."""

    async def run(self, argv: Sequence[str]) -> int:
        if not argv:
            raise ActionError("Empty command")
        LOGGER.info("Running command %s", list(argv))
        try:
            process = await _spawn(argv)
        except OSError as e:
            raise ActionError(f"Cannot run {argv[0]}: {e}") from e
        return await process.wait()


class SubprocessSoundPlayer:
    """SoundPort implementation that shells out to an audio player."""

    def __init__(self, player: Optional[Sequence[str]] = None) -> None:
        self._player = list(player) if player else default_sound_player()

    def command_for(self, path: str) -> List[str]:
        return [part.replace(PATH_TOKEN, path) for part in self._player]

    async def play(self, path: str) -> None:
        if not os.path.isfile(path):
            raise SoundPlaybackError(f"Sound file not found: {path}")
        argv = self.command_for(path)
        env = dict(os.environ, **{SOUND_PATH_ENV: path})
        try:
            process = await _spawn(argv, env)
        except OSError as e:
            raise SoundPlaybackError(f"Cannot start player {argv[0]}: {e}") from e
        returncode = await process.wait()
        if returncode != 0:
            raise SoundPlaybackError(f"Player {argv[0]} exited with {returncode} for {path}")
