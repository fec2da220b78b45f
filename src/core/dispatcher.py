"""Concurrent execution of the actions selected for one log entry.

All actions of one dispatch run concurrently and are awaited together,
except sound: it is started as a background task and never awaited, so a
long sound can still be playing while later entries are processed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, FrozenSet, Sequence, Set
from urllib.parse import quote

from core.counters import CounterStore
from core.errors import ActionError
from core.models import (
    ItemEntry,
    LogEntry,
    actor_name_of,
    body_or_item_with_count,
    channel_of,
    timestamp_of,
)
from core.ports import CommandPort, ConsolePort, HttpPort, HttpResponse, SoundPort
from core.rules_engine import ActionBundle, ActionKind

LOGGER = logging.getLogger(__name__)

USER_AGENT = "NGS Log Watch"
HEADER_PREFIX = "ngs-log-watch-"
ITEM_CHANNEL = "ITEM"


def channel_token(entry: LogEntry) -> str:
    channel = channel_of(entry)
    return channel.value if channel is not None else ITEM_CHANNEL


def render_url_template(template: str, entry: LogEntry) -> str:
    """Fill ``{body}``, ``{name}``, ``{channel}`` and ``{datetime}`` with URL-encoded values."""

    replacements = {
        "{body}": body_or_item_with_count(entry),
        "{name}": actor_name_of(entry),
        "{channel}": channel_token(entry),
        "{datetime}": timestamp_of(entry).isoformat(),
    }
    url = template
    for token, value in replacements.items():
        url = url.replace(token, quote(value, safe=""))
    return url


def post_headers(entry: LogEntry) -> Dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        f"{HEADER_PREFIX}name": quote(actor_name_of(entry), safe=""),
        f"{HEADER_PREFIX}channel": channel_token(entry),
        f"{HEADER_PREFIX}datetime": timestamp_of(entry).isoformat(),
    }


def describe_response(url: str, response: HttpResponse) -> str:
    if response.is_text:
        return f"{url} => {response.status} = {response.text}"
    return f"{url} => {response.status} (not a text, mime = {response.content_type})"


class ActionDispatcher:
    """Runs action kinds against the console, sound, process and HTTP ports."""

    def __init__(
        self,
        console: ConsolePort,
        sound: SoundPort,
        commands: CommandPort,
        http: HttpPort,
        counters: CounterStore,
    ) -> None:
        self._console = console
        self._sound = sound
        self._commands = commands
        self._http = http
        self._counters = counters
        # Only held so running sounds are not garbage collected.
        self._background: Set[asyncio.Task] = set()

    @property
    def background_tasks(self) -> FrozenSet[asyncio.Task]:
        return frozenset(self._background)

    async def dispatch(self, entry: LogEntry, bundle: ActionBundle, kinds: Sequence[ActionKind]) -> None:
        """Launch ``kinds`` of ``bundle`` for ``entry`` and wait for all but sound."""

        launched = []
        coroutines = []
        for kind in kinds:
            if kind is ActionKind.SOUND:
                self._start_sound(bundle.sound or "")
                continue
            launched.append(kind)
            coroutines.append(self._run(kind, entry, bundle))

        results = await asyncio.gather(*coroutines, return_exceptions=True)
        for kind, result in zip(launched, results):
            if isinstance(result, ActionError):
                LOGGER.warning("Action %s failed: %s", kind.value, result)
            elif isinstance(result, Exception):
                LOGGER.error("Action %s crashed", kind.value, exc_info=result)
            elif isinstance(result, BaseException):
                raise result

    def cancel_background(self) -> None:
        for task in self._background:
            task.cancel()

    def _start_sound(self, path: str) -> None:
        task = asyncio.create_task(self._play_sound(path))
        self._background.add(task)
        task.add_done_callback(self._sound_finished)

    def _sound_finished(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Action sound failed: %s", exc)

    async def _play_sound(self, path: str) -> None:
        self._console.system("Sound", path)
        await self._sound.play(path)

    async def _run(self, kind: ActionKind, entry: LogEntry, bundle: ActionBundle) -> None:
        if kind is ActionKind.SHOW:
            self._console.show_entry(entry)
        elif kind is ActionKind.COMMAND:
            await self._run_command(bundle.command or ())
        elif kind is ActionKind.GET:
            await self._get(bundle.get or "", entry)
        elif kind is ActionKind.POST:
            await self._post(bundle.post or "", entry)
        elif kind is ActionKind.COUNT:
            if isinstance(entry, ItemEntry):
                await self._counters.increment(entry.item, entry.count)
        elif kind is ActionKind.SHOW_ITEM_COUNTS:
            self._console.show_counters(await self._counters.snapshot())
        elif kind is ActionKind.RESET_ITEM_COUNTS:
            await self._counters.reset()
            self._console.show_reset()
        else:
            raise ValueError(f"Unsupported action kind: {kind}")

    async def _run_command(self, argv: Sequence[str]) -> None:
        self._console.system("Command", repr(list(argv)))
        returncode = await self._commands.run(argv)
        LOGGER.info("Command %s exited with %s", argv[0], returncode)

    async def _get(self, template: str, entry: LogEntry) -> None:
        url = render_url_template(template, entry)
        response = await self._http.get(url, {"User-Agent": USER_AGENT})
        if response.content_type:
            self._console.system("Get", describe_response(url, response))

    async def _post(self, url: str, entry: LogEntry) -> None:
        response = await self._http.post(url, body_or_item_with_count(entry), post_headers(entry))
        if response.content_type:
            self._console.system("Post", describe_response(url, response))
