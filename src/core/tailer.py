"""Poll-based tailing of the game log folders.

Every poll re-reads the newest file of each source from the start and keeps
only entries newer than the watermark. This trades a full re-read per poll
for not having to track byte offsets or file rotation; the log files are
small enough for that.

Known limitation: the watermark comparison is ``<=``, so an entry written
later with exactly the same timestamp as the last processed one is never
picked up.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from datetime import datetime, tzinfo
import logging
import os
from typing import Callable, Iterable, List, Optional

from core.clock import local_now, local_timezone
from core.config import SourceConfig
from core.errors import SourceUnavailableError
from core.models import LogEntry, timestamp_of
from core.parsers import LineParser

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogSource:
    """A log file family paired with the parser for its line format."""

    config: SourceConfig
    parser: LineParser


def find_latest_file(directory: str, prefix: str) -> str:
    """Return the most recently modified file in ``directory`` starting with ``prefix``."""

    try:
        entries = list(os.scandir(directory))
    except (FileNotFoundError, NotADirectoryError):
        raise SourceUnavailableError(f"Log directory not found: {directory}") from None

    candidates = []
    for entry in entries:
        if not entry.name.startswith(prefix):
            continue
        try:
            if not entry.is_file():
                continue
            candidates.append((entry.stat().st_mtime, entry.path))
        except FileNotFoundError:
            # Removed between listing and stat.
            continue

    if not candidates:
        raise SourceUnavailableError(f"No {prefix}* file in {directory}")
    candidates.sort(key=lambda candidate: candidate[0], reverse=True)
    return candidates[0][1]


def decode_log_bytes(data: bytes) -> str:
    """Decode a log file, honoring a UTF-16 or UTF-8 byte order mark."""

    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16")
    if data.startswith(codecs.BOM_UTF8):
        return data.decode("utf-8-sig")
    return data.decode("utf-8", errors="replace")


def read_log_lines(path: str) -> List[str]:
    """Return the lines of ``path``, split on ``\\n`` only.

    Form feeds, U+2028 and other characters str.splitlines() treats as line
    breaks can appear inside chat bodies and item names.
    """

    with open(path, "rb") as handle:
        text = decode_log_bytes(handle.read())
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def merge_entries(batches: Iterable[List[LogEntry]]) -> List[LogEntry]:
    """Concatenate per-source entries and stable-sort them by timestamp."""

    merged: List[LogEntry] = []
    for batch in batches:
        merged.extend(batch)
    merged.sort(key=timestamp_of)
    return merged


class LogTailer:
    """Produces the time-ordered batch of new entries for each poll."""

    def __init__(
        self,
        sources: Iterable[LogSource],
        watermark: Optional[datetime] = None,
        tz_provider: Callable[[], tzinfo] = local_timezone,
    ) -> None:
        self._sources = list(sources)
        self._tz_provider = tz_provider
        # Starting at "now" means history written before startup is never replayed.
        self._watermark = watermark or local_now()

    @property
    def watermark(self) -> datetime:
        return self._watermark

    def read_source(self, source: LogSource, tz: tzinfo) -> List[LogEntry]:
        """Return the entries of ``source`` newer than the watermark."""

        try:
            path = find_latest_file(source.config.directory, source.config.prefix)
        except SourceUnavailableError as exc:
            LOGGER.debug("Source %s unavailable: %s", source.config.name, exc)
            return []

        # Lines at or before the watermark are never decoded, so a bad line
        # written before startup cannot abort later polls.
        return source.parser(read_log_lines(path), tz, self._watermark)

    def poll(self) -> List[LogEntry]:
        """Read every source once and advance the watermark past the result.

        UnrecognizedFormatError from a parser propagates and leaves the
        watermark untouched; OSError while reading does the same.
        """

        tz = self._tz_provider()
        batch = merge_entries(self.read_source(source, tz) for source in self._sources)
        if batch:
            self._watermark = timestamp_of(batch[-1])
            LOGGER.debug("Polled %s new entries, watermark=%s", len(batch), self._watermark.isoformat())
        return batch
