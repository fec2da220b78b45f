"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for console, sound, process and HTTP
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence

from core.counters import CounterSnapshot
from core.models import LogEntry


@dataclass(frozen=True)
class HttpResponse:
    status: int
    content_type: Optional[str]
    text: Optional[str]

    @property
    def is_text(self) -> bool:
        if not self.content_type:
            return False
        return self.content_type.split(";", 1)[0].strip().lower().startswith("text/")


class ConsolePort(Protocol):
    """User-facing output."""

    def show_entry(self, entry: LogEntry) -> None:
        ...

    def show_counters(self, snapshot: CounterSnapshot) -> None:
        ...

    def show_reset(self) -> None:
        ...

    def system(self, action_label: str, message: str) -> None:
        ...


class SoundPort(Protocol):
    async def play(self, path: str) -> None:
        ...


class CommandPort(Protocol):
    async def run(self, argv: Sequence[str]) -> int:
        ...


class HttpPort(Protocol):
    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse:
        ...

    async def post(self, url: str, body: str, headers: Mapping[str, str]) -> HttpResponse:
        ...
