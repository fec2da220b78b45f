"""Console notification adapter.

Prints formatted lines to stdout through rich, colored with the configured
ANSI-256 palette.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from rich.console import Console
from rich.text import Text

from adapters.notification_formatting import (
    RESET_BANNER,
    format_counter_report,
    format_entry_line,
    format_system_line,
)
from core.clock import local_now
from core.config import DisplayConfig
from core.counters import CounterSnapshot
from core.models import LogEntry


class ConsoleNotifier:
    """ConsolePort implementation writing colored lines with rich."""

    def __init__(
        self,
        display: DisplayConfig,
        console: Optional[Console] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._display = display
        self._console = console or Console(highlight=False)
        self._clock = clock

    def _print(self, line: str, color: int) -> None:
        self._console.print(Text(line, style=f"color({color})"), soft_wrap=True)

    def show_entry(self, entry: LogEntry) -> None:
        self._print(format_entry_line(entry, self._display), self._display.colors.for_entry(entry))

    def show_counters(self, snapshot: CounterSnapshot) -> None:
        for line in format_counter_report(snapshot, self._clock(), self._display):
            self._print(line, self._display.colors.item)

    def show_reset(self) -> None:
        self._print(RESET_BANNER, self._display.colors.item)

    def system(self, action_label: str, message: str) -> None:
        self._print(format_system_line(action_label, message, self._display), self._display.colors.system)
