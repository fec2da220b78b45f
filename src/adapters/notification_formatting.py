"""Shared console formatting helpers.

Keeping formatting here keeps every console line consistent and lets the
layout be tested without a terminal. Widths are measured in terminal cells,
so names and items in full-width Japanese text still line up.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

from rich.cells import cell_len

from core.config import DisplayConfig
from core.counters import CounterSnapshot
from core.models import LogEntry, actor_name_of, body_or_item_with_count, channel_or_category_label, timestamp_of

RULE_WIDTH = 61
RESET_BANNER = "========== Item counts have been reset =========="


def pad_cells(text: str, width: int) -> str:
    """Right-pad ``text`` with spaces to ``width`` terminal cells."""

    return text + " " * max(0, width - cell_len(text))


def format_datetime(value: datetime, display: DisplayConfig) -> str:
    return value.strftime(display.datetime_format)


def format_entry_line(entry: LogEntry, display: DisplayConfig) -> str:
    """Create the single line printed by the show action."""

    separator = display.column_separator
    if display.show_action_pattern:
        pattern_part = f"[Action::Show]{separator}"
    else:
        pattern_part = separator

    datetime_part = f"{format_datetime(timestamp_of(entry), display)}{separator}"

    channel_part = ""
    if display.show_channel:
        label = channel_or_category_label(entry).upper()
        channel_part = f"{label:<{display.channel_padding_width}}{separator}"

    name_part = f"{pad_cells(actor_name_of(entry), display.name_padding_width)}{separator}"

    return f"{pattern_part}{datetime_part}{channel_part}{name_part}{body_or_item_with_count(entry)}"


def format_system_line(action_label: str, message: str, display: DisplayConfig) -> str:
    return f"[Action::{action_label}]{display.column_separator}{message}"


def format_elapsed(elapsed: timedelta) -> str:
    total_seconds = max(0, int(elapsed.total_seconds()))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_counter_report(snapshot: CounterSnapshot, now: datetime, display: DisplayConfig) -> List[str]:
    """Return the lines of the item count table, largest count first."""

    header = (
        f"=== Item counts: {format_datetime(snapshot.began_at, display)} -> "
        f"{format_datetime(now, display)} ( {format_elapsed(now - snapshot.began_at)} ) ==="
    )
    rows = sorted(snapshot.counts.items(), key=lambda row: (-row[1].current, row[0]))

    item_width = max((cell_len(item) for item, _ in rows), default=0)
    count_width = max((len(f"{counter.current:,}") for _, counter in rows), default=0)

    lines = [header]
    for item, counter in rows:
        lines.append(f"{pad_cells(item, item_width)} × {counter.current:>{count_width},}")
    lines.append("=" * RULE_WIDTH)
    return lines
