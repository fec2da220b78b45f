"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.models import ChatChannel, ChatEntry, ItemEntry, LogEntry


@dataclass(frozen=True)
class ColorConfig:
    """ANSI-256 color codes used for console output."""

    public: int = 15
    party: int = 14
    guild: int = 172
    group: int = 41
    reply: int = 13
    item: int = 227
    system: int = 8

    def for_entry(self, entry: LogEntry) -> int:
        if isinstance(entry, ItemEntry):
            return self.item
        if isinstance(entry, ChatEntry):
            return {
                ChatChannel.PUBLIC: self.public,
                ChatChannel.PARTY: self.party,
                ChatChannel.GUILD: self.guild,
                ChatChannel.GROUP: self.group,
                ChatChannel.REPLY: self.reply,
            }[entry.channel]
        raise TypeError(f"Unsupported log entry: {entry!r}")


@dataclass(frozen=True)
class DisplayConfig:
    """Console formatting settings consumed by the console adapter."""

    datetime_format: str = "%Y-%m-%d %H:%M:%S"
    column_separator: str = " "
    show_channel: bool = True
    show_action_pattern: bool = False
    name_padding_width: int = 30
    channel_padding_width: int = 6
    colors: ColorConfig = field(default_factory=ColorConfig)


@dataclass(frozen=True)
class SourceConfig:
    """One tailed log file family, e.g. every ``ChatLog*.txt`` in a folder."""

    name: str
    directory: str
    prefix: str
