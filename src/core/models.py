"""Core domain models.

A log entry is either a ChatEntry or an ItemEntry. The accessor functions
below handle both variants explicitly so that adapters never need to know
which log file an entry came from.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class ChatChannel(str, Enum):
    """Chat channels as written in the chat log."""

    PUBLIC = "PUBLIC"
    PARTY = "PARTY"
    GUILD = "GUILD"
    REPLY = "REPLY"
    GROUP = "GROUP"


class ItemCategory(str, Enum):
    """Where an item entry came from."""

    PICKUP = "PICKUP"
    REWARD = "REWARD"


@dataclass(frozen=True)
class ChatEntry:
    """One chat message, possibly spanning several physical lines."""

    timestamp: datetime
    sequence_id: int
    channel: ChatChannel
    actor_id: int
    actor_name: str
    body: str


@dataclass(frozen=True)
class ItemEntry:
    """One picked up or rewarded item stack."""

    timestamp: datetime
    sequence_id: int
    category: ItemCategory
    actor_id: int
    actor_name: str
    item: str
    count: int


LogEntry = Union[ChatEntry, ItemEntry]


def _unknown(entry: object) -> TypeError:
    return TypeError(f"Unsupported log entry: {entry!r}")


def timestamp_of(entry: LogEntry) -> datetime:
    if isinstance(entry, (ChatEntry, ItemEntry)):
        return entry.timestamp
    raise _unknown(entry)


def actor_name_of(entry: LogEntry) -> str:
    if isinstance(entry, (ChatEntry, ItemEntry)):
        return entry.actor_name
    raise _unknown(entry)


def channel_of(entry: LogEntry) -> Optional[ChatChannel]:
    """Return the chat channel, or None for item entries."""

    if isinstance(entry, ChatEntry):
        return entry.channel
    if isinstance(entry, ItemEntry):
        return None
    raise _unknown(entry)


def channel_or_category_label(entry: LogEntry) -> str:
    if isinstance(entry, ChatEntry):
        return entry.channel.value
    if isinstance(entry, ItemEntry):
        return entry.category.value
    raise _unknown(entry)


def body_or_item(entry: LogEntry) -> str:
    """Return the text rules match against: chat body or item name."""

    if isinstance(entry, ChatEntry):
        return entry.body
    if isinstance(entry, ItemEntry):
        return entry.item
    raise _unknown(entry)


def body_or_item_with_count(entry: LogEntry) -> str:
    """Return the text shown to the user, e.g. ``Meseta × 1,200``."""

    if isinstance(entry, ChatEntry):
        return entry.body
    if isinstance(entry, ItemEntry):
        return f"{entry.item} × {entry.count:,}"
    raise _unknown(entry)


def append_body(entry: LogEntry, text: str) -> Optional[ChatEntry]:
    """Return a copy of a chat entry with ``text`` appended on a new line.

    Item entries are always complete, so None is returned for them.
    """

    if isinstance(entry, ChatEntry):
        return replace(entry, body=f"{entry.body}\n{text}")
    if isinstance(entry, ItemEntry):
        return None
    raise _unknown(entry)
