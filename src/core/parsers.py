"""Decoders for the three tab-separated game log files.

Every physical line starts with a local timestamp, except continuation lines
of a multi-line chat body. Each parser walks a whole file and returns the
entries in file order; continuation lines are folded into the entry before
them.

Failure policy:
- malformed numbers or missing fields drop that one entry (LineDecodeError)
- an unknown chat channel or Meseta shape aborts the whole pass
  (UnrecognizedFormatError), because the file layout itself has changed
"""

from __future__ import annotations

from datetime import datetime, tzinfo
import logging
import re
from typing import Callable, Iterable, List, Optional, Tuple

from core.escaping import QUOTE, finish_unescape, pre_unescape, unescape
from core.errors import LineDecodeError, UnrecognizedFormatError
from core.models import ChatChannel, ChatEntry, ItemCategory, ItemEntry, LogEntry, append_body

LOGGER = logging.getLogger(__name__)

SEQUENCE_ID_MAX = 0xFFFF
ACTOR_ID_MAX = 0xFFFFFFFF

PICKUP_TAG = "[Pickup]"
MESETA = "Meseta"
BACKPACK = "Backpack"
STACK_SIZE_PREFIX = "CurrentNum"

_TIMESTAMP_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{3}|\.\d{6})?")

EntryDecoder = Callable[[datetime, str], Optional[LogEntry]]
# (lines, tz, after) -> entries stamped strictly after ``after``.
LineParser = Callable[[Iterable[str], tzinfo, Optional[datetime]], List[LogEntry]]


def split_timestamp(line: str, tz: tzinfo) -> Optional[Tuple[datetime, str]]:
    """Split ``line`` into (timestamp, rest), or None for a continuation line."""

    head, sep, rest = line.partition("\t")
    if not sep or not _TIMESTAMP_RE.fullmatch(head):
        return None
    try:
        naive = datetime.fromisoformat(head)
    except ValueError:
        return None
    return naive.replace(tzinfo=tz), rest


def _parse_int(value: str, field: str, maximum: int) -> int:
    # Plain ASCII digits only; int() would also take "+5", " 5", "1_000" and
    # full-width digits.
    if not (value.isascii() and value.isdigit()):
        raise LineDecodeError(f"Malformed {field}: {value!r}")
    number = int(value)
    if number > maximum:
        raise LineDecodeError(f"{field} out of range: {number}")
    return number


def parenthesized_int(field: str) -> Optional[int]:
    """Return the integer inside the first ``(...)`` of ``field``.

    None means the parentheses are missing or unbalanced; a non-numeric
    value inside them raises LineDecodeError.
    """

    open_at = field.find("(")
    if open_at < 0:
        return None
    close_at = field.find(")", open_at + 1)
    if close_at < 0:
        return None
    inner = field[open_at + 1 : close_at]
    try:
        return int(inner)
    except ValueError:
        raise LineDecodeError(f"Malformed count: {field!r}") from None


def decode_chat_body(raw_body: str) -> str:
    """Decode the body field of the first line of a chat entry."""

    body = unescape(raw_body)
    if body == QUOTE:
        return "\n"
    # An opening quote not followed by another quote starts a multi-line body.
    if body.startswith(QUOTE) and body[1:2] != QUOTE:
        return body[1:]
    return body


def decode_continuation(line: str) -> str:
    """Decode a continuation line, dropping the block's closing quote."""

    partial = pre_unescape(line)
    if partial.endswith(QUOTE):
        partial = partial[:-1]
    return finish_unescape(partial)


def decode_chat(timestamp: datetime, rest: str) -> ChatEntry:
    fields = rest.split("\t", 4)
    if len(fields) < 5:
        raise LineDecodeError(f"Expected 5 chat fields, got {len(fields)}")
    sequence_raw, channel_raw, actor_raw, actor_name, raw_body = fields

    sequence_id = _parse_int(sequence_raw, "sequence id", SEQUENCE_ID_MAX)
    try:
        channel = ChatChannel(channel_raw)
    except ValueError:
        raise UnrecognizedFormatError(f"Unknown chat channel: {channel_raw!r}") from None
    actor_id = _parse_int(actor_raw, "actor id", ACTOR_ID_MAX)

    return ChatEntry(
        timestamp=timestamp,
        sequence_id=sequence_id,
        channel=channel,
        actor_id=actor_id,
        actor_name=actor_name,
        body=decode_chat_body(raw_body),
    )


def decode_pickup(timestamp: datetime, rest: str) -> Optional[ItemEntry]:
    """Decode an action log line; only ``[Pickup]`` lines produce entries."""

    fields = rest.split("\t")
    if len(fields) < 2:
        raise LineDecodeError(f"Expected at least 2 action fields, got {len(fields)}")

    sequence_id = _parse_int(fields[0], "sequence id", SEQUENCE_ID_MAX)
    if fields[1] != PICKUP_TAG:
        return None
    if len(fields) < 4:
        raise LineDecodeError(f"Expected at least 4 pickup fields, got {len(fields)}")
    actor_id = _parse_int(fields[2], "actor id", ACTOR_ID_MAX)
    actor_name = fields[3]

    tail = fields[4:]
    item = tail[0] if tail else ""
    count_field = tail[1] if len(tail) > 1 and tail[1] else None

    if not item:
        # Meseta pickups leave the item column empty: "\tMeseta(12)\tCurrentMeseta(...)"
        if count_field is None or not count_field.startswith(MESETA):
            raise UnrecognizedFormatError(f"Unknown pickup shape: {rest!r}")
        amount = parenthesized_int(count_field)
        if amount is None or amount < 0:
            raise LineDecodeError(f"Malformed Meseta amount: {count_field!r}")
        item = MESETA
        count = amount
    elif count_field is None:
        count = 1
    elif count_field.startswith(STACK_SIZE_PREFIX):
        # CurrentNum(n) is the resulting stack size, not the amount picked up.
        count = 1
    else:
        amount = parenthesized_int(count_field)
        if amount is None:
            raise LineDecodeError(f"Malformed item count: {count_field!r}")
        count = max(1, amount)

    return ItemEntry(
        timestamp=timestamp,
        sequence_id=sequence_id,
        category=ItemCategory.PICKUP,
        actor_id=actor_id,
        actor_name=actor_name,
        item=item,
        count=count,
    )


def decode_reward(timestamp: datetime, rest: str) -> Optional[ItemEntry]:
    """Decode a reward log line; only Meseta and Backpack rewards are kept."""

    fields = rest.split("\t")
    if len(fields) < 4:
        raise LineDecodeError(f"Expected at least 4 reward fields, got {len(fields)}")

    sequence_id = _parse_int(fields[0], "sequence id", SEQUENCE_ID_MAX)
    actor_name = fields[2]
    kind = fields[3]

    if kind == MESETA:
        item = MESETA
        count_field = fields[4] if len(fields) > 4 else None
    elif kind == BACKPACK:
        if len(fields) < 5:
            raise LineDecodeError("Backpack reward without an item name")
        item = fields[4]
        count_field = fields[5] if len(fields) > 5 else None
    else:
        return None

    count = parenthesized_int(count_field) if count_field is not None else None
    if count is None or count < 0:
        LOGGER.debug("Skipping reward line without a usable count: %r", rest)
        return None

    return ItemEntry(
        timestamp=timestamp,
        sequence_id=sequence_id,
        category=ItemCategory.REWARD,
        actor_id=0,
        actor_name=actor_name,
        item=item,
        count=count,
    )


def parse_lines(
    lines: Iterable[str],
    decode: EntryDecoder,
    tz: tzinfo,
    source: str = "log",
    after: Optional[datetime] = None,
) -> List[LogEntry]:
    """Decode every line of one file, folding continuation lines.

    A continuation line extends the last decoded entry. It is discarded when
    there is none: at the start of the file, after a dropped line, or after
    a line that produced no entry.

    Lines stamped at or before ``after`` are skipped without decoding their
    fields, together with their continuation lines.
    """

    entries: List[LogEntry] = []
    open_index: Optional[int] = None

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        split = split_timestamp(line, tz)
        if split is None:
            if open_index is None:
                continue
            extended = append_body(entries[open_index], decode_continuation(line))
            if extended is not None:
                entries[open_index] = extended
            continue

        timestamp, rest = split
        if after is not None and timestamp <= after:
            open_index = None
            continue
        try:
            entry = decode(timestamp, rest)
        except LineDecodeError as exc:
            LOGGER.warning("Dropping %s line %s: %s", source, line_number, exc)
            open_index = None
            continue

        if entry is None:
            open_index = None
            continue
        entries.append(entry)
        open_index = len(entries) - 1

    return entries


def parse_chat_lines(lines: Iterable[str], tz: tzinfo, after: Optional[datetime] = None) -> List[LogEntry]:
    return parse_lines(lines, decode_chat, tz, source="chat", after=after)


def parse_pickup_lines(lines: Iterable[str], tz: tzinfo, after: Optional[datetime] = None) -> List[LogEntry]:
    return parse_lines(lines, decode_pickup, tz, source="pickup", after=after)


def parse_reward_lines(lines: Iterable[str], tz: tzinfo, after: Optional[datetime] = None) -> List[LogEntry]:
    return parse_lines(lines, decode_reward, tz, source="reward", after=after)
