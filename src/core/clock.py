"""Local time helpers.

Log timestamps carry no offset; they are interpreted in the host's current
local offset, so every timestamp in the pipeline is an aware datetime with a
fixed offset.
"""

from __future__ import annotations

from datetime import datetime, timezone


def local_timezone() -> timezone:
    """Return the host's current UTC offset as a fixed-offset timezone."""

    offset = datetime.now().astimezone().utcoffset()
    if offset is None:
        raise RuntimeError("Unable to determine the local UTC offset")
    return timezone(offset)


def local_now() -> datetime:
    return datetime.now(local_timezone())
