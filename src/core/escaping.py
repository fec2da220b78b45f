"""Doubled-quote escaping used by multi-line log fields.

The game client writes a literal quote as two quotes, and wraps multi-line
chat bodies in a single pair of quotes. Continuation lines need a partial
pass first so that an escaped quote at the end of a line is not mistaken for
the closing quote of the block.
"""

from __future__ import annotations

QUOTE = '"'
ESCAPED_QUOTE = QUOTE * 2

# NUL never occurs in the text logs the game client writes.
SENTINEL = "\x00"


def unescape(text: str) -> str:
    """Collapse every ``""`` pair into one quote, left to right."""

    return text.replace(ESCAPED_QUOTE, QUOTE)


def pre_unescape(text: str) -> str:
    """Replace every ``""`` pair with the sentinel character."""

    return text.replace(ESCAPED_QUOTE, SENTINEL)


def finish_unescape(text: str) -> str:
    """Turn sentinels left by :func:`pre_unescape` back into single quotes."""

    return text.replace(SENTINEL, QUOTE)
