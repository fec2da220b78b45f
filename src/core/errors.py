"""Exception types raised by the core pipeline."""

from __future__ import annotations


class LogWatchError(Exception):
    """Base class for all ngs-log-watch errors."""


class SourceUnavailableError(LogWatchError):
    """No log file matching a source could be found this poll cycle."""


class LineDecodeError(LogWatchError):
    """A recognized line shape carried a malformed field."""


class UnrecognizedFormatError(LogWatchError):
    """A value fell outside every known shape; the poll cycle is aborted."""


class RuleRegexError(LogWatchError):
    """A rule carries a regular expression that does not compile."""


class ActionError(LogWatchError):
    """A single notification action failed."""


class ActionTransportError(ActionError):
    """An HTTP action could not reach its endpoint."""


class SoundPlaybackError(ActionError):
    """A sound file could not be played."""
