"""Application entry point for the ngs-log-watch poller."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional
from urllib.parse import parse_qsl, urlsplit

from art import tprint

import settings
from adapters.console_notifier import ConsoleNotifier
from adapters.http_client import UrllibHttpClient
from adapters.process_runner import SubprocessCommandRunner, SubprocessSoundPlayer
from core.config import ColorConfig, DisplayConfig, SourceConfig
from core.counters import CounterStore
from core.dispatcher import ActionDispatcher
from core.errors import SourceUnavailableError, UnrecognizedFormatError
from core.parsers import LineParser, parse_chat_lines, parse_pickup_lines, parse_reward_lines
from core.processor import EntryProcessor
from core.rules_engine import build_rules
from core.tailer import LogSource, LogTailer, find_latest_file

NAME = "NGS LOG"
FONT = "tarty-1"
MIN_SECRET_LENGTH = 8

PARSERS: dict[str, LineParser] = {
    "chat": parse_chat_lines,
    "pickup": parse_pickup_lines,
    "reward": parse_reward_lines,
}


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Masks webhook secrets before a record reaches any handler."""

    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first, so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        for secret in self._secrets:
            if secret in text:
                text = text.replace(secret, "***")
        return text


def _rule_url_secrets(rules_config: list[dict]) -> list[str]:
    """Return the literal query values of every get/post URL in the rules."""

    # Webhook tokens usually ride in the query string; values holding a
    # placeholder change per entry, and short values are flags, not tokens.
    secrets = []
    for rule in rules_config:
        action = rule.get("action") or {}
        for key in ("get", "post"):
            url = action.get(key)
            if not isinstance(url, str):
                continue
            for _, value in parse_qsl(urlsplit(url).query):
                if len(value) >= MIN_SECRET_LENGTH and "{" not in value:
                    secrets.append(value)
    return secrets


def _collect_redaction_values(config: dict, rules_config: list[dict]) -> list[str]:
    redact_cfg = config.get("redact", {})
    if not redact_cfg.get("enabled", False):
        return []
    values = [os.getenv(name, "") for name in redact_cfg.get("patterns", [])]
    if redact_cfg.get("rule_urls", True):
        values.extend(_rule_url_secrets(rules_config))
    return values


def _log_file_handler(file_cfg: dict) -> RotatingFileHandler:
    path = file_cfg.get("path", "logs/ngs-log-watch.log")
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging() -> None:
    """Route diagnostics to stderr and/or a rotating file.

    Stdout is reserved for the notifications themselves, so the console
    handler writes to stderr.
    """

    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _RedactingFormatter(
        _collect_redaction_values(config, settings.RULES_CONFIG),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler(sys.stderr))
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_log_file_handler(file_cfg))
    if not handlers:
        return

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)


def _build_display() -> DisplayConfig:
    return DisplayConfig(
        datetime_format=settings.DATETIME_FORMAT,
        column_separator=settings.COLUMN_SEPARATOR,
        show_channel=settings.SHOW_CHANNEL,
        show_action_pattern=settings.SHOW_ACTION_PATTERN,
        name_padding_width=settings.NAME_PADDING_WIDTH,
        channel_padding_width=settings.CHANNEL_PADDING_WIDTH,
        colors=ColorConfig(**settings.COLORS),
    )


def _build_sources() -> list[LogSource]:
    sources = []
    for entry in settings.LOG_SOURCES:
        if not entry["enabled"]:
            continue
        config = SourceConfig(name=entry["name"], directory=entry["directory"], prefix=entry["prefix"])
        sources.append(LogSource(config=config, parser=PARSERS[entry["name"]]))
    return sources


async def poll_forever(
    tailer: LogTailer,
    processor: EntryProcessor,
    dispatcher: ActionDispatcher,
    interval: float,
) -> None:
    """Poll, process each new entry in timestamp order, sleep, repeat.

    An unrecognized log format skips the rest of that poll; OSError from the
    log folder ends the loop.
    """

    logger = logging.getLogger(__name__)
    try:
        while True:
            try:
                batch = tailer.poll()
            except UnrecognizedFormatError:
                logger.exception("Unrecognized log format, skipping this poll")
                batch = []
            if batch:
                handled = await processor.handle_batch(batch)
                logger.info("Processed %s new log entries", handled)
            await asyncio.sleep(interval)
    finally:
        dispatcher.cancel_background()


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting ngs-log-watch")

    rules = build_rules(settings.RULES_CONFIG)
    logger.info("%s rules are loaded", len(rules))

    counters = CounterStore()
    dispatcher = ActionDispatcher(
        console=ConsoleNotifier(_build_display()),
        sound=SubprocessSoundPlayer(settings.SOUND_PLAYER),
        commands=SubprocessCommandRunner(),
        http=UrllibHttpClient(timeout=settings.HTTP_TIMEOUT_SECONDS),
        counters=counters,
    )
    processor = EntryProcessor(rules=rules, dispatcher=dispatcher, counters=counters)
    sources = _build_sources()
    tailer = LogTailer(sources)
    logger.info("Watching %s log sources in %s", len(sources), settings.LOG_DIR)

    try:
        asyncio.run(poll_forever(tailer, processor, dispatcher, 1.0 / settings.POLLING_RATE))
    except KeyboardInterrupt:
        logger.info("Stopped")


def _show_sources() -> None:
    _print_banner()
    for source in _build_sources():
        try:
            path = find_latest_file(source.config.directory, source.config.prefix)
        except SourceUnavailableError as exc:
            print(f"{source.config.name} | not found | {exc}")
            continue
        print(f"{source.config.name} | {path}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="ngs-log-watch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start watching the game logs")
    subparsers.add_parser("sources", help="Show the log file each source currently reads")

    args = parser.parse_args(argv)
    if args.command == "sources":
        _show_sources()
        return
    _run()


if __name__ == "__main__":
    main()
