"""Static configuration for ngs-log-watch.

All user-editable settings (display, log sources, rules, logging) live in a
single JSON file for quick edits without touching Python.
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

# config.json sits next to the project unless NGS_LOG_WATCH_CONFIG points elsewhere.
CONFIG_PATH = os.getenv("NGS_LOG_WATCH_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")

# Where the game client writes ChatLog*, ActionLog* and RewardLog* files.
DEFAULT_LOG_DIR = os.path.join("~", "Documents", "SEGA", "PHANTASYSTARONLINE2", "log_ngs")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _source(sources: dict, name: str, default_prefix: str, log_dir: str) -> dict:
    """Normalize one log source; each may override the shared log_dir."""

    directory = sources.get(f"{name}_dir", log_dir)
    return {
        "name": name,
        "directory": os.path.expanduser(directory),
        "prefix": sources.get(f"{name}_prefix", default_prefix),
        "enabled": bool(sources.get(f"{name}_enabled", True)),
    }


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Console layout. Colors are ANSI-256 codes.
_global = _CONFIG.get("global", {})
DATETIME_FORMAT = _global.get("datetime_format", "%Y-%m-%d %H:%M:%S")
COLUMN_SEPARATOR = _global.get("column_separator", " ")
SHOW_CHANNEL = bool(_global.get("show_channel", True))
SHOW_ACTION_PATTERN = bool(_global.get("show_action_pattern", False))
NAME_PADDING_WIDTH = int(_global.get("name_padding_width", 30))
CHANNEL_PADDING_WIDTH = int(_global.get("channel_padding_width", 6))
COLORS = {
    key: int(_global[f"color_{key}"])
    for key in ("public", "party", "guild", "group", "reply", "item", "system")
    if f"color_{key}" in _global
}

# Polls per second; the loop sleeps 1 / POLLING_RATE between polls.
POLLING_RATE = float(_global.get("polling_rate", 1.0))
if POLLING_RATE <= 0:
    raise ValueError("global.polling_rate must be positive")

# Log sources are tailed in this order; order only matters for equal timestamps.
_sources = _CONFIG.get("sources", {})
LOG_DIR = os.path.expanduser(_sources.get("log_dir", DEFAULT_LOG_DIR))
LOG_SOURCES = [
    _source(_sources, "chat", "ChatLog", LOG_DIR),
    _source(_sources, "pickup", "ActionLog", LOG_DIR),
    _source(_sources, "reward", "RewardLog", LOG_DIR),
]

# Audio player command line; "{path}" is replaced by the sound file.
SOUND_PLAYER = _CONFIG.get("sound", {}).get("player")

HTTP_TIMEOUT_SECONDS = float(_CONFIG.get("http", {}).get("timeout_seconds", 10))

# Rules are pulled directly from config.json, keeping them alongside sources.
RULES_CONFIG = _CONFIG.get("rules", [])

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
