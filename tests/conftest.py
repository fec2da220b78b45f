import os
from pathlib import Path

# settings reads its JSON file at import; point it at the shipped example.
os.environ.setdefault(
    "NGS_LOG_WATCH_CONFIG",
    str(Path(__file__).resolve().parents[1] / "config.example.json"),
)
