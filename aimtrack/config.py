# aimtrack/config.py

"""
Runtime configuration for the ingestion pipeline.

Defaults live here as module constants; every value can be overridden through
an AIMTRACK_* environment variable and, from main.py, a CLI flag.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_DB_PATH = "data/aimtrack.db"
DEFAULT_STATS_DIR = "stats"

# Quiet period a new file must show (no size/mtime change) before ingestion
DEFAULT_STABILITY_SECONDS = 0.5
DEFAULT_POLL_INTERVAL = 0.1
# Interval used by watchdog's PollingObserver when polling is enabled
DEFAULT_OBSERVER_TIMEOUT = 2.0
DEFAULT_MAX_DEPTH = 10

SETTING_INITIAL_SCAN_COMPLETE = "initial_scan_complete"
SETTING_LAST_SCAN_TIMESTAMP = "last_scan_timestamp"
SETTING_PRACTICE_MODE = "practice_mode_active"

RUN_SOURCE_TAG = "kovaaks-csv"

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def resolve_path(raw: str) -> str:
    """Return an absolute path anchored to the project root when relative."""
    path = Path(raw).expanduser()
    if path.is_absolute():
        return str(path)
    return str(PROJECT_ROOT / path)


@dataclass
class IngestConfig:
    """Settings shared by the scanner, watcher and startup pipeline."""

    stats_dir: str = DEFAULT_STATS_DIR
    db_path: str = DEFAULT_DB_PATH
    stability_seconds: float = DEFAULT_STABILITY_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    use_polling: bool = False
    observer_timeout: float = DEFAULT_OBSERVER_TIMEOUT
    max_depth: int = DEFAULT_MAX_DEPTH

    @classmethod
    def from_env(cls, stats_dir: Optional[str] = None, db_path: Optional[str] = None) -> "IngestConfig":
        """Build a config from AIMTRACK_* variables; explicit arguments win."""
        chosen_stats = stats_dir or os.getenv("AIMTRACK_STATS_DIR", "").strip() or DEFAULT_STATS_DIR
        chosen_db = db_path or os.getenv("AIMTRACK_DB_PATH", "").strip() or DEFAULT_DB_PATH
        return cls(
            stats_dir=resolve_path(chosen_stats),
            db_path=resolve_path(chosen_db),
            stability_seconds=_env_float("AIMTRACK_STABILITY_SECONDS", DEFAULT_STABILITY_SECONDS),
            poll_interval=_env_float("AIMTRACK_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            use_polling=_env_bool("AIMTRACK_USE_POLLING", False),
            observer_timeout=_env_float("AIMTRACK_OBSERVER_TIMEOUT", DEFAULT_OBSERVER_TIMEOUT),
            max_depth=_env_int("AIMTRACK_MAX_DEPTH", DEFAULT_MAX_DEPTH),
        )
