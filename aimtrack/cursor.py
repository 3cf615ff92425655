# aimtrack/cursor.py

import logging
from datetime import datetime, timezone
from typing import Optional

from aimtrack.config import SETTING_INITIAL_SCAN_COMPLETE, SETTING_LAST_SCAN_TIMESTAMP
from aimtrack.database import Database

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # Naive values are local wall-clock time
    return value if value.tzinfo is not None else value.astimezone()


class ScanCursor:
    """Persisted scan progress: first-scan flag plus the last completed scan instant."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def initial_scan_complete(self) -> bool:
        return self.db.get_setting_bool(SETTING_INITIAL_SCAN_COMPLETE, False)

    @property
    def last_scan_timestamp(self) -> Optional[datetime]:
        raw = self.db.get_setting(SETTING_LAST_SCAN_TIMESTAMP)
        if not raw:
            return None
        try:
            return _as_aware(datetime.fromisoformat(raw))
        except ValueError:
            logger.warning("Ignoring unreadable %s setting: %r", SETTING_LAST_SCAN_TIMESTAMP, raw)
            return None

    def mark_initial_scan_complete(self) -> None:
        self.db.set_setting(SETTING_INITIAL_SCAN_COMPLETE, 'true')

    def advance(self, instant: Optional[datetime] = None) -> datetime:
        """
        Move last_scan_timestamp forward to `instant` (default: now).

        An instant at or before the stored one leaves the setting untouched.
        Returns the timestamp in effect afterwards.
        """
        target = _as_aware(instant) if instant is not None else utc_now()
        current = self.last_scan_timestamp
        if current is not None and target <= current:
            return current
        self.db.set_setting(SETTING_LAST_SCAN_TIMESTAMP, target.astimezone(timezone.utc).isoformat())
        return target
