# aimtrack/values.py

"""
Tolerant value parsers for aim-trainer stat exports.

Every parser takes a raw cell (usually a string, possibly None) and returns a
typed value or None. None means "absent"; no parser raises on bad input.
"""

import math
import os
import re
from datetime import datetime
from typing import Any, Optional

from dateutil import parser as dateparser

_PERCENT_RE = re.compile(r"^\s*[-+]?\d+(\.\d+)?\s*%\s*$")
_LEADING_INT_RE = re.compile(r"^[-+]?\d+")
_BARE_DECIMAL_RE = re.compile(r"^(\d+(?:\.\d+)?)$")
_CLOCK_RE = re.compile(r"^(\d{1,2}):([0-5]\d)(?:\.\d+)?$")
_TIME_OF_DAY_RE = re.compile(r"^(\d{2}):(\d{2}):(\d{2})(?:\.(\d{3}))?$")
_FILENAME_DATE_RE = re.compile(r"(\d{4})\.(\d{2})\.(\d{2})")
_FILENAME_STAMP_RE = re.compile(r"(\d{4})\.(\d{2})\.(\d{2})-(\d{2})\.(\d{2})\.(\d{2})")
# dateutil happily turns "10:30" or "60.0" into today's date, so free-form
# parsing is only attempted when the string carries a date-like component.
_DATE_HINT_RE = re.compile(r"\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}|[A-Za-z]{3,}")


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def parse_locale_number(value: Any) -> Optional[float]:
    """Parse '1,234.5', '87 %' or ' 12 ' as a float."""
    if value is None:
        return None
    cleaned = re.sub(r"[% ]", "", str(value)).replace(",", "").strip()
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_integer(value: Any) -> Optional[int]:
    """Parse the leading integer of a cell ('3,869' -> 3869, '7.9' -> 7)."""
    if value is None:
        return None
    cleaned = str(value).replace(",", "").strip()
    match = _LEADING_INT_RE.match(cleaned)
    if not match:
        return None
    return int(match.group(0))


def parse_percent(value: Any) -> Optional[float]:
    """
    Parse an accuracy-like value onto a 0-100 scale.

    Exports mix conventions: '45%', '87.5', a 0-1 ratio such as '0.875', and
    occasionally a ratio scaled by 100 twice ('700' for 7%).

    Args:
        value: Raw cell value

    Returns:
        Percentage in [0, 100], or None when nothing numeric was found
    """
    if value is None:
        return None
    raw = str(value).strip()
    if _PERCENT_RE.match(raw):
        number = parse_locale_number(raw)
        return _clamp(number) if number is not None else None

    number = parse_locale_number(raw)
    if number is None:
        return None
    if number <= 1:
        return _clamp(number * 100)
    if 100 < number < 1000:
        # TODO: check this correction against a larger sample of exports
        return number / 100
    return _clamp(number)


def parse_duration(value: Any) -> Optional[float]:
    """
    Parse a duration into seconds.

    Tried in order: a short bare decimal under 10 (minutes), an m:ss / mm:ss
    clock, then a plain number of seconds.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    bare = _BARE_DECIMAL_RE.match(text)
    if bare and len(text) < 10:
        minutes = float(bare.group(1))
        if minutes < 10:
            return minutes * 60

    clock = _CLOCK_RE.match(text)
    if clock:
        return float(int(clock.group(1)) * 60 + int(clock.group(2)))

    return parse_locale_number(text)


def parse_clock_offset(value: Any) -> Optional[float]:
    """Convert an event timestamp such as '10:31:04.512' or '01:04.5' to seconds."""
    if value is None:
        return None
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [float(part) for part in parts]
    except ValueError:
        return None
    if len(numbers) == 3:
        hours, minutes, seconds = numbers
    else:
        hours = 0.0
        minutes, seconds = numbers
    return hours * 3600 + minutes * 60 + seconds


def _parse_direct(raw: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        pass
    if not _DATE_HINT_RE.search(raw):
        return None
    try:
        return dateparser.parse(raw)
    except (ValueError, OverflowError):
        return None


def parse_date(raw: Any, filename: str) -> Optional[datetime]:
    """
    Resolve when a run was played.

    Args:
        raw: Date-ish cell from the file (may be None)
        filename: Path or name of the source file, used as a fallback

    Returns:
        A datetime, or None when neither the cell nor the filename yields one
    """
    base = os.path.basename(filename or "")
    text = str(raw).strip() if raw is not None else ""

    if text:
        direct = _parse_direct(text)
        if direct is not None:
            return direct

        time_match = _TIME_OF_DAY_RE.match(text)
        date_match = _FILENAME_DATE_RE.search(base)
        if time_match and date_match:
            year, month, day = (int(g) for g in date_match.groups())
            hour, minute, second = (int(g) for g in time_match.groups()[:3])
            millis = int(time_match.group(4) or 0)
            try:
                return datetime(year, month, day, hour, minute, second, millis * 1000)
            except ValueError:
                pass

    stamp = _FILENAME_STAMP_RE.search(base)
    if stamp:
        try:
            return datetime(*(int(g) for g in stamp.groups()))
        except ValueError:
            return None
    return None


def derive_score_per_minute(score: Optional[float], duration: Optional[float]) -> Optional[float]:
    if score is None or not duration or duration <= 0:
        return None
    return score / (duration / 60)
