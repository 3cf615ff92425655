# aimtrack/naming.py

"""Task and scenario naming helpers."""

import os
import re
from typing import Optional

_STAMP = r"\d{4}\.\d{2}\.\d{2}-\d{2}\.\d{2}\.\d{2}"

# The challenge form is tried before the bare date form; otherwise
# "X - Challenge - <stamp> Stats" would leave "X - Challenge" behind.
_TASK_SUFFIXES = (
    re.compile(rf"\s*-\s*Challenge\s*-\s*{_STAMP}\s*Stats?$", re.IGNORECASE),
    re.compile(rf"\s*-\s*{_STAMP}\s*Stats?$", re.IGNORECASE),
    re.compile(r"\s*\bStats?$", re.IGNORECASE),
)

_FILENAME_SUFFIXES = (
    re.compile(rf" - Challenge - {_STAMP} Stats\.csv$"),
    re.compile(r" Stats\.csv$"),
    re.compile(r"\.csv$", re.IGNORECASE),
)


def normalize_task_name(name: Optional[str]) -> Optional[str]:
    """
    Collapse per-export name variants onto one task key.

    'Tile Frenzy - Challenge - 2024.01.05-10.30.00 Stats' -> 'Tile Frenzy'
    """
    if not name:
        return name
    normalized = name
    for pattern in _TASK_SUFFIXES:
        normalized = pattern.sub('', normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def scenario_from_filename(filename: str) -> Optional[str]:
    """Derive a scenario name from an export filename."""
    scenario = os.path.basename(filename or '')
    for pattern in _FILENAME_SUFFIXES:
        scenario = pattern.sub('', scenario)
    scenario = scenario.strip()
    return scenario or None
