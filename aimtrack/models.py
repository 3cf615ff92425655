# aimtrack/models.py

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, Optional

from aimtrack.values import derive_score_per_minute

METRIC_FIELDS = (
    'score', 'hits', 'misses', 'shots', 'accuracy', 'avg_ttk', 'overshots',
    'reloads', 'fps_avg', 'dpi', 'sens_h', 'fov', 'duration', 'score_per_min',
    'event_count',
)


@dataclass(frozen=True)
class RawRun:
    """One normalized run as extracted from a stats file. Every field is optional."""

    scenario: Optional[str] = None
    score: Optional[float] = None
    hits: Optional[int] = None
    misses: Optional[int] = None
    shots: Optional[int] = None
    accuracy: Optional[float] = None
    avg_ttk: Optional[float] = None
    overshots: Optional[int] = None
    reloads: Optional[int] = None
    fps_avg: Optional[float] = None
    dpi: Optional[float] = None
    sens_h: Optional[float] = None
    fov: Optional[float] = None
    duration: Optional[float] = None
    score_per_min: Optional[float] = None
    played_at: Optional[datetime] = None
    event_count: Optional[int] = None

    def with_derived_metrics(self) -> "RawRun":
        """Return a copy with score_per_min recomputed from score and duration."""
        return replace(self, score_per_min=derive_score_per_minute(self.score, self.duration))

    def has_metrics(self) -> bool:
        return any(getattr(self, name) is not None for name in METRIC_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if self.played_at is not None:
            data['played_at'] = self.played_at.isoformat(timespec='milliseconds')
        return data


@dataclass(frozen=True)
class IngestResult:
    """Outcome of routing one file through the upsert engine."""

    is_new: bool
    exists: bool
    run_id: Optional[int] = None
    task_name: Optional[str] = None
    hash: Optional[str] = None


@dataclass
class ScanResult:
    new_files: int = 0
    duplicates: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.new_files + self.duplicates

    def record(self, result: IngestResult) -> None:
        if result.is_new:
            self.new_files += 1
        elif result.exists:
            self.duplicates += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            'new_files': self.new_files,
            'duplicates': self.duplicates,
            'failed': self.failed,
            'total': self.total,
        }

    def print_summary(self, title: str = "SCAN RESULT") -> None:
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)
        print(f"New runs imported:   {self.new_files}")
        print(f"Duplicates skipped:  {self.duplicates}")
        print(f"Failed files:        {self.failed}")
        print(f"Total CSV files:     {self.total}")
        print("=" * 60)
