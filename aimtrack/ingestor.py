# aimtrack/ingestor.py

import logging
import os
from datetime import datetime
from typing import Optional

from aimtrack.config import RUN_SOURCE_TAG, SETTING_PRACTICE_MODE
from aimtrack.database import Database
from aimtrack.events import NewRunEvent, RunEvents
from aimtrack.goals import GoalCollaborator, GoalProgressUpdate
from aimtrack.hashing import hash_bytes
from aimtrack.models import IngestResult, RawRun
from aimtrack.naming import normalize_task_name
from aimtrack.parser import StatsCsvParser

logger = logging.getLogger(__name__)


class IngestError(Exception):
    """Raised when a stats file cannot be read."""


def resolve_task_name(run: RawRun, path: str) -> str:
    """Scenario name (or the filename stem) with export suffixes stripped."""
    raw_name = (run.scenario or '').strip()
    if not raw_name:
        stem, ext = os.path.splitext(os.path.basename(path))
        raw_name = stem if ext.lower() == '.csv' else os.path.basename(path)
    return normalize_task_name(raw_name) or raw_name


class RunIngestor:
    """Idempotent insert of one stats file into storage."""

    def __init__(
        self,
        db: Database,
        events: Optional[RunEvents] = None,
        goals: Optional[GoalCollaborator] = None,
        parser: Optional[StatsCsvParser] = None,
    ):
        self.db = db
        self.events = events or RunEvents()
        self.goals = goals or GoalCollaborator()
        self.parser = parser or StatsCsvParser()

    def upsert_run(self, path: str) -> IngestResult:
        """
        Parse a stats file and store it unless identical content is already stored.

        The file is read once; hashing and parsing both work on those bytes, so
        a file rewritten mid-ingest cannot pair one version's hash with
        another version's fields.

        Args:
            path: CSV file to ingest

        Returns:
            IngestResult with is_new=True on first sight of the content,
            is_new=False/exists=True for duplicates

        Raises:
            IngestError: If the file cannot be read
            RuntimeError: If storage fails
        """
        try:
            with open(path, 'rb') as handle:
                data = handle.read()
        except OSError as e:
            raise IngestError(f"Failed to read '{path}': {e}") from e

        parsed = self.parser.parse_bytes(data, path).with_derived_metrics()
        if parsed.has_metrics():
            logger.debug("Parsed %s: %s", os.path.basename(path), parsed.to_dict())
        else:
            logger.warning("No stats found in %s; storing it without metrics", path)
        task_name = resolve_task_name(parsed, path)
        task_id = self.db.find_or_create_task(task_name)
        content_hash = hash_bytes(data)

        is_practice = self.db.get_setting_bool(SETTING_PRACTICE_MODE, False)
        played_at = (parsed.played_at or datetime.now()).isoformat(timespec='milliseconds')

        inserted = self.db.insert_run_if_absent(content_hash, task_id, {
            'filename': os.path.basename(path),
            'path': os.path.abspath(path),
            'played_at': played_at,
            'score': parsed.score,
            'accuracy': parsed.accuracy,
            'hits': parsed.hits,
            'misses': parsed.misses,
            'shots': parsed.shots,
            'duration': parsed.duration,
            'score_per_min': parsed.score_per_min,
            'avg_ttk': parsed.avg_ttk,
            'overshots': parsed.overshots,
            'reloads': parsed.reloads,
            'fps_avg': parsed.fps_avg,
            'meta': {
                'dpi': parsed.dpi,
                'sens_h': parsed.sens_h,
                'fov': parsed.fov,
                'event_count': parsed.event_count,
                'source': RUN_SOURCE_TAG,
            },
            'is_practice': 1 if is_practice else 0,
        })

        row = self.db.get_run_by_hash(content_hash)
        run_id = row['id'] if row else None

        if inserted:
            logger.info("Imported run %s for task '%s'", os.path.basename(path), task_name)
            if not is_practice:
                self._update_goals(task_name, parsed, played_at)
            self.events.publish(NewRunEvent(
                task_name=task_name,
                hash=content_hash,
                path=os.path.abspath(path),
                run_id=run_id,
            ))
        else:
            logger.debug("Skipped duplicate content %s (%s)", content_hash, path)

        return IngestResult(
            is_new=inserted,
            exists=row is not None,
            run_id=run_id,
            task_name=task_name,
            hash=content_hash,
        )

    def _update_goals(self, task_name: str, parsed: RawRun, played_at: str) -> None:
        try:
            self.goals.update_progress(GoalProgressUpdate(
                task_name=task_name,
                accuracy=parsed.accuracy,
                score=parsed.score,
                duration=parsed.duration,
                played_at=played_at,
            ))
        except Exception:
            logger.exception("Goal progress update failed for task '%s'", task_name)
