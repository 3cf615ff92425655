# aimtrack/pipeline.py

import logging
import time
from typing import Optional

from aimtrack.config import IngestConfig
from aimtrack.cursor import ScanCursor, utc_now
from aimtrack.database import Database
from aimtrack.events import RunEvents
from aimtrack.goals import GoalCollaborator
from aimtrack.ingestor import RunIngestor
from aimtrack.models import ScanResult
from aimtrack.scanner import DirectoryScanner
from aimtrack.watcher import LiveWatcher

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """
    Startup catch-up scan followed by live watching.

    First run: full scan of the stats folder, then goal generation.
    Later runs: only files modified since the stored scan cursor.
    The cursor is written only after the scan it bounds has finished.
    """

    def __init__(
        self,
        config: IngestConfig,
        db: Database,
        events: Optional[RunEvents] = None,
        goals: Optional[GoalCollaborator] = None,
    ):
        self.config = config
        self.db = db
        self.events = events or RunEvents()
        self.goals = goals or GoalCollaborator()
        self.cursor = ScanCursor(db)
        self.ingestor = RunIngestor(db, events=self.events, goals=self.goals)
        self.scanner = DirectoryScanner(self.ingestor)
        self.watcher = LiveWatcher(config.stats_dir, self.ingestor, self.cursor, config=config)

    def run_startup_scan(self) -> ScanResult:
        """Full scan on first run, incremental catch-up afterwards."""
        root = self.config.stats_dir
        logger.info("Stats folder: %s", root)
        started_at = utc_now()

        if not self.cursor.initial_scan_complete:
            logger.info("First run detected - scanning all CSVs...")
            result = self._full_scan(root)
            # Cursor is written before the flag
            self.cursor.advance(started_at)
            self.cursor.mark_initial_scan_complete()
            self._generate_goals()
            return result

        last_scan = self.cursor.last_scan_timestamp
        if last_scan is None:
            logger.warning("Initial scan recorded but no scan timestamp stored; rescanning all CSVs")
            result = self._full_scan(root)
            self.cursor.advance(started_at)
            return result

        logger.info("Checking for new CSVs since %s", last_scan.isoformat())
        result = self.scanner.scan_since(root, last_scan)
        if result.new_files:
            logger.info("Found %d new runs from offline play", result.new_files)
        else:
            logger.info("No new CSVs found - database is up to date")
        self.cursor.advance(started_at)
        return result

    def _full_scan(self, root: str) -> ScanResult:
        clock_start = time.monotonic()
        result = self.scanner.scan_all(root)
        logger.info(
            "Full scan complete in %.1fs: %d new runs, %d duplicates, %d failed",
            time.monotonic() - clock_start,
            result.new_files,
            result.duplicates,
            result.failed,
        )
        return result

    def _generate_goals(self) -> None:
        try:
            generated = self.goals.generate_goals()
            logger.info("Generated %d goals", generated)
        except Exception:
            logger.exception("Initial goal generation failed")

    def rescan(self) -> ScanResult:
        """Manual full rescan; duplicates are skipped by hash, the cursor is untouched."""
        return self.scanner.scan_all(self.config.stats_dir)

    def start(self) -> ScanResult:
        result = self.run_startup_scan()
        self.watcher.start()
        return result

    def stop(self) -> None:
        self.watcher.stop()
