# aimtrack/watcher.py

"""
Live ingestion of newly written stats files.

watchdog delivers created/moved-in events; StabilityTracker then holds each
file until its size and mtime have stayed unchanged for a quiet window, since
the trainer writes exports non-atomically. Per file:

    DEBOUNCING -> STABLE -> INGESTING -> (forgotten)

A size/mtime change while DEBOUNCING restarts the window.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from aimtrack.config import IngestConfig
from aimtrack.cursor import ScanCursor
from aimtrack.ingestor import RunIngestor
from aimtrack.models import IngestResult
from aimtrack.scanner import is_csv_file

logger = logging.getLogger(__name__)


class FileState(Enum):
    DEBOUNCING = "debouncing"
    STABLE = "stable"
    INGESTING = "ingesting"


@dataclass
class PendingFile:
    path: str
    signature: Optional[Tuple[int, float]]
    changed_at: float
    state: FileState = FileState.DEBOUNCING


class StabilityTracker:
    """Per-file write-stability state machine with an injectable clock and stat."""

    def __init__(
        self,
        quiet_seconds: float,
        stat: Callable[[str], os.stat_result] = os.stat,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.quiet_seconds = quiet_seconds
        self._stat = stat
        self._clock = clock
        self._files: Dict[str, PendingFile] = {}
        self._lock = threading.Lock()

    def _signature(self, path: str) -> Optional[Tuple[int, float]]:
        info = self._stat(path)
        return (info.st_size, info.st_mtime)

    def observe(self, path: str, now: Optional[float] = None) -> None:
        """Start (or restart) the quiet window for a file that was just added."""
        now = self._clock() if now is None else now
        try:
            signature = self._signature(path)
        except OSError:
            signature = None
        with self._lock:
            pending = self._files.get(path)
            if pending is not None and pending.state is not FileState.DEBOUNCING:
                return
            self._files[path] = PendingFile(path=path, signature=signature, changed_at=now)

    def poll(self, now: Optional[float] = None) -> List[str]:
        """
        Re-check every debouncing file.

        Returns:
            Paths that became stable on this poll; they move to INGESTING and
            stay there until finish() is called.
        """
        now = self._clock() if now is None else now
        with self._lock:
            candidates = [p for p in self._files.values() if p.state is FileState.DEBOUNCING]

        ready = []
        for pending in candidates:
            try:
                signature = self._signature(pending.path)
            except FileNotFoundError:
                logger.debug("File vanished before it settled: %s", pending.path)
                with self._lock:
                    self._files.pop(pending.path, None)
                continue
            except OSError as e:
                logger.warning("Cannot stat %s: %s", pending.path, e)
                continue

            with self._lock:
                if signature != pending.signature:
                    pending.signature = signature
                    pending.changed_at = now
                elif now - pending.changed_at >= self.quiet_seconds:
                    pending.state = FileState.STABLE
                    ready.append(pending)

        with self._lock:
            for pending in ready:
                pending.state = FileState.INGESTING
        return [pending.path for pending in ready]

    def finish(self, path: str) -> None:
        with self._lock:
            self._files.pop(path, None)

    def state_of(self, path: str) -> Optional[FileState]:
        with self._lock:
            pending = self._files.get(path)
            return pending.state if pending else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)


class _CsvEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "LiveWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event):
        if not event.is_directory:
            self.watcher.notify_added(event.src_path)

    def on_moved(self, event):
        # Writers that save to a temp name and rename show up as moves
        if not event.is_directory:
            self.watcher.notify_added(event.dest_path)


class LiveWatcher:
    """Watch a stats folder and ingest new CSV files once they stop changing."""

    def __init__(
        self,
        root: str,
        ingestor: RunIngestor,
        cursor: ScanCursor,
        config: Optional[IngestConfig] = None,
        tracker: Optional[StabilityTracker] = None,
    ):
        self.root = os.path.abspath(root)
        self.ingestor = ingestor
        self.cursor = cursor
        self.config = config or IngestConfig(stats_dir=self.root)
        self.tracker = tracker or StabilityTracker(self.config.stability_seconds)
        self._observer = None
        self._worker: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def should_track(self, path: str) -> bool:
        """CSV files under root, no dot-prefixed path parts, within max_depth folders."""
        if not is_csv_file(path):
            return False
        rel = os.path.relpath(os.path.abspath(path), self.root)
        parts = rel.split(os.sep)
        if parts[0] == os.pardir:
            return False
        if any(part.startswith('.') for part in parts):
            return False
        return len(parts) - 1 <= self.config.max_depth

    def notify_added(self, path: str) -> None:
        try:
            if self.should_track(path):
                logger.info("New run detected: %s", os.path.basename(path))
                self.tracker.observe(path)
        except Exception:
            logger.exception("Watcher error handling %s", path)

    def process_stable(self, now: Optional[float] = None) -> List[IngestResult]:
        """Ingest every file that has settled; one failing file never stops the rest."""
        results = []
        for path in self.tracker.poll(now):
            result = self._ingest(path)
            if result is not None:
                results.append(result)
        return results

    def _ingest(self, path: str) -> Optional[IngestResult]:
        try:
            result = self.ingestor.upsert_run(path)
            if result.is_new:
                logger.info("Imported successfully: %s", os.path.basename(path))
                self.cursor.advance()
            return result
        except Exception as e:
            logger.error("Import error: %s file: %s", e, path)
            return None
        finally:
            self.tracker.finish(path)

    def start(self) -> bool:
        """Begin watching; returns False if the observer could not be started."""
        if self._observer is not None:
            return True

        if self.config.use_polling:
            observer = PollingObserver(timeout=self.config.observer_timeout)
        else:
            observer = Observer()
        try:
            observer.schedule(_CsvEventHandler(self), self.root, recursive=True)
            observer.start()
        except OSError as e:
            logger.error("Watcher could not start on %s: %s", self.root, e)
            return False

        self._observer = observer
        self._stop.clear()
        self._worker = threading.Thread(target=self._run, name="aimtrack-stability", daemon=True)
        self._worker.start()
        logger.info("Watcher ready - monitoring %s for new runs", self.root)
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.config.poll_interval):
            try:
                self.process_stable()
            except Exception:
                logger.exception("Watcher poll failed")

    def stop(self) -> None:
        self._stop.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._worker is not None:
            self._worker.join()
            self._worker = None
