# aimtrack/scanner.py

import logging
import os
from datetime import datetime
from typing import Iterator, Optional

from aimtrack.ingestor import RunIngestor
from aimtrack.models import ScanResult

logger = logging.getLogger(__name__)


def is_csv_file(path: str) -> bool:
    return path.lower().endswith('.csv')


def iter_csv_files(root: str) -> Iterator[str]:
    """Yield every .csv file under root, recursively, in a stable order."""

    def _on_error(error: OSError) -> None:
        logger.warning("Cannot read directory %s: %s", getattr(error, 'filename', root), error)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            full = os.path.join(dirpath, name)
            if is_csv_file(name) and os.path.isfile(full):
                yield full


class DirectoryScanner:
    """Route every CSV under a root directory through the upsert engine."""

    def __init__(self, ingestor: RunIngestor):
        self.ingestor = ingestor

    def scan_all(self, root: str) -> ScanResult:
        """Full scan: every CSV file, regardless of modification time."""
        return self._scan(root, cutoff=None)

    def scan_since(self, root: str, cutoff: datetime) -> ScanResult:
        """Incremental scan: only files modified strictly after `cutoff`."""
        return self._scan(root, cutoff=cutoff)

    def _scan(self, root: str, cutoff: Optional[datetime]) -> ScanResult:
        result = ScanResult()
        cutoff_ts = cutoff.timestamp() if cutoff is not None else None
        label = "Incremental scan" if cutoff is not None else "Scan"

        for path in iter_csv_files(root):
            try:
                if cutoff_ts is not None and os.stat(path).st_mtime <= cutoff_ts:
                    continue
                outcome = self.ingestor.upsert_run(path)
            except Exception as e:
                result.failed += 1
                logger.error("%s error: %s file: %s", label, e, path)
                continue

            result.record(outcome)
            if outcome.is_new and cutoff is not None:
                logger.info("New CSV detected: %s", os.path.basename(path))

        return result
