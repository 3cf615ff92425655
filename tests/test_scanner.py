# tests/test_scanner.py

import os
import shutil
import tempfile
import time
from datetime import datetime, timezone

import pytest

from aimtrack.ingestor import RunIngestor
from aimtrack.models import IngestResult, ScanResult
from aimtrack.scanner import DirectoryScanner, is_csv_file, iter_csv_files
from tests.helpers import (
    KOVAAKS_EXPORT,
    KOVAAKS_FILENAME,
    create_test_db,
    kill_table,
    remove_test_db,
    set_mtime,
    write_csv,
)


class TestIterCsvFiles:

    @pytest.fixture
    def stats_dir(self):
        path = tempfile.mkdtemp()
        yield path
        shutil.rmtree(path, ignore_errors=True)

    def test_recursive_and_filtered(self, stats_dir):
        write_csv(stats_dir, "a.csv", "x")
        write_csv(stats_dir, os.path.join("sub", "deeper", "b.CSV"), "x")
        write_csv(stats_dir, "notes.txt", "x")

        found = [os.path.relpath(path, stats_dir) for path in iter_csv_files(stats_dir)]

        assert found == ["a.csv", os.path.join("sub", "deeper", "b.CSV")]

    def test_missing_root_yields_nothing(self, stats_dir):
        assert list(iter_csv_files(os.path.join(stats_dir, "nope"))) == []

    def test_is_csv_file(self):
        assert is_csv_file("run.csv")
        assert is_csv_file("RUN.CSV")
        assert not is_csv_file("run.csv.bak")


class TestDirectoryScanner:
    """Full and incremental scans over a stats folder."""

    @pytest.fixture
    def db(self):
        database = create_test_db()
        yield database
        remove_test_db(database)

    @pytest.fixture
    def stats_dir(self):
        path = tempfile.mkdtemp()
        yield path
        shutil.rmtree(path, ignore_errors=True)

    @pytest.fixture
    def scanner(self, db):
        return DirectoryScanner(RunIngestor(db))

    def test_full_scan_counts(self, scanner, db, stats_dir):
        write_csv(stats_dir, KOVAAKS_FILENAME, KOVAAKS_EXPORT)
        write_csv(stats_dir, os.path.join("old", "copy.csv"), KOVAAKS_EXPORT)
        write_csv(stats_dir, "grid.csv", kill_table())

        result = scanner.scan_all(stats_dir)

        assert result.new_files == 2
        assert result.duplicates == 1
        assert result.failed == 0
        assert result.total == 3
        assert db.count_runs() == 2

    def test_rescan_finds_only_duplicates(self, scanner, stats_dir):
        write_csv(stats_dir, KOVAAKS_FILENAME, KOVAAKS_EXPORT)
        scanner.scan_all(stats_dir)

        result = scanner.scan_all(stats_dir)

        assert result.new_files == 0
        assert result.duplicates == 1

    def test_malformed_files_tolerated(self, scanner, db, stats_dir):
        with open(os.path.join(stats_dir, "binary.csv"), 'wb') as handle:
            handle.write(b'\x00\xff\xfe,,,"\n\x80\x81')
        write_csv(stats_dir, "empty.csv", "")
        write_csv(stats_dir, "grid.csv", kill_table())

        result = scanner.scan_all(stats_dir)

        assert result.failed == 0
        assert result.new_files == 3
        assert db.count_runs() == 3

    def test_incremental_skips_files_at_or_before_cutoff(self, scanner, db, stats_dir):
        cutoff = datetime(2024, 1, 5, 12, 0, 0, tzinfo=timezone.utc)
        old = write_csv(stats_dir, "old.csv", kill_table(score="1"))
        same = write_csv(stats_dir, "same.csv", kill_table(score="2"))
        new = write_csv(stats_dir, "new.csv", kill_table(score="3"))
        set_mtime(old, cutoff.timestamp() - 60)
        set_mtime(same, cutoff.timestamp())
        set_mtime(new, cutoff.timestamp() + 60)

        result = scanner.scan_since(stats_dir, cutoff)

        assert result.new_files == 1
        assert result.total == 1
        assert db.count_runs() == 1

    def test_incremental_counts_duplicates(self, scanner, stats_dir):
        cutoff = datetime.now(timezone.utc)
        path = write_csv(stats_dir, "grid.csv", kill_table())
        scanner.scan_all(stats_dir)
        set_mtime(path, time.time() + 60)

        result = scanner.scan_since(stats_dir, cutoff)

        assert result.new_files == 0
        assert result.duplicates == 1

    def test_failure_counted_and_scan_continues(self, db, stats_dir):
        class FlakyIngestor(RunIngestor):
            def upsert_run(self, path):
                if os.path.basename(path) == "bad.csv":
                    raise RuntimeError("disk on fire")
                return super().upsert_run(path)

        write_csv(stats_dir, "bad.csv", kill_table(score="1"))
        write_csv(stats_dir, "good.csv", kill_table(score="2"))

        result = DirectoryScanner(FlakyIngestor(db)).scan_all(stats_dir)

        assert result.failed == 1
        assert result.new_files == 1
        assert result.total == 1


class TestScanResult:

    def test_record(self):
        result = ScanResult()
        result.record(IngestResult(is_new=True, exists=True))
        result.record(IngestResult(is_new=False, exists=True))
        result.record(IngestResult(is_new=False, exists=True))

        assert result.to_dict() == {'new_files': 1, 'duplicates': 2, 'failed': 0, 'total': 3}

    def test_print_summary(self, capsys):
        ScanResult(new_files=2, duplicates=1, failed=0).print_summary("STARTUP SCAN")
        out = capsys.readouterr().out
        assert "STARTUP SCAN" in out
        assert "New runs imported:   2" in out
