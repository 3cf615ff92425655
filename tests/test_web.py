# tests/test_web.py

import logging
import os
import shutil
import tempfile
import time

import pytest
from fastapi.testclient import TestClient

from aimtrack.config import IngestConfig
from aimtrack.pipeline import IngestionPipeline
from tests.helpers import KOVAAKS_EXPORT, KOVAAKS_FILENAME, kill_table, write_csv
from web.app import create_app


class TestWebHost:
    """Status, manual rescan and the new-run WebSocket feed."""

    @pytest.fixture
    def stats_dir(self):
        path = tempfile.mkdtemp()
        yield path
        shutil.rmtree(path, ignore_errors=True)

    @pytest.fixture
    def config(self, stats_dir):
        db_dir = tempfile.mkdtemp()
        yield IngestConfig(stats_dir=stats_dir, db_path=os.path.join(db_dir, 'aimtrack.db'))
        shutil.rmtree(db_dir, ignore_errors=True)

    @pytest.fixture
    def client(self, config):
        app = create_app(config, watch=False, background_startup=False)
        with TestClient(app) as test_client:
            yield test_client

    def test_status_after_startup(self, stats_dir, config):
        write_csv(stats_dir, KOVAAKS_FILENAME, KOVAAKS_EXPORT)
        app = create_app(config, watch=False, background_startup=False)

        with TestClient(app) as client:
            response = client.get("/api/status")

        assert response.status_code == 200
        data = response.json()
        assert data['stats_dir'] == stats_dir
        assert data['initial_scan_complete'] is True
        assert data['last_scan_timestamp'] is not None
        assert data['runs'] == 1
        assert data['watching'] is False
        assert data['startup_scan']['new_files'] == 1

    def test_rescan(self, client, stats_dir):
        write_csv(stats_dir, "grid.csv", kill_table())

        first = client.post("/api/rescan")
        second = client.post("/api/rescan")

        assert first.status_code == 200
        assert first.json() == {'new_files': 1, 'duplicates': 0, 'failed': 0, 'total': 1}
        assert second.json()['duplicates'] == 1

    def test_rescan_failure_returns_500(self, client):
        def broken():
            raise RuntimeError("disk gone")

        client.app.state.pipeline.rescan = broken

        response = client.post("/api/rescan")

        assert response.status_code == 500
        assert "disk gone" in response.json()['detail']

    def test_run_feed_relays_new_runs(self, client, stats_dir):
        with client.websocket_connect("/ws/runs") as ws:
            assert ws.receive_json() == {"type": "connected"}

            write_csv(stats_dir, KOVAAKS_FILENAME, KOVAAKS_EXPORT)
            assert client.post("/api/rescan").json()['new_files'] == 1

            message = ws.receive_json()

        assert message['type'] == "new-run"
        assert message['task_name'] == "Tile Frenzy"
        assert len(message['hash']) == 40
        assert message['run_id'] is not None


    def test_background_startup_failure_is_logged(self, config, monkeypatch, caplog):
        def broken(self):
            raise RuntimeError("stats folder unreadable")

        monkeypatch.setattr(IngestionPipeline, "run_startup_scan", broken)
        app = create_app(config, watch=False, background_startup=True)

        with caplog.at_level(logging.ERROR, logger="web.app"):
            with TestClient(app) as client:
                deadline = time.monotonic() + 10
                status = client.get("/api/status").json()
                while status['startup_scan'] is None and time.monotonic() < deadline:
                    time.sleep(0.05)
                    status = client.get("/api/status").json()

        assert status['startup_scan'] == {"error": "stats folder unreadable"}
        assert any("Startup scan failed" in record.getMessage() for record in caplog.records)
