# aimtrack/database.py

import json
import logging
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

RUN_COLUMNS = (
    'filename', 'path', 'played_at', 'score', 'accuracy', 'hits', 'misses', 'shots',
    'duration', 'score_per_min', 'avg_ttk', 'overshots', 'reloads', 'fps_avg',
    'meta', 'is_practice',
)


class Database:
    """SQLite storage for tasks, runs and app settings."""

    def __init__(self, db_path: str = 'data/aimtrack.db'):
        self.db_path = self._resolve_db_path(db_path)
        self.conn = None
        # One connection is shared by the watcher worker and manual rescans
        self._lock = threading.RLock()
        self.init_database()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        """Return an absolute database path anchored to project root when relative."""
        path = Path(db_path)
        if path.is_absolute():
            return str(path)

        project_root = Path(__file__).resolve().parents[1]
        return str(project_root / path)

    def init_database(self):
        """Create tables if they don't exist."""
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise RuntimeError(f"Failed to create database directory '{db_dir}': {e}")

            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    name            TEXT UNIQUE NOT NULL,
                    created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # hash is the content digest of the source CSV and the only dedupe key
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id         INTEGER NOT NULL,
                    hash            TEXT NOT NULL,
                    filename        TEXT,
                    path            TEXT,
                    played_at       TEXT,
                    score           REAL,
                    accuracy        REAL,
                    hits            INTEGER,
                    misses          INTEGER,
                    shots           INTEGER,
                    duration        REAL,
                    score_per_min   REAL,
                    avg_ttk         REAL,
                    overshots       INTEGER,
                    reloads         INTEGER,
                    fps_avg         REAL,
                    meta            TEXT,
                    is_practice     INTEGER DEFAULT 0,
                    created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                    FOREIGN KEY (task_id) REFERENCES tasks(id)
                )
            """)

            cursor.execute("CREATE UNIQUE INDEX IF NOT EXISTS runs_hash_idx ON runs (hash)")
            cursor.execute("CREATE INDEX IF NOT EXISTS runs_task_time_idx ON runs (task_id, played_at)")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS app_settings (
                    key             TEXT PRIMARY KEY,
                    value           TEXT,
                    updated_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            self._commit_with_retry(context="init schema commit")
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        raise RuntimeError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    logger.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    # --- Tasks ---

    def find_or_create_task(self, name: str) -> int:
        """Return the id of the task called `name`, creating it on first sight."""
        with self._lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute("INSERT OR IGNORE INTO tasks (name) VALUES (?)", (name,))
                cursor.execute("SELECT id FROM tasks WHERE name = ?", (name,))
                row = cursor.fetchone()
                self._commit_with_retry(context=f"create task '{name}'")
                return row["id"]
            except sqlite3.Error as e:
                self.conn.rollback()
                raise RuntimeError(f"Failed to find or create task '{name}': {e}")

    def get_task_names(self) -> List[str]:
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT name FROM tasks ORDER BY name")
            return [row["name"] for row in cursor.fetchall()]

    # --- Runs ---

    def insert_run_if_absent(self, content_hash: str, task_id: int, fields: Dict[str, Any]) -> bool:
        """
        Insert a run unless a run with the same content hash already exists.

        The existence check and the insert are one INSERT OR IGNORE statement
        against the unique hash index, so concurrent callers racing on the
        same file cannot both insert.

        Args:
            content_hash: Digest of the source file content
            task_id: Owning task
            fields: Column values; keys outside RUN_COLUMNS are ignored

        Returns:
            True if a new row was written, False if the hash was already stored
        """
        values = dict(fields)
        if isinstance(values.get('meta'), dict):
            values['meta'] = json.dumps(values['meta'])
        columns = [column for column in RUN_COLUMNS if column in values]
        placeholders = ", ".join("?" for _ in range(len(columns) + 2))

        with self._lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute(
                    f"INSERT OR IGNORE INTO runs (task_id, hash, {', '.join(columns)}) "
                    f"VALUES ({placeholders})",
                    [task_id, content_hash] + [values[column] for column in columns],
                )
                inserted = cursor.rowcount > 0
                self._commit_with_retry(context="insert run")
                return inserted
            except sqlite3.Error as e:
                self.conn.rollback()
                raise RuntimeError(f"Failed to insert run {content_hash}: {e}")

    def get_run_by_hash(self, content_hash: str) -> Optional[Dict]:
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT r.*, t.name AS task_name
                FROM runs r
                JOIN tasks t ON r.task_id = t.id
                WHERE r.hash = ?
            """, (content_hash,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_runs_for_task(self, task_name: str) -> List[Dict]:
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("""
                SELECT r.*
                FROM runs r
                JOIN tasks t ON r.task_id = t.id
                WHERE t.name = ?
                ORDER BY r.played_at
            """, (task_name,))
            return [dict(row) for row in cursor.fetchall()]

    def count_runs(self) -> int:
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT COUNT(*) AS n FROM runs")
            return cursor.fetchone()["n"]

    # --- Settings ---

    def get_setting(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute("SELECT value FROM app_settings WHERE key = ?", (key,))
                row = cursor.fetchone()
            except sqlite3.Error as e:
                logger.error("Error reading setting %s: %s", key, e)
                return default
        return row["value"] if row and row["value"] is not None else default

    def get_setting_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_setting(key)
        if value is None:
            return default
        return value.strip().lower() in ('true', '1')

    def set_setting(self, key: str, value: Any) -> None:
        with self._lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute("""
                    INSERT INTO app_settings (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                """, (key, str(value)))
                self._commit_with_retry(context=f"set setting '{key}'")
            except sqlite3.Error as e:
                self.conn.rollback()
                raise RuntimeError(f"Failed to set setting '{key}': {e}")

    def close(self):
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
