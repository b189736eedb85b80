"""Concrete implementations for durable record storage."""

import os
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

SESSIONS_KEY = "gemini_chat_sessions"
SETTINGS_KEY = "gemini_chat_settings"


class Storage(ABC):
    """Interface for reading and writing named, serialized records."""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Returns the stored data for ``key``, or None if it was never written."""
        pass

    @abstractmethod
    def write(self, key: str, data: str) -> None:
        """Replaces the stored data for ``key``."""
        pass


class InMemory(Storage):
    """Keeps records in a dictionary for the lifetime of the process."""

    def __init__(self):
        self._records: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._records.get(key)

    def write(self, key: str, data: str) -> None:
        self._records[key] = data


class File(Storage):
    """Stores each record as ``<key>.json`` inside a base directory.

    Writes go to a temporary file in the same directory which then replaces
    the record, so a crash mid-write never leaves a truncated record behind.
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, data: str) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.base_dir, prefix=f".{key}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class SQLite(Storage):
    """Stores records in a single-table SQLite database."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS records (
                        key TEXT PRIMARY KEY,
                        data TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        # The loop thread and test threads may both touch the database.
        return sqlite3.connect(self.db_path, check_same_thread=False)

    def read(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT data FROM records WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def write(self, key: str, data: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO records (key, data, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        data = excluded.data,
                        updated_at = excluded.updated_at
                    """,
                    (key, data, datetime.now(timezone.utc).isoformat()),
                )
        finally:
            conn.close()
