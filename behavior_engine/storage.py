"""Best-effort key/value persistence for learned state.

Both backends share the same contract: a failed read yields ``None`` and a
failed write is logged and dropped. Callers fall back to empty state and never
see an exception from here.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Process-local storage. Values are kept as encoded JSON text."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable value for key %s", key)
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping save of key %s: %s", key, exc)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteStorage:
    """One row per key in a SQLite database.

    Every call opens its own connection and writes a single row, so several
    stores can share one database file without overwriting each other's keys.
    """

    def __init__(self, path: str | Path, timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.timeout = timeout

    def get_connection(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("""CREATE TABLE IF NOT EXISTS learned_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )""")
        conn.commit()
        return conn

    def get(self, key: str) -> Optional[Any]:
        try:
            conn = self.get_connection()
            try:
                row = conn.execute("SELECT value FROM learned_state WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as exc:
            logger.warning("Could not read key %s from %s: %s", key, self.path, exc)
            return None
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except ValueError:
            logger.warning("Discarding undecodable value for key %s in %s", key, self.path)
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            text = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping save of key %s: %s", key, exc)
            return
        try:
            conn = self.get_connection()
            try:
                conn.execute(
                    """INSERT INTO learned_state (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                    (key, text),
                )
                conn.commit()
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as exc:
            logger.warning("Skipping save of key %s to %s: %s", key, self.path, exc)

    def remove(self, key: str) -> None:
        try:
            conn = self.get_connection()
            try:
                conn.execute("DELETE FROM learned_state WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as exc:
            logger.warning("Skipping removal of key %s from %s: %s", key, self.path, exc)
