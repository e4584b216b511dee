"""Durable string key-value stores shared by the fetch cache and the cart."""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Dict, List, Optional

from .errors import StorageError, StorageQuotaExceeded


class KeyValueStore:
    """String-keyed, string-valued storage with an optional byte quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def usage_bytes(self, exclude: str | None = None) -> int:
        total = 0
        for key in self.keys():
            if key == exclude:
                continue
            total += len(key) + len(self.get_item(key) or "")
        return total

    def _check_quota(self, key: str, value: str) -> None:
        if self.quota_bytes is None:
            return
        needed = self.usage_bytes(exclude=key) + len(key) + len(value)
        if needed > self.quota_bytes:
            raise StorageQuotaExceeded(
                f"Writing '{key}' needs {needed} bytes, quota is {self.quota_bytes}"
            )


class MemoryStore(KeyValueStore):
    """Process-local store; contents vanish with the process."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)


class SQLiteStore(KeyValueStore):
    """Key-value table in a single SQLite file."""

    def __init__(self, db_path: str | Path, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self.db_path = str(db_path)
        self.init_db()

    def init_db(self) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store(
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                    """
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open store at {self.db_path}: {exc}") from exc

    def get_item(self, key: str) -> Optional[str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT value FROM kv_store WHERE key=?", (key,))
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Read of '{key}' failed: {exc}") from exc
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """INSERT INTO kv_store(key, value) VALUES (?,?)
                       ON CONFLICT(key) DO UPDATE SET value=excluded.value""",
                    (key, value),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Write of '{key}' failed: {exc}") from exc

    def remove_item(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM kv_store WHERE key=?", (key,))
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Delete of '{key}' failed: {exc}") from exc

    def keys(self) -> List[str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT key FROM kv_store ORDER BY key")
                return [row[0] for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            raise StorageError(f"Listing keys failed: {exc}") from exc

    def usage_bytes(self, exclude: str | None = None) -> int:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COALESCE(SUM(LENGTH(key) + LENGTH(value)), 0) FROM kv_store WHERE key != ?",
                (exclude or "",),
            )
            return int(cursor.fetchone()[0])
