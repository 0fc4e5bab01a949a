# rx_reminder/db/local_storage.py
"""
Key/value "local storage": one string value per key, like the browser API.

The reminder collection lives under a single key as a JSON array; anything
that can hold strings by key can back it.
"""
import sqlite3
import threading
from typing import Dict, Optional


class LocalStorage:
    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryLocalStorage(LocalStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class SqliteLocalStorage(LocalStorage):
    """Stores items in a two-column table of the given SQLite connection."""

    def __init__(self, conn: sqlite3.Connection, table: str = "local_storage"):
        self._conn = conn
        self._table = table
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self._table} (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            self._conn.commit()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT value FROM {self._table} WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                f"INSERT INTO {self._table} (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            self._conn.commit()

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._conn.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
            self._conn.commit()
