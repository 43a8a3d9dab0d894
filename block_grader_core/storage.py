"""
Session stores: key/value persistence for serialized workspaces and
session records.

Three backends share the ``SessionStore`` interface:
  - MemoryStore    process-local dict (practice mode, tests)
  - JsonFileStore  one JSON document on disk, written atomically (write → rename)
  - SqliteStore    a single ``entries`` table

Every backend failure surfaces as ``PersistenceError`` carrying the key.
"""

import json
import logging
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """String key → string value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str):
        ...

    @abstractmethod
    def clear(self, key: str):
        """Remove ``key``; removing a missing key is not an error."""

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    def get_json(self, key: str) -> Optional[dict]:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"Stored value is not valid JSON: {e}", key)

    def set_json(self, key: str, value: dict):
        self.set(key, json.dumps(value, sort_keys=True))


class MemoryStore(SessionStore):

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value

    def clear(self, key):
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)


class JsonFileStore(SessionStore):
    """All entries in one JSON file. Each write replaces the file atomically."""

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                state = json.load(f)
        except (ValueError, OSError) as e:
            raise PersistenceError(f"Store read failed: {e}")
        if not isinstance(state, dict) or not isinstance(state.get('entries'), dict):
            raise PersistenceError(f"Store file {self._path} is malformed")
        return state['entries']

    def _write_atomic(self, entries: Dict[str, str], key: str):
        tmp_path = self._path + '.tmp'
        try:
            os.makedirs(os.path.dirname(self._path) or '.', exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump({'version': 1, 'saved_at': time.time(), 'entries': entries},
                          f, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise PersistenceError(f"Store write failed: {e}", key)

    def get(self, key):
        with self._lock:
            return self._read().get(key)

    def set(self, key, value):
        with self._lock:
            entries = self._read()
            entries[key] = value
            self._write_atomic(entries, key)

    def clear(self, key):
        with self._lock:
            entries = self._read()
            if key in entries:
                del entries[key]
                self._write_atomic(entries, key)

    def keys(self):
        with self._lock:
            return sorted(self._read())


class SqliteStore(SessionStore):

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()
        try:
            if path != ':memory:':
                os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
            self._conn = sqlite3.connect(path, check_same_thread=False)
            with self._conn:
                self._conn.execute('''
                    CREATE TABLE IF NOT EXISTS entries (
                        key         TEXT PRIMARY KEY,
                        value       TEXT NOT NULL,
                        updated_at  REAL NOT NULL
                    )
                ''')
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cannot open store {path}: {e}")

    def _execute(self, key: Optional[str], sql: str, params=()) -> list:
        with self._lock:
            try:
                with self._conn:
                    return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"Store query failed: {e}", key)

    def close(self):
        with self._lock:
            self._conn.close()

    def get(self, key):
        rows = self._execute(key, 'SELECT value FROM entries WHERE key = ?', (key,))
        return rows[0][0] if rows else None

    def set(self, key, value):
        self._execute(key, '''
            INSERT INTO entries (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           updated_at = excluded.updated_at
        ''', (key, value, time.time()))

    def clear(self, key):
        self._execute(key, 'DELETE FROM entries WHERE key = ?', (key,))

    def keys(self):
        return [row[0] for row in self._execute(None, 'SELECT key FROM entries ORDER BY key')]


def open_store(path: Optional[str]) -> SessionStore:
    """Pick a backend from a path: ``.db``/``.sqlite`` → SQLite, otherwise JSON, none → memory."""
    if not path:
        return MemoryStore()
    if path.endswith(('.db', '.sqlite', '.sqlite3')):
        return SqliteStore(path)
    return JsonFileStore(path)
