"""Versioned key-value storage holding JSON-serialized collections.

Each key holds one JSON array (the user list, the history list). Writers do a
read-modify-write guarded by the entry's version, so two processes sharing the
same database file cannot silently overwrite each other's changes.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from ..errors import StorageConflictError
from .schema import ensure_schema

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal string store with compare-and-set semantics."""

    @abstractmethod
    def get(self, key: str) -> tuple[str | None, int]:
        """Return ``(value, version)``; a missing key is ``(None, 0)``."""
        ...

    @abstractmethod
    def compare_and_set(self, key: str, value: str, expected_version: int) -> bool:
        """Write ``value`` only if the stored version still equals ``expected_version``."""
        ...

    def close(self) -> None:
        pass


class SQLiteKeyValueStore(KeyValueStore):
    """Manages the kv_store table."""

    def __init__(self, db_path: str | Path = "~/.config/lenslingua/lenslingua.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def get(self, key: str) -> tuple[str | None, int]:
        try:
            conn = self._get_conn()
            row = conn.execute(
                "SELECT value, version FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.DatabaseError as e:
            logger.error("Could not read %s from %s: %s", key, self._db_path, e)
            return None, 0
        if row is None:
            return None, 0
        return row["value"], row["version"]

    def compare_and_set(self, key: str, value: str, expected_version: int) -> bool:
        conn = self._get_conn()
        try:
            if expected_version == 0:
                cur = conn.execute(
                    "INSERT OR IGNORE INTO kv_store (key, value, version) VALUES (?, ?, 1)",
                    (key, value),
                )
            else:
                cur = conn.execute(
                    """UPDATE kv_store
                       SET value = ?, version = version + 1,
                           updated_at = datetime('now')
                       WHERE key = ? AND version = ?""",
                    (value, key, expected_version),
                )
            conn.commit()
        except sqlite3.OperationalError as e:
            # Typically "database is locked"; the caller retries like a lost race.
            conn.rollback()
            logger.warning("Write to %s failed: %s", key, e)
            return False
        return cur.rowcount == 1

    def put_raw(self, key: str, value: str) -> None:
        """Overwrite an entry unconditionally (imports, repairs, tests)."""
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO kv_store (key, value, version) VALUES (?, ?, 1)
               ON CONFLICT(key) DO UPDATE SET
                 value=excluded.value,
                 version=kv_store.version + 1,
                 updated_at=datetime('now')""",
            (key, value),
        )
        conn.commit()


class MemoryKeyValueStore(KeyValueStore):
    """In-process store, handy for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, tuple[str, int]] = {
            k: (v, 1) for k, v in (initial or {}).items()
        }

    def get(self, key: str) -> tuple[str | None, int]:
        if key not in self._data:
            return None, 0
        return self._data[key]

    def compare_and_set(self, key: str, value: str, expected_version: int) -> bool:
        _, current = self.get(key)
        if current != expected_version:
            return False
        self._data[key] = (value, current + 1)
        return True

    def put_raw(self, key: str, value: str) -> None:
        _, current = self.get(key)
        self._data[key] = (value, current + 1)


def load_json_list(store: KeyValueStore, key: str) -> tuple[list, int]:
    """Read a JSON array entry.

    A missing key, malformed JSON or a non-array value all read as an empty
    list; corruption is logged, never raised.
    """
    raw, version = store.get(key)
    if not raw:
        return [], version
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error("Failed to parse stored %s: %s", key, e)
        return [], version
    if not isinstance(parsed, list):
        logger.error("Stored %s is not a JSON array; treating as empty", key)
        return [], version
    return parsed, version


def update_json_list(
    store: KeyValueStore,
    key: str,
    mutate: Callable[[list], tuple[list | None, Any]],
    *,
    max_attempts: int = 5,
) -> Any:
    """Apply ``mutate`` to the stored list and write it back atomically.

    ``mutate`` receives the current list and returns ``(new_list, result)``;
    a ``new_list`` of None means nothing changed and nothing is written.
    On a version conflict the whole read-modify-write is repeated.

    Raises:
        StorageConflictError: If every attempt lost the race.
    """
    for attempt in range(1, max_attempts + 1):
        records, version = load_json_list(store, key)
        new_records, result = mutate(records)
        if new_records is None:
            return result
        payload = json.dumps(new_records, ensure_ascii=False)
        if store.compare_and_set(key, payload, version):
            return result
        logger.debug("Write conflict on %s (attempt %d/%d)", key, attempt, max_attempts)
    raise StorageConflictError()
