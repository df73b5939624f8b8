"""Local persistence: key-value storage, user accounts and history."""

from .history import HistoryStore
from .kv import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from .schema import ensure_schema
from .users import UserStore

__all__ = [
    "HistoryStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "UserStore",
    "ensure_schema",
]
