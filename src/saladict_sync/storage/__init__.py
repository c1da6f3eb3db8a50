"""Storage backends for settings, notebook words and sync meta."""

from saladict_sync.storage.base import (
    NOTEBOOK_AREA,
    KeyValueStore,
    NotebookStorage,
    StorageArea,
    StorageChange,
    StorageError,
    Word,
)
from saladict_sync.storage.memory_store import InMemoryKeyValueStore, InMemoryNotebookStorage
from saladict_sync.storage.sqlite_store import SQLiteStorage
from saladict_sync.storage.stream import ChangeStream

__all__ = [
    "NOTEBOOK_AREA",
    "ChangeStream",
    "InMemoryKeyValueStore",
    "InMemoryNotebookStorage",
    "KeyValueStore",
    "NotebookStorage",
    "SQLiteStorage",
    "StorageArea",
    "StorageChange",
    "StorageError",
    "Word",
]
