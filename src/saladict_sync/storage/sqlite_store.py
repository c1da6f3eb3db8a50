"""SQLite storage implementation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import aiosqlite

from saladict_sync.storage.base import KeyValueStore, NotebookStorage, StorageError
from saladict_sync.storage.sqlite_kv import SQLiteKeyValueMixin
from saladict_sync.storage.sqlite_schema import SCHEMA, SCHEMA_VERSION
from saladict_sync.storage.sqlite_words import SQLiteWordsMixin

logger = logging.getLogger(__name__)


class SQLiteStorage(
    SQLiteKeyValueMixin,
    SQLiteWordsMixin,
    KeyValueStore,
    NotebookStorage,
):
    """SQLite-based storage for settings, notebook words and sync meta.

    One database file serves both the key-value areas and the notebook,
    so the CLI and the sync loop share a single connection.

    Change listeners only see writes made through this instance.
    """

    def __init__(self, db_path: str | Path) -> None:
        super().__init__()
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> Path:
        """Path of the database file."""
        return self._db_path

    async def initialize(self) -> None:
        """Open the database connection and create the schema if needed."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")

        await self._conn.executescript(SCHEMA)

        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()
        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
        elif row["version"] > SCHEMA_VERSION:
            logger.warning(
                "Database %s has schema v%d, newer than supported v%d",
                self._db_path,
                row["version"],
                SCHEMA_VERSION,
            )
        await self._conn.commit()
        logger.debug("Opened notebook database %s", self._db_path)

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> SQLiteStorage:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _ensure_conn(self) -> aiosqlite.Connection:
        """Ensure the connection is available."""
        if self._conn is None:
            raise StorageError("Database not initialized. Call initialize() first.")
        return self._conn
