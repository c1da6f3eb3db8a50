"""Tests for SQLiteStorage: key-value areas, words and sync meta."""

from __future__ import annotations

import pathlib
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio

from saladict_sync.storage.base import StorageArea, StorageChange, StorageError
from saladict_sync.storage.sqlite_store import SQLiteStorage

# ── Fixture ───────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def storage(tmp_path: pathlib.Path) -> AsyncGenerator[SQLiteStorage, None]:
    """Initialized SQLiteStorage in a temp directory."""
    store = SQLiteStorage(tmp_path / "notebook.db")
    await store.initialize()
    yield store
    await store.close()


# ── Lifecycle ─────────────────────────────────────────────────────────────────


class TestLifecycle:
    """Opening, closing and reopening the database."""

    async def test_use_before_initialize_raises(self, tmp_path: pathlib.Path) -> None:
        store = SQLiteStorage(tmp_path / "x.db")
        with pytest.raises(StorageError, match="not initialized"):
            await store.get_words()

    async def test_creates_parent_directory(self, tmp_path: pathlib.Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "notebook.db"
        async with SQLiteStorage(db_path) as store:
            assert store.db_path == db_path.resolve()
        assert db_path.exists()

    async def test_data_survives_reopen(self, tmp_path: pathlib.Path) -> None:
        db_path = tmp_path / "notebook.db"
        async with SQLiteStorage(db_path) as store:
            await store.set({"syncConfig": {"webdav": {"url": "https://x/"}}})
            await store.save_words("notebook", [{"date": 5, "text": "kept"}])
            await store.set_sync_meta("webdav", '{"timestamp": 5}')

        async with SQLiteStorage(db_path) as store:
            assert await store.get("syncConfig") == {
                "syncConfig": {"webdav": {"url": "https://x/"}}
            }
            assert await store.get_words("notebook") == [{"date": 5, "text": "kept"}]
            assert await store.get_sync_meta("webdav") == '{"timestamp": 5}'

    async def test_reinitialize_keeps_schema_version(self, tmp_path: pathlib.Path) -> None:
        db_path = tmp_path / "notebook.db"
        async with SQLiteStorage(db_path):
            pass
        async with SQLiteStorage(db_path) as store:
            conn = store._ensure_conn()
            async with conn.execute("SELECT COUNT(*) AS n FROM schema_version") as cursor:
                row = await cursor.fetchone()
            assert row["n"] == 1


# ── Key-value ─────────────────────────────────────────────────────────────────


class TestKeyValue:
    """get/set/remove/clear and change notifications."""

    async def test_set_get(self, storage: SQLiteStorage) -> None:
        await storage.set({"a": 1, "b": [1, "two"]})
        assert await storage.get("a") == {"a": 1}
        assert await storage.get(["b", "missing"]) == {"b": [1, "two"]}
        assert await storage.get([]) == {}
        assert await storage.get() == {"a": 1, "b": [1, "two"]}

    async def test_areas_are_separate(self, storage: SQLiteStorage) -> None:
        await storage.set({"k": "sync"}, StorageArea.SYNC)
        await storage.set({"k": "local"}, StorageArea.LOCAL)
        assert await storage.get("k", StorageArea.SYNC) == {"k": "sync"}
        assert await storage.get("k", StorageArea.LOCAL) == {"k": "local"}

    async def test_change_notifications(self, storage: SQLiteStorage) -> None:
        changes: list[StorageChange] = []
        storage.listen(changes.append, key="k")

        await storage.set({"k": 1})
        await storage.set({"k": 1})
        await storage.set({"k": 2, "other": 0})
        await storage.remove("k")

        assert changes == [
            StorageChange("k", StorageArea.SYNC, None, 1),
            StorageChange("k", StorageArea.SYNC, 1, 2),
            StorageChange("k", StorageArea.SYNC, 2, None),
        ]

    async def test_clear_only_touches_one_area(self, storage: SQLiteStorage) -> None:
        await storage.set({"a": 1, "b": 2}, StorageArea.LOCAL)
        await storage.set({"c": 3}, StorageArea.SYNC)

        await storage.clear(StorageArea.LOCAL)

        assert await storage.get(area=StorageArea.LOCAL) == {}
        assert await storage.get(area=StorageArea.SYNC) == {"c": 3}

    async def test_corrupt_value_is_skipped(self, storage: SQLiteStorage) -> None:
        conn = storage._ensure_conn()
        await conn.execute(
            "INSERT INTO kv_items (area, key, value) VALUES ('sync', 'bad', '{oops')"
        )
        await conn.commit()
        await storage.set({"good": True})

        assert await storage.get() == {"good": True}

    async def test_watch_stream(self, storage: SQLiteStorage) -> None:
        await storage.set({"cfg": "first"})
        stream = storage.watch("cfg")
        assert await anext(stream) == "first"
        await storage.set({"cfg": "second"})
        assert await anext(stream) == "second"
        stream.close()


# ── Words ─────────────────────────────────────────────────────────────────────


class TestWords:
    """Notebook words keyed by (area, date)."""

    async def test_newest_first(
        self, storage: SQLiteStorage, sample_words: list[dict[str, Any]]
    ) -> None:
        await storage.save_words("notebook", sample_words)
        words = await storage.get_words("notebook")
        assert [w["date"] for w in words] == sorted(
            (w["date"] for w in sample_words), reverse=True
        )
        assert words[0] == sample_words[-1]

    async def test_upsert_by_date(self, storage: SQLiteStorage) -> None:
        await storage.save_words("notebook", [{"date": 1, "text": "old"}, {"date": 2}])
        await storage.save_words("notebook", [{"date": 1, "text": "new"}])
        assert await storage.get_words("notebook") == [{"date": 2}, {"date": 1, "text": "new"}]

    async def test_areas_are_separate(self, storage: SQLiteStorage) -> None:
        await storage.save_words("notebook", [{"date": 1}])
        await storage.save_words("history", [{"date": 1, "text": "h"}])
        assert await storage.get_words("notebook") == [{"date": 1}]
        assert await storage.get_words("history") == [{"date": 1, "text": "h"}]

    async def test_missing_date_rejects_whole_batch(self, storage: SQLiteStorage) -> None:
        with pytest.raises(ValueError, match="no date"):
            await storage.save_words("notebook", [{"date": 1}, {"text": "x"}])
        assert await storage.get_words("notebook") == []

    async def test_delete_words(self, storage: SQLiteStorage) -> None:
        await storage.save_words("notebook", [{"date": 1}, {"date": 2}, {"date": 3}])
        await storage.delete_words("notebook", [1, 3])
        assert await storage.get_words("notebook") == [{"date": 2}]
        await storage.delete_words("notebook")
        assert await storage.get_words("notebook") == []

    async def test_unicode_round_trip(self, storage: SQLiteStorage) -> None:
        word = {"date": 9, "text": "飽和", "note": "ça va"}
        await storage.save_words("notebook", [word])
        assert await storage.get_words("notebook") == [word]


# ── Sync meta ─────────────────────────────────────────────────────────────────


class TestSyncMeta:
    """Per-service meta text."""

    async def test_missing(self, storage: SQLiteStorage) -> None:
        assert await storage.get_sync_meta("webdav") is None

    async def test_replace(self, storage: SQLiteStorage) -> None:
        await storage.set_sync_meta("webdav", "one")
        await storage.set_sync_meta("webdav", "two")
        await storage.set_sync_meta("other", "three")
        assert await storage.get_sync_meta("webdav") == "two"
        assert await storage.get_sync_meta("other") == "three"
