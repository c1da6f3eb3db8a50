"""SQLite mixin for area-scoped key-value items."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from saladict_sync.storage.base import StorageArea, StorageChange, normalize_keys

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

_MISSING = object()


class SQLiteKeyValueMixin:
    """Mixin: key-value items stored as JSON text in ``kv_items``."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    if TYPE_CHECKING:
        # Provided by KeyValueStore, which follows this mixin in the MRO
        async def _emit(self, changes: list[StorageChange]) -> None: ...

    async def _read_items(self, area: StorageArea, keys: list[str] | None) -> dict[str, Any]:
        conn = self._ensure_conn()
        if keys is None:
            query = "SELECT key, value FROM kv_items WHERE area = ?"
            params: tuple[Any, ...] = (area.value,)
        elif not keys:
            return {}
        else:
            placeholders = ",".join("?" for _ in keys)
            query = f"SELECT key, value FROM kv_items WHERE area = ? AND key IN ({placeholders})"
            params = (area.value, *keys)

        items: dict[str, Any] = {}
        async with conn.execute(query, params) as cursor:
            async for row in cursor:
                try:
                    items[row["key"]] = json.loads(row["value"])
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Corrupt JSON in kv_items for %s/%s", area, row["key"])
        return items

    async def get(
        self,
        keys: str | Iterable[str] | None = None,
        area: StorageArea = StorageArea.SYNC,
    ) -> dict[str, Any]:
        return await self._read_items(StorageArea(area), normalize_keys(keys))

    async def set(self, items: dict[str, Any], area: StorageArea = StorageArea.SYNC) -> None:
        area = StorageArea(area)
        conn = self._ensure_conn()
        current = await self._read_items(area, list(items))

        changes: list[StorageChange] = []
        for key, value in items.items():
            text = json.dumps(value)
            new_value = json.loads(text)
            old_value = current.get(key, _MISSING)
            if old_value == new_value:
                continue
            await conn.execute(
                "INSERT OR REPLACE INTO kv_items (area, key, value) VALUES (?, ?, ?)",
                (area.value, key, text),
            )
            changes.append(
                StorageChange(key, area, None if old_value is _MISSING else old_value, new_value)
            )
        await conn.commit()
        await self._emit(changes)

    async def remove(
        self,
        keys: str | Iterable[str],
        area: StorageArea = StorageArea.SYNC,
    ) -> None:
        area = StorageArea(area)
        conn = self._ensure_conn()
        key_list = normalize_keys(keys) or []
        current = await self._read_items(area, key_list)

        for key in current:
            await conn.execute(
                "DELETE FROM kv_items WHERE area = ? AND key = ?",
                (area.value, key),
            )
        await conn.commit()
        await self._emit([StorageChange(key, area, value, None) for key, value in current.items()])

    async def clear(self, area: StorageArea = StorageArea.SYNC) -> None:
        area = StorageArea(area)
        current = await self._read_items(area, None)
        await self.remove(list(current), area)
