"""In-memory storage backends."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from saladict_sync.storage.base import (
    NOTEBOOK_AREA,
    KeyValueStore,
    NotebookStorage,
    StorageArea,
    StorageChange,
    Word,
    normalize_keys,
    require_date,
)


def _clone(value: Any) -> Any:
    """Copy a value through JSON, like a real storage round-trip."""
    return json.loads(json.dumps(value))


class InMemoryKeyValueStore(KeyValueStore):
    """
    Key-value store held in process memory.

    Good for testing and for embedding where persistence is handled
    elsewhere. Values are copied on the way in and out.
    """

    def __init__(self) -> None:
        super().__init__()
        self._areas: dict[StorageArea, dict[str, Any]] = {area: {} for area in StorageArea}

    async def get(
        self,
        keys: str | Iterable[str] | None = None,
        area: StorageArea = StorageArea.SYNC,
    ) -> dict[str, Any]:
        data = self._areas[StorageArea(area)]
        wanted = normalize_keys(keys)
        if wanted is None:
            return _clone(data)
        return {k: _clone(data[k]) for k in wanted if k in data}

    async def set(self, items: dict[str, Any], area: StorageArea = StorageArea.SYNC) -> None:
        area = StorageArea(area)
        data = self._areas[area]
        changes: list[StorageChange] = []
        for key, value in _clone(items).items():
            old = data.get(key)
            if key in data and old == value:
                continue
            data[key] = value
            changes.append(StorageChange(key, area, _clone(old), _clone(value)))
        await self._emit(changes)

    async def remove(
        self,
        keys: str | Iterable[str],
        area: StorageArea = StorageArea.SYNC,
    ) -> None:
        area = StorageArea(area)
        data = self._areas[area]
        changes = [
            StorageChange(key, area, data.pop(key), None)
            for key in normalize_keys(keys) or []
            if key in data
        ]
        await self._emit(changes)

    async def clear(self, area: StorageArea = StorageArea.SYNC) -> None:
        area = StorageArea(area)
        await self.remove(list(self._areas[area]), area)


class InMemoryNotebookStorage(NotebookStorage):
    """Notebook words and sync meta held in process memory."""

    def __init__(self) -> None:
        self._words: dict[str, dict[Any, Word]] = {}
        self._meta: dict[str, str] = {}

    async def get_words(self, area: str = NOTEBOOK_AREA) -> list[Word]:
        words = self._words.get(area, {})
        return sorted((_clone(w) for w in words.values()), key=lambda w: w["date"], reverse=True)

    async def save_words(self, area: str, words: list[Word]) -> None:
        for word in words:
            require_date(word)
        bucket = self._words.setdefault(area, {})
        for word in words:
            bucket[word["date"]] = _clone(word)

    async def delete_words(self, area: str, dates: list[Any] | None = None) -> None:
        if dates is None:
            self._words.pop(area, None)
            return
        bucket = self._words.get(area, {})
        for date in dates:
            bucket.pop(date, None)

    async def get_sync_meta(self, service_id: str) -> str | None:
        return self._meta.get(service_id)

    async def set_sync_meta(self, service_id: str, text: str) -> None:
        self._meta[service_id] = text
