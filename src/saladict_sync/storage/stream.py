"""Async change stream over a single storage key."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from saladict_sync.storage.base import KeyValueStore, StorageArea, StorageChange

_CLOSED = object()


class ChangeStream:
    """
    Lazy, unbounded stream of values for one key.

    The first item is the value stored when iteration starts (None if
    absent), then the new value of every later change. The listener is
    registered on construction, so a change racing with the initial read
    may be seen twice but is never missed.

    Usage:
        stream = store.watch("syncConfig")
        try:
            async for value in stream:
                ...
        finally:
            stream.close()
    """

    def __init__(self, store: KeyValueStore, key: str, area: StorageArea) -> None:
        self._store = store
        self._key = key
        self._area = area
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._started = False
        self._closed = False
        self._unsubscribe = store.listen(self._on_change, key=key, area=area)

    @property
    def closed(self) -> bool:
        """Whether the stream has been closed."""
        return self._closed

    def _on_change(self, change: StorageChange) -> None:
        if not self._closed:
            self._queue.put_nowait(change.new_value)

    def __aiter__(self) -> ChangeStream:
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration

        if not self._started:
            self._started = True
            items = await self._store.get(self._key, self._area)
            return items.get(self._key)

        value = await self._queue.get()
        if value is _CLOSED:
            raise StopAsyncIteration
        return value

    def close(self) -> None:
        """Stop listening; a pending iteration ends with StopAsyncIteration."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._queue.put_nowait(_CLOSED)
