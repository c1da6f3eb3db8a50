"""Abstract storage interfaces for settings, notebook words and sync meta."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from saladict_sync.storage.stream import ChangeStream

logger = logging.getLogger(__name__)

Word = dict[str, Any]

NOTEBOOK_AREA = "notebook"


class StorageArea(StrEnum):
    """Key-value storage area."""

    SYNC = "sync"
    LOCAL = "local"


class StorageError(Exception):
    """Raised when a storage backend cannot serve a request."""


@dataclass(frozen=True)
class StorageChange:
    """A single key change in a storage area."""

    key: str
    area: StorageArea
    old_value: Any = None
    new_value: Any = None


ChangeListener = Callable[[StorageChange], Any]


@dataclass(frozen=True)
class _Subscription:
    callback: ChangeListener
    key: str | None
    area: StorageArea | None

    def matches(self, change: StorageChange) -> bool:
        if self.area is not None and change.area != self.area:
            return False
        return self.key is None or change.key == self.key


def normalize_keys(keys: str | Iterable[str] | None) -> list[str] | None:
    """Turn a key argument into a list, or None for "all keys"."""
    if keys is None:
        return None
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class KeyValueStore(ABC):
    """
    Area-scoped key-value storage with change notifications.

    Values must be JSON-serializable. Backends implement the four data
    operations and report what changed through ``_emit``; listener
    bookkeeping lives here.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    @abstractmethod
    async def get(
        self,
        keys: str | Iterable[str] | None = None,
        area: StorageArea = StorageArea.SYNC,
    ) -> dict[str, Any]:
        """
        Read items from an area.

        Args:
            keys: A key, several keys, or None for every key in the area
            area: Storage area to read from

        Returns:
            Mapping of the requested keys that exist
        """
        ...

    @abstractmethod
    async def set(self, items: dict[str, Any], area: StorageArea = StorageArea.SYNC) -> None:
        """Write items to an area, notifying listeners of changed keys."""
        ...

    @abstractmethod
    async def remove(
        self,
        keys: str | Iterable[str],
        area: StorageArea = StorageArea.SYNC,
    ) -> None:
        """Remove keys from an area, notifying listeners."""
        ...

    @abstractmethod
    async def clear(self, area: StorageArea = StorageArea.SYNC) -> None:
        """Remove every key from an area, notifying listeners."""
        ...

    def listen(
        self,
        callback: ChangeListener,
        *,
        key: str | None = None,
        area: StorageArea | None = None,
    ) -> Callable[[], None]:
        """
        Register a change listener.

        Args:
            callback: Called with a StorageChange; may be a coroutine function
            key: Only report changes to this key (all keys if None)
            area: Only report changes in this area (all areas if None)

        Returns:
            A function that removes this registration
        """
        subscription = _Subscription(callback, key, area)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def off(self, callback: ChangeListener) -> None:
        """Remove every registration of a listener."""
        self._subscriptions = [s for s in self._subscriptions if s.callback is not callback]

    def watch(self, key: str, area: StorageArea = StorageArea.SYNC) -> ChangeStream:
        """Stream the current value of ``key`` followed by every new value."""
        from saladict_sync.storage.stream import ChangeStream

        return ChangeStream(self, key, area)

    async def _emit(self, changes: list[StorageChange]) -> None:
        """Dispatch changes to matching listeners; listener errors are logged."""
        for change in changes:
            # Copy so listeners can unsubscribe while being called
            for subscription in list(self._subscriptions):
                if not subscription.matches(change):
                    continue
                try:
                    result = subscription.callback(change)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception:
                    logger.warning(
                        "Storage listener failed for %s/%s", change.area, change.key, exc_info=True
                    )


class NotebookStorage(ABC):
    """
    Word store plus the per-service sync meta records.

    Words are keyed by their ``date`` field: saving a word whose date is
    already stored replaces it.
    """

    @abstractmethod
    async def get_words(self, area: str = NOTEBOOK_AREA) -> list[Word]:
        """Get all words in an area, newest first."""
        ...

    @abstractmethod
    async def save_words(self, area: str, words: list[Word]) -> None:
        """
        Insert or replace words in an area.

        Raises:
            ValueError: If a word has no ``date``
        """
        ...

    @abstractmethod
    async def delete_words(self, area: str, dates: list[Any] | None = None) -> None:
        """Delete words by date, or every word in the area if dates is None."""
        ...

    @abstractmethod
    async def get_sync_meta(self, service_id: str) -> str | None:
        """Get the raw meta text stored for a sync service."""
        ...

    @abstractmethod
    async def set_sync_meta(self, service_id: str, text: str) -> None:
        """Store the raw meta text for a sync service."""
        ...


def require_date(word: Word) -> Any:
    """Return a word's date or raise ValueError."""
    date = word.get("date")
    if not date:
        raise ValueError(f"Word has no date: {word!r}")
    return date
