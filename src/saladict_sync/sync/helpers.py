"""Access to sync config, sync meta and the notebook through injected stores."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from saladict_sync.storage.base import NOTEBOOK_AREA, StorageArea, Word
from saladict_sync.sync.protocol import Meta, SyncConfig

if TYPE_CHECKING:
    from saladict_sync.storage.base import KeyValueStore, NotebookStorage
    from saladict_sync.storage.stream import ChangeStream

logger = logging.getLogger(__name__)

SYNC_CONFIG_KEY = "syncConfig"


class SyncStateStore:
    """
    Sync config, meta and notebook access for the sync manager.

    Config for every service lives in one ``syncConfig`` mapping in the
    ``sync`` area (keyed by service ID). Meta is stored as JSON text per
    service in the notebook storage.
    """

    def __init__(self, settings: KeyValueStore, notebook: NotebookStorage) -> None:
        self._settings = settings
        self._notebook = notebook

    @property
    def settings(self) -> KeyValueStore:
        return self._settings

    @property
    def notebook(self) -> NotebookStorage:
        return self._notebook

    # ── Config ──────────────────────────────────────────────────────

    async def get_all_sync_configs(self) -> dict[str, Any]:
        """Get the raw syncConfig mapping ({} if unset)."""
        items = await self._settings.get(SYNC_CONFIG_KEY, StorageArea.SYNC)
        configs = items.get(SYNC_CONFIG_KEY)
        return configs if isinstance(configs, dict) else {}

    async def set_sync_config(self, service_id: str, config: SyncConfig) -> None:
        """Store config for one service, keeping the other services' entries."""
        configs = await self.get_all_sync_configs()
        configs[service_id] = config.to_dict()
        await self._settings.set({SYNC_CONFIG_KEY: configs}, StorageArea.SYNC)

    async def remove_sync_config(self, service_id: str) -> None:
        configs = await self.get_all_sync_configs()
        if configs.pop(service_id, None) is not None:
            await self._settings.set({SYNC_CONFIG_KEY: configs}, StorageArea.SYNC)

    async def get_sync_config(self, service_id: str) -> SyncConfig | None:
        configs = await self.get_all_sync_configs()
        return parse_service_config(configs, service_id)

    def config_stream(self) -> ChangeStream:
        """Stream of raw syncConfig mappings: current value, then every change."""
        return self._settings.watch(SYNC_CONFIG_KEY, StorageArea.SYNC)

    # ── Meta ────────────────────────────────────────────────────────

    async def get_meta(self, service_id: str) -> Meta | None:
        text = await self._notebook.get_sync_meta(service_id)
        if not text:
            return None
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt sync meta for %s: %r", service_id, text)
            return None
        if not isinstance(data, dict):
            logger.warning("Corrupt sync meta for %s: %r", service_id, text)
            return None
        return Meta.from_dict(data)

    async def set_meta(self, service_id: str, meta: Meta) -> None:
        await self._notebook.set_sync_meta(service_id, json.dumps(meta.to_dict()))

    # ── Notebook ────────────────────────────────────────────────────

    async def get_notebook(self) -> list[Word]:
        return await self._notebook.get_words(NOTEBOOK_AREA) or []

    async def set_notebook(self, words: list[Word]) -> None:
        await self._notebook.save_words(NOTEBOOK_AREA, words)


def parse_service_config(configs: Any, service_id: str) -> SyncConfig | None:
    """Pick one service's config out of a raw syncConfig mapping.

    Returns None when the mapping or the entry is missing, or when the
    entry cannot be used (logged).
    """
    if not isinstance(configs, dict):
        return None
    raw = configs.get(service_id)
    if not raw:
        return None
    if not isinstance(raw, dict):
        logger.warning("Ignoring malformed %s config: %r", service_id, raw)
        return None
    try:
        return SyncConfig.from_dict(raw)
    except ValueError as e:
        logger.warning("Ignoring invalid %s config: %s", service_id, e)
        return None
