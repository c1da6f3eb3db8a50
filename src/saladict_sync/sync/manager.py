"""Sync manager: keeps the local notebook and the remote file in step.

Reconciliation is last-writer-wins over the whole notebook file: a
remote file is applied only when its timestamp is strictly newer than
the meta recorded at the last successful sync, and an upload always
downloads first.

Operations run as plain sequential awaits with no locking; overlapping
calls (e.g. ``upload_now`` while the periodic loop is downloading) may
interleave their meta reads and writes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from saladict_sync.sync.helpers import SyncStateStore, parse_service_config
from saladict_sync.sync.protocol import (
    DownloadCheck,
    DownloadOutcome,
    Meta,
    NotebookFile,
    SyncConfig,
    SyncInitError,
    UploadOutcome,
)
from saladict_sync.sync.webdav import WebDAVService
from saladict_sync.utils.timeutils import now_ms

if TYPE_CHECKING:
    from saladict_sync.messaging.bus import Message, MessageBus, MessageSender

logger = logging.getLogger(__name__)


class MsgType(StrEnum):
    """Messages the sync manager answers on a message bus."""

    SYNC_SERVICE_INIT = "SYNC_SERVICE_INIT"
    SYNC_SERVICE_UPLOAD = "SYNC_SERVICE_UPLOAD"
    SYNC_SERVICE_DOWNLOAD = "SYNC_SERVICE_DOWNLOAD"


_CHECK_OUTCOMES = {
    DownloadCheck.NOT_MODIFIED: DownloadOutcome.UNCHANGED,
    DownloadCheck.STALE: DownloadOutcome.UNCHANGED,
    DownloadCheck.INVALID: DownloadOutcome.INVALID,
    DownloadCheck.FAILED: DownloadOutcome.FAILED,
}


class SyncManager:
    """
    Orchestrates initialize / upload / download for one sync service.

    Usage:
        state = SyncStateStore(settings, notebook)
        async with WebDAVService() as service:
            manager = SyncManager(state, service)
            manager.start_periodic()
            ...
            await manager.upload_now()
    """

    def __init__(
        self,
        state: SyncStateStore,
        service: WebDAVService | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """
        Args:
            state: Config, meta and notebook access
            service: Remote transport (a WebDAVService by default)
            clock: Epoch-millisecond clock used to stamp uploads
        """
        self._state = state
        self._service = service or WebDAVService()
        self._clock = clock
        self._periodic_task: asyncio.Task[None] | None = None

    @property
    def service_id(self) -> str:
        return self._service.service_id

    @property
    def state(self) -> SyncStateStore:
        return self._state

    # ── One-shot operations ─────────────────────────────────────────

    async def initialize(self, config: SyncConfig) -> None:
        """Prepare the remote side for a new config.

        Raises:
            SyncInitError: See InitFailure; EXIST means the local notebook is
                newer than the server's and the user should decide
        """
        meta = await self._state.get_meta(self.service_id)
        await self._service.initialize(config, meta)

    async def upload_now(self) -> UploadOutcome:
        """Download first, then push the whole local notebook."""
        config = await self._state.get_sync_config(self.service_id)
        if config is None:
            logger.debug("Upload notebook skipped: no %s config", self.service_id)
            return UploadOutcome.NO_CONFIG

        await self.download(config)

        words = await self._state.get_notebook()
        if not words:
            return UploadOutcome.EMPTY

        timestamp = self._clock()
        try:
            text = NotebookFile(timestamp=timestamp, words=words).to_json()
        except (TypeError, ValueError):
            logger.error("Stringify notebook failed", exc_info=True)
            return UploadOutcome.SERIALIZE_FAILED

        if not await self._service.upload(config, text):
            logger.error("Upload notebook failed. Network Error.")
            return UploadOutcome.NETWORK_FAILED

        # Upload does not learn the server's new etag
        await self._state.set_meta(self.service_id, Meta(timestamp=timestamp, etag=""))
        logger.info("Uploaded %d words to %s", len(words), self.service_id)
        return UploadOutcome.UPLOADED

    async def download_now(self) -> DownloadOutcome:
        """Run one download cycle with the stored config."""
        config = await self._state.get_sync_config(self.service_id)
        if config is None:
            logger.debug("Download notebook skipped: no %s config", self.service_id)
            return DownloadOutcome.NO_CONFIG
        return await self.download(config)

    async def download(self, config: SyncConfig) -> DownloadOutcome:
        """
        Apply the remote notebook if it is newer than the recorded meta.

        Words are written before meta, so an interrupted apply is retried
        by the next cycle.
        """
        meta = await self._state.get_meta(self.service_id) or Meta()
        check = await self._service.download_checked(config, meta)

        if check.response is None:
            outcome = _CHECK_OUTCOMES.get(check.status, DownloadOutcome.UNCHANGED)
            if outcome == DownloadOutcome.FAILED:
                logger.warning("Download from %s failed: %s", self.service_id, check.detail)
            else:
                logger.debug("Download %s: %s %s", self.service_id, outcome, check.detail)
            return outcome

        file = check.response.file
        await self._state.set_notebook(file.words)
        await self._state.set_meta(
            self.service_id,
            Meta(timestamp=file.timestamp, etag=check.response.etag),
        )
        logger.info("Applied %d remote words from %s", len(file.words), self.service_id)
        return DownloadOutcome.APPLIED

    # ── Periodic sync ───────────────────────────────────────────────

    async def run_periodic(self) -> None:
        """
        Follow the stored config and download on its interval, forever.

        Idles while this service has no config. Each config value starts an
        immediate download followed by one every ``duration`` ms, measured
        from the end of the previous cycle. A new value cancels the pending
        wait (or in-flight cycle) and starts over.
        """
        stream = self._state.config_stream()
        cycle: asyncio.Task[None] | None = None
        try:
            async for configs in stream:
                if cycle is not None:
                    await _cancel(cycle)
                    cycle = None

                config = parse_service_config(configs, self.service_id)
                if config is None:
                    logger.debug("No sync service config for %s", self.service_id)
                    continue

                logger.debug(
                    "Sync service config for %s: %s every %dms",
                    self.service_id,
                    config.url,
                    config.duration,
                )
                cycle = asyncio.create_task(self._download_loop(config))
        finally:
            stream.close()
            if cycle is not None:
                await _cancel(cycle)

    async def _download_loop(self, config: SyncConfig) -> None:
        interval = config.duration / 1000
        while True:
            try:
                await self.download(config)
            except Exception:
                logger.error("Periodic download from %s failed", self.service_id, exc_info=True)
            await asyncio.sleep(interval)

    def start_periodic(self) -> asyncio.Task[None]:
        """Run ``run_periodic`` in the background. Guards against double-start."""
        if self._periodic_task is not None and not self._periodic_task.done():
            return self._periodic_task

        task = asyncio.create_task(self.run_periodic())
        task.add_done_callback(_log_periodic_exception)
        self._periodic_task = task
        logger.info("Periodic %s sync started", self.service_id)
        return task

    async def stop_periodic(self) -> None:
        """Cancel the background loop if running."""
        if self._periodic_task is not None:
            await _cancel(self._periodic_task)
            self._periodic_task = None
            logger.debug("Periodic %s sync stopped", self.service_id)

    # ── Messaging ───────────────────────────────────────────────────

    def register_handlers(self, bus: MessageBus) -> None:
        """Answer sync messages on a bus."""
        bus.listen(self._on_init_message, MsgType.SYNC_SERVICE_INIT)
        bus.listen(self._on_upload_message, MsgType.SYNC_SERVICE_UPLOAD)
        bus.listen(self._on_download_message, MsgType.SYNC_SERVICE_DOWNLOAD)

    async def _on_init_message(self, message: Message, sender: MessageSender) -> dict[str, Any]:
        try:
            config = SyncConfig.from_dict(message.get("config") or {})
        except ValueError as e:
            return {"error": "config", "message": str(e)}

        try:
            await self.initialize(config)
        except SyncInitError as e:
            return {"error": e.reason.value, "message": str(e), **e.details}
        return {"error": None}

    async def _on_upload_message(self, message: Message, sender: MessageSender) -> dict[str, Any]:
        return {"outcome": (await self.upload_now()).value}

    async def _on_download_message(
        self, message: Message, sender: MessageSender
    ) -> dict[str, Any]:
        return {"outcome": (await self.download_now()).value}


async def _cancel(task: asyncio.Task[None]) -> None:
    if task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


def _log_periodic_exception(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from the periodic sync task."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Periodic sync task raised unhandled exception: %s", exc)
