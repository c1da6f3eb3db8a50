"""Notebook synchronization with a remote WebDAV server."""

from saladict_sync.sync.helpers import SYNC_CONFIG_KEY, SyncStateStore
from saladict_sync.sync.manager import MsgType, SyncManager
from saladict_sync.sync.protocol import (
    DownloadCheck,
    DownloadCheckResult,
    DownloadOutcome,
    DownloadResponse,
    InitFailure,
    InvalidNotebookFile,
    Meta,
    NotebookFile,
    SyncConfig,
    SyncInitError,
    UploadOutcome,
)
from saladict_sync.sync.webdav import SERVICE_ID, WebDAVService, WebDAVTransportError

__all__ = [
    "SERVICE_ID",
    "SYNC_CONFIG_KEY",
    "DownloadCheck",
    "DownloadCheckResult",
    "DownloadOutcome",
    "DownloadResponse",
    "InitFailure",
    "InvalidNotebookFile",
    "Meta",
    "MsgType",
    "NotebookFile",
    "SyncConfig",
    "SyncInitError",
    "SyncManager",
    "SyncStateStore",
    "UploadOutcome",
    "WebDAVService",
    "WebDAVTransportError",
]
