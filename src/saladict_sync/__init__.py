"""saladict-sync - keep a Saladict notebook in sync with a WebDAV server."""

from saladict_sync.sync import (
    InitFailure,
    Meta,
    NotebookFile,
    SyncConfig,
    SyncInitError,
    SyncManager,
    SyncStateStore,
    WebDAVService,
)

__version__ = "0.3.0"

__all__ = [
    "InitFailure",
    "Meta",
    "NotebookFile",
    "SyncConfig",
    "SyncInitError",
    "SyncManager",
    "SyncStateStore",
    "WebDAVService",
    "__version__",
]
