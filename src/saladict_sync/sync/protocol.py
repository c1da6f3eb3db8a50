"""Sync data structures: config, meta, the remote notebook file and outcomes."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from saladict_sync.storage.base import Word

# Epoch milliseconds; floats keep their fraction
Timestamp = int | float


class InitFailure(StrEnum):
    """Why remote initialization was refused."""

    NETWORK = "network"  # PROPFIND could not complete
    PARSE = "parse"  # PROPFIND body is not a multistatus document
    DIR = "dir"  # Saladict/ exists but is not a collection
    MKCOL = "mkcol"  # Saladict/ could not be created
    EXIST = "exist"  # local notebook is newer than the remote file


class DownloadCheck(StrEnum):
    """Result of inspecting the remote notebook file."""

    CHANGED = "changed"
    NOT_MODIFIED = "not_modified"  # HTTP 304
    STALE = "stale"  # remote is not newer than local meta
    INVALID = "invalid"  # body unusable, local state kept
    FAILED = "failed"  # request did not complete


class DownloadOutcome(StrEnum):
    """What a download cycle did to local state."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    INVALID = "invalid"
    FAILED = "failed"
    NO_CONFIG = "no_config"


class UploadOutcome(StrEnum):
    """What an upload did."""

    UPLOADED = "uploaded"
    NO_CONFIG = "no_config"
    EMPTY = "empty"
    SERIALIZE_FAILED = "serialize_failed"
    NETWORK_FAILED = "network_failed"


class SyncInitError(Exception):
    """Remote initialization failed; ``reason`` tells the caller what to ask the user."""

    def __init__(self, reason: InitFailure, message: str = "", **details: Any) -> None:
        super().__init__(message or f"Sync service initialization failed: {reason}")
        self.reason = reason
        self.details = details


class InvalidNotebookFile(ValueError):
    """The remote notebook file is not usable."""


@dataclass(frozen=True)
class SyncConfig:
    """Connection settings for one sync service."""

    url: str  # Server address, ends with '/'
    user: str
    passwd: str
    duration: int  # Polling interval in ms

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build from a stored mapping, appending the trailing slash if missing.

        Raises:
            ValueError: If url is empty or duration is not a positive number
        """
        url = str(data.get("url") or "")
        if not url:
            raise ValueError("Sync config requires a url")
        if not url.endswith("/"):
            url += "/"

        try:
            duration = int(data.get("duration", 0))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid sync duration: {data.get('duration')!r}") from e
        if duration <= 0:
            raise ValueError(f"Sync duration must be positive, got {duration}")

        return cls(
            url=url,
            user=str(data.get("user", "")),
            passwd=str(data.get("passwd", "")),
            duration=duration,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "user": self.user,
            "passwd": self.passwd,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class Meta:
    """Fingerprint of the last remote state reconciled with."""

    etag: str | None = None
    timestamp: Timestamp | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Meta:
        etag = data.get("etag")
        timestamp = data.get("timestamp")
        return cls(
            etag=etag if isinstance(etag, str) else None,
            timestamp=_as_timestamp(timestamp),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.etag is not None:
            data["etag"] = self.etag
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data


@dataclass(frozen=True)
class NotebookFile:
    """The remote ``notebook.json`` document."""

    timestamp: Timestamp | None
    words: list[Word] = field(default_factory=list)

    def to_json(self) -> str:
        """Serialize for upload.

        Raises:
            TypeError / ValueError: If a word is not JSON-serializable
        """
        return json.dumps({"timestamp": self.timestamp, "words": self.words}, allow_nan=False)

    @classmethod
    def from_json(cls, text: str) -> NotebookFile:
        """Parse and shallow-validate a downloaded document.

        A word only has to be a mapping whose ``date`` is a positive finite
        number. ``NaN`` and ``Infinity`` literals are rejected.

        Raises:
            InvalidNotebookFile: If the text is not a usable notebook file
        """
        try:
            data = json.loads(text, parse_constant=_reject_constant)
        except (ValueError, TypeError) as e:
            raise InvalidNotebookFile(f"Not JSON: {e}") from e

        if not isinstance(data, dict):
            raise InvalidNotebookFile("Top-level value is not an object")

        words = data.get("words")
        if not isinstance(words, list):
            raise InvalidNotebookFile("'words' is not an array")
        if any(not isinstance(w, dict) or not _is_positive_number(w.get("date")) for w in words):
            raise InvalidNotebookFile("Incorrect words: every word needs a date")

        return cls(timestamp=_as_timestamp(data.get("timestamp")), words=words)


@dataclass(frozen=True)
class DownloadResponse:
    """A newer remote file plus the ETag it was served with ('' if none)."""

    file: NotebookFile
    etag: str = ""


@dataclass(frozen=True)
class DownloadCheckResult:
    """Detailed result of a conditional download."""

    status: DownloadCheck
    response: DownloadResponse | None = None
    detail: str = ""


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return value > 0


def _as_timestamp(value: Any) -> Timestamp | None:
    """Accept positive finite numbers only; anything else counts as no timestamp."""
    return value if _is_positive_number(value) else None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name}")
