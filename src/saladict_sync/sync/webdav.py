"""WebDAV transport for the notebook file."""

from __future__ import annotations

import base64
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from saladict_sync.sync.protocol import (
    DownloadCheck,
    DownloadCheckResult,
    DownloadResponse,
    InitFailure,
    InvalidNotebookFile,
    Meta,
    NotebookFile,
    SyncConfig,
    SyncInitError,
)

logger = logging.getLogger(__name__)

SERVICE_ID = "webdav"

DIR_NAME = "Saladict"
FILE_PATH = f"{DIR_NAME}/notebook.json"


class WebDAVTransportError(Exception):
    """A WebDAV request could not be completed."""


@dataclass(frozen=True)
class DavResponse:
    """The parts of an HTTP response the sync flow looks at."""

    status: int
    text: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class WebDAVService:
    """
    Notebook transport against a WebDAV server.

    Remote layout is ``<url>Saladict/notebook.json``. Every request
    carries HTTP Basic auth built from the config.

    Usage:
        async with WebDAVService() as service:
            await service.initialize(config)
            response = await service.download_if_changed(config, meta)
    """

    service_id = SERVICE_ID

    def __init__(self, *, timeout: float = 30.0) -> None:
        """
        Initialize the transport.

        Args:
            timeout: Total timeout per request in seconds
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> WebDAVService:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        config: SyncConfig,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> DavResponse:
        """Make an authenticated request.

        Raises:
            WebDAVTransportError: If the request could not be completed
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

        request_headers = {**(headers or {}), "Authorization": basic_auth_header(config)}

        try:
            async with self._session.request(
                method,
                url,
                headers=request_headers,
                data=data,
            ) as response:
                body = await response.read()
                return DavResponse(
                    status=response.status,
                    text=body.decode("utf-8", errors="replace"),
                    headers=dict(response.headers),
                )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise WebDAVTransportError(f"{method} {url} failed: {e!r}") from e

    # ── Operations ──────────────────────────────────────────────────

    async def initialize(self, config: SyncConfig, meta: Meta | None = None) -> None:
        """
        Make sure the Saladict directory exists on the server.

        Creates the directory when missing. When it already exists and
        local meta has a timestamp, checks whether the remote file is
        older than what was last reconciled.

        Args:
            config: Server settings
            meta: Locally stored meta, if any

        Raises:
            SyncInitError: With reason network, parse, dir, mkcol or exist
        """
        try:
            response = await self._request(
                "PROPFIND",
                config.url,
                config,
                headers={
                    "Content-Type": 'application/xml; charset="utf-8"',
                    "Depth": "2",
                },
            )
        except WebDAVTransportError as e:
            raise SyncInitError(InitFailure.NETWORK, str(e)) from e

        try:
            entry = find_directory_entry(response.text, DIR_NAME)
        except ET.ParseError as e:
            raise SyncInitError(
                InitFailure.PARSE,
                f"PROPFIND response is not XML (HTTP {response.status})",
                status=response.status,
            ) from e

        if entry is None:
            await self._create_directory(config)
            return

        href, is_collection = entry
        if not is_collection:
            raise SyncInitError(
                InitFailure.DIR,
                f"{href} exists on the server but is not a directory",
                href=href,
            )

        if meta and meta.timestamp:
            # Etag only: an older remote file must come back to be compared
            check = await self.download_checked(config, Meta(etag=meta.etag))
            remote = check.response.file.timestamp if check.response else None
            if remote is not None and meta.timestamp > remote:
                raise SyncInitError(
                    InitFailure.EXIST,
                    "Local notebook is newer than the one on the server",
                    local_timestamp=meta.timestamp,
                    remote_timestamp=remote,
                )

    async def _create_directory(self, config: SyncConfig) -> None:
        url = config.url + DIR_NAME
        try:
            response = await self._request("MKCOL", url, config)
        except WebDAVTransportError as e:
            raise SyncInitError(InitFailure.MKCOL, str(e)) from e

        if not response.ok:
            raise SyncInitError(
                InitFailure.MKCOL,
                f"Cannot create {url}: HTTP {response.status}",
                status=response.status,
            )
        logger.info("Created %s", url)

    async def upload(self, config: SyncConfig, text: str) -> bool:
        """PUT the notebook text. Returns True on a 2xx response."""
        url = config.url + FILE_PATH
        try:
            response = await self._request(
                "PUT",
                url,
                config,
                headers={"Content-Type": "application/json; charset=utf-8"},
                data=text.encode("utf-8"),
            )
        except WebDAVTransportError as e:
            logger.debug("Upload failed: %s", e)
            return False

        if not response.ok:
            logger.debug("Upload to %s rejected: HTTP %d", url, response.status)
        return response.ok

    async def download_if_changed(
        self, config: SyncConfig, meta: Meta
    ) -> DownloadResponse | None:
        """Download the notebook file if it is newer than ``meta``, else None."""
        check = await self.download_checked(config, meta)
        return check.response

    async def download_checked(self, config: SyncConfig, meta: Meta) -> DownloadCheckResult:
        """
        Conditionally download the notebook file and judge it against ``meta``.

        Only a valid file strictly newer than ``meta.timestamp`` comes back
        as CHANGED. Everything else is reported without raising.
        """
        url = config.url + FILE_PATH
        headers: dict[str, str] = {}
        if meta.etag:
            headers["If-None-Match"] = meta.etag
            headers["If-Modified-Since"] = meta.etag

        try:
            response = await self._request("GET", url, config, headers=headers)
        except WebDAVTransportError as e:
            logger.debug("Download failed: %s", e)
            return DownloadCheckResult(DownloadCheck.FAILED, detail=str(e))

        if response.status == 304:
            return DownloadCheckResult(DownloadCheck.NOT_MODIFIED)

        if not response.ok:
            logger.debug("Download of %s returned HTTP %d", url, response.status)
            return DownloadCheckResult(DownloadCheck.INVALID, detail=f"HTTP {response.status}")

        try:
            file = NotebookFile.from_json(response.text)
        except InvalidNotebookFile as e:
            logger.warning("Parse webdav notebook.json error: %s", e)
            return DownloadCheckResult(DownloadCheck.INVALID, detail=str(e))

        if meta.timestamp:
            if not file.timestamp:
                logger.warning("webdav notebook.json has no timestamp")
                return DownloadCheckResult(DownloadCheck.INVALID, detail="no timestamp")
            if file.timestamp <= meta.timestamp:
                return DownloadCheckResult(DownloadCheck.STALE)

        etag = response.header("ETag")
        if not etag:
            logger.debug("webdav notebook.json served without ETag")

        return DownloadCheckResult(
            DownloadCheck.CHANGED,
            response=DownloadResponse(file=file, etag=etag or ""),
        )


def basic_auth_header(config: SyncConfig) -> str:
    """``Authorization`` value for HTTP Basic auth, UTF-8 encoded credentials."""
    token = base64.b64encode(f"{config.user}:{config.passwd}".encode()).decode("ascii")
    return f"Basic {token}"


def _local_name(tag: Any) -> str:
    """Strip the namespace from an ElementTree tag."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def find_directory_entry(text: str, name: str) -> tuple[str, bool] | None:
    """
    Look for a directory in a PROPFIND multistatus body.

    Args:
        text: Response body
        name: Directory name, matched against the end of each href

    Returns:
        (href, is_collection) for the first matching response, or None

    Raises:
        ET.ParseError: If the body is not well-formed XML
    """
    root = ET.fromstring(text)
    suffix = f"/{name}/"

    for element in root.iter():
        if _local_name(element.tag) != "response":
            continue

        href = next(
            (
                (child.text or "").strip()
                for child in element.iter()
                if _local_name(child.tag) == "href"
            ),
            "",
        )
        if not href.endswith(suffix):
            continue

        is_collection = any(
            _local_name(child.tag) == "collection"
            for resourcetype in element.iter()
            if _local_name(resourcetype.tag) == "resourcetype"
            for child in resourcetype.iter()
        )
        return href, is_collection

    return None
