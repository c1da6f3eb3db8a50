"""Pytest configuration and fixtures."""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from saladict_sync.storage.memory_store import InMemoryKeyValueStore, InMemoryNotebookStorage
from saladict_sync.sync.helpers import SyncStateStore
from saladict_sync.sync.protocol import SyncConfig
from saladict_sync.utils.config import reset_config

DAV_ROOT = "/dav/"
DAV_USER = "alice"
DAV_PASSWD = "secret"


class FakeWebDAV:
    """Just enough of a WebDAV server for the notebook sync.

    ``files`` maps absolute paths to bodies and ``dirs`` holds collection
    paths (with trailing slash). Every request is recorded in ``requests``
    as (method, path, headers).
    """

    def __init__(self) -> None:
        self.dirs: set[str] = {DAV_ROOT}
        self.files: dict[str, bytes] = {}
        self.etags: dict[str, str] = {}
        self.requests: list[tuple[str, str, dict[str, str]]] = []
        self.mkcol_status = 201
        self.propfind_body: str | None = None
        self.send_etag = True
        self.base_url = ""
        self._version = 0

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    def methods(self) -> list[str]:
        return [method for method, _, _ in self.requests]

    def put_file(self, path: str, body: Any) -> str:
        """Store a file directly; dicts are JSON-encoded. Returns its etag."""
        if not isinstance(body, bytes):
            body = (body if isinstance(body, str) else json.dumps(body)).encode("utf-8")
        self._version += 1
        self.files[path] = body
        self.etags[path] = f'"v{self._version}"'
        return self.etags[path]

    def notebook(self) -> dict[str, Any]:
        return json.loads(self.files[DAV_ROOT + "Saladict/notebook.json"])

    async def handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append((request.method, request.path, dict(request.headers)))

        expected = "Basic " + base64.b64encode(f"{DAV_USER}:{DAV_PASSWD}".encode()).decode()
        if request.headers.get("Authorization") != expected:
            return web.Response(status=401, text="Unauthorized")

        handler = getattr(self, f"_do_{request.method.lower()}", None)
        if handler is None:
            return web.Response(status=405)
        result: web.StreamResponse = await handler(request)
        return result

    async def _do_propfind(self, request: web.Request) -> web.Response:
        if self.propfind_body is not None:
            return web.Response(status=207, text=self.propfind_body)

        entries = []
        for path in sorted(self.dirs):
            entries.append(
                f"<d:response><d:href>{path}</d:href><d:propstat><d:prop>"
                "<d:resourcetype><d:collection/></d:resourcetype>"
                "</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>"
            )
        for path in sorted(self.files):
            entries.append(
                f"<d:response><d:href>{path}</d:href><d:propstat><d:prop>"
                "<d:resourcetype/>"
                "</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>"
            )
        body = '<?xml version="1.0" encoding="utf-8"?><d:multistatus xmlns:d="DAV:">'
        body += "".join(entries) + "</d:multistatus>"
        return web.Response(status=207, text=body, content_type="application/xml")

    async def _do_mkcol(self, request: web.Request) -> web.Response:
        if 200 <= self.mkcol_status < 300:
            self.dirs.add(request.path.rstrip("/") + "/")
        return web.Response(status=self.mkcol_status)

    async def _do_get(self, request: web.Request) -> web.Response:
        if request.path not in self.files:
            return web.Response(status=404)
        etag = self.etags[request.path]
        if request.headers.get("If-None-Match") == etag:
            return web.Response(status=304)
        headers = {"ETag": etag} if self.send_etag else {}
        return web.Response(body=self.files[request.path], headers=headers)

    async def _do_put(self, request: web.Request) -> web.Response:
        parent = request.path.rsplit("/", 1)[0] + "/"
        if parent not in self.dirs:
            return web.Response(status=409)
        self.put_file(request.path, await request.read())
        return web.Response(status=201)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the user's environment."""
    for key in (
        "SALADICT_SYNC_DEBUG",
        "SALADICT_SYNC_DB_PATH",
        "SALADICT_SYNC_TIMEOUT",
        "SALADICT_SYNC_DIR",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_config()


@pytest.fixture
def settings() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def notebook() -> InMemoryNotebookStorage:
    return InMemoryNotebookStorage()


@pytest.fixture
def state(settings: InMemoryKeyValueStore, notebook: InMemoryNotebookStorage) -> SyncStateStore:
    return SyncStateStore(settings, notebook)


@pytest.fixture
def sync_config() -> SyncConfig:
    """Config pointing nowhere, for tests that never touch the network."""
    return SyncConfig(
        url="https://dav.example.com/", user="alice", passwd="secret", duration=60_000
    )


@pytest_asyncio.fixture
async def dav() -> AsyncGenerator[FakeWebDAV, None]:
    """A running fake WebDAV server."""
    fake = FakeWebDAV()
    server = TestServer(fake.make_app())
    await server.start_server()
    fake.base_url = str(server.make_url(DAV_ROOT))
    yield fake
    await server.close()


@pytest.fixture
def dav_config(dav: FakeWebDAV) -> SyncConfig:
    """Config for the fake server."""
    return SyncConfig(url=dav.base_url, user=DAV_USER, passwd=DAV_PASSWD, duration=60_000)


@pytest.fixture
def sample_words() -> list[dict[str, Any]]:
    return [
        {"date": 1_700_000_000_000, "text": "ephemeral", "context": "an ephemeral joy"},
        {"date": 1_700_000_100_000, "text": "serendipity", "context": ""},
        {"date": 1_700_000_200_000, "text": "ubiquitous", "context": "ubiquitous phones"},
    ]
