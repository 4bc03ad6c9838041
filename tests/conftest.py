# SPDX-License-Identifier: MIT
"""Pytest fixtures for mirror tests."""

import io
import json
import tarfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio
import yaml
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from pubmirror_api import APIConfig, create_app
from pubmirror_api.package_store import FileStore
from pubmirror_api.store import DocumentStore, MetaStore, SqlStore
from pubmirror_api.upstream import UpstreamClient

UPSTREAM = "https://upstream.test/"


def build_archive(
    pubspec: dict[str, Any] | str,
    readme: Optional[str] = None,
    changelog: Optional[str] = None,
    prefix: str = "",
) -> bytes:
    """Build a gzip tarball shaped like the ones ``dart pub`` uploads."""
    files = {
        "pubspec.yaml": pubspec if isinstance(pubspec, str) else yaml.safe_dump(pubspec),
        "lib/main.dart": "void main() {}\n",
    }
    if readme is not None:
        files["README.md"] = readme
    if changelog is not None:
        files["CHANGELOG.md"] = changelog

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(prefix + name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class StubUpstream:
    """In-process upstream registry for ``httpx.MockTransport``.

    Serves archives from ``archives`` (keyed by URL path) and package
    metadata from ``packages`` (keyed by name). Every request path is
    recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.archives: dict[str, bytes] = {}
        self.packages: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.offline = False

    def add_archive(self, name: str, version: str, content: bytes) -> None:
        self.archives[f"/packages/{name}/versions/{version}.tar.gz"] = content

    def add_package(self, name: str, versions: list[str]) -> None:
        self.packages[name] = {
            "name": name,
            "latest": {"version": versions[-1]},
            "versions": [
                {
                    "version": version,
                    "pubspec": {"name": name, "version": version, "description": f"{name} pkg"},
                    "published": "2024-01-01T00:00:00.000Z",
                }
                for version in versions
            ],
        }

    def archive_calls(self) -> list[str]:
        return [path for path in self.calls if path.endswith(".tar.gz")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if self.offline:
            raise httpx.ConnectError("upstream offline", request=request)
        if path in self.archives:
            return httpx.Response(200, content=self.archives[path])
        if path.startswith("/api/packages/"):
            name = path[len("/api/packages/") :]
            if name in self.packages:
                return httpx.Response(
                    200,
                    content=json.dumps(self.packages[name]).encode(),
                    headers={"content-type": "application/json"},
                )
        return httpx.Response(404, content=b"not found")


@pytest.fixture
def make_archive() -> Callable[..., bytes]:
    return build_archive


@pytest.fixture
def stub_upstream() -> StubUpstream:
    return StubUpstream()


@pytest_asyncio.fixture
async def upstream_http(stub_upstream: StubUpstream) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client whose requests are answered by the stub upstream."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(stub_upstream.handler)) as client:
        yield client


@pytest.fixture
def file_store(tmp_path: Path, upstream_http: httpx.AsyncClient) -> FileStore:
    return FileStore(tmp_path / "archives", upstream=UPSTREAM, client=upstream_http)


@pytest.fixture
def upstream_client(upstream_http: httpx.AsyncClient) -> UpstreamClient:
    return UpstreamClient(UPSTREAM, client=upstream_http)


StoreFactory = Callable[[], Awaitable[MetaStore]]


@pytest_asyncio.fixture(params=["document", "relational"])
async def store_factory(request, tmp_path: Path) -> AsyncGenerator[StoreFactory, None]:
    """Opens stores of one backend, all sharing the same database."""
    opened: list[MetaStore] = []
    mongo = AsyncMongoMockClient()

    async def factory() -> MetaStore:
        if request.param == "document":
            store: MetaStore = DocumentStore(mongo)
        else:
            (tmp_path / "db").mkdir(exist_ok=True)
            store = SqlStore(url=f"sqlite:///{tmp_path / 'db' / 'pubmirror.db'}")
        await store.open()
        opened.append(store)
        return store

    yield factory

    for store in opened:
        await store.close()


@pytest_asyncio.fixture
async def meta_store(store_factory: StoreFactory) -> MetaStore:
    """An opened metadata store, once per backend."""
    return await store_factory()


@pytest.fixture
def test_config(tmp_path: Path) -> APIConfig:
    """Test configuration writing everything below tmp_path."""
    config = APIConfig()
    config.storage.local_path = str(tmp_path / "storage")
    config.upstream.url = UPSTREAM
    config.database.backend = "relational"
    return config


@pytest_asyncio.fixture
async def app(
    test_config: APIConfig,
    upstream_http: httpx.AsyncClient,
):
    """Create test FastAPI application with a running lifespan."""
    app = create_app(
        test_config,
        package_store=FileStore(
            Path(test_config.storage.local_path), upstream=UPSTREAM, client=upstream_http
        ),
        upstream=UpstreamClient(UPSTREAM, client=upstream_http),
    )
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
