# SPDX-License-Identifier: MIT
"""Tests for the filesystem archive store and its upstream cache fill."""

import asyncio
import gzip

import aiofiles.os
import httpx
import pytest

from pubmirror_api.package_store import (
    FileStore,
    TarballNotFoundError,
    UnsafeArchivePathError,
    default_file_path,
)

UPSTREAM = "https://upstream.test/"
ARCHIVE = gzip.compress(b"bar 2.0.0 archive contents")


async def read_all(store: FileStore, name: str, version: str) -> bytes:
    return b"".join([chunk async for chunk in store.download(name, version)])


class TestUploadDownload:
    """Local archive storage."""

    @pytest.mark.asyncio
    async def test_roundtrip(self, file_store):
        await file_store.upload("foo", "1.0.0", ARCHIVE)

        assert await read_all(file_store, "foo", "1.0.0") == ARCHIVE
        assert await file_store.has_cached_file("foo", "1.0.0")

    @pytest.mark.asyncio
    async def test_missing_archive_raises_before_iteration(self, file_store):
        with pytest.raises(TarballNotFoundError):
            file_store.download("foo", "9.9.9")

    @pytest.mark.asyncio
    async def test_non_gzip_file_is_not_cached(self, file_store):
        await file_store.upload("foo", "1.0.0", b"plain text")

        assert not await file_store.has_cached_file("foo", "1.0.0")

    @pytest.mark.asyncio
    async def test_custom_file_layout(self, tmp_path):
        store = FileStore(tmp_path, get_file_path=lambda name, version: f"{name}/{version}.tgz")
        try:
            await store.upload("foo", "1.0.0", ARCHIVE)
            assert (tmp_path / "foo" / "1.0.0.tgz").read_bytes() == ARCHIVE
        finally:
            await store.aclose()

    def test_default_layout(self):
        assert default_file_path("foo", "1.0.0") == "foo-1.0.0.tar.gz"

    def test_upstream_url(self, file_store):
        assert (
            file_store.upstream_url("bar", "2.0.0")
            == "https://upstream.test/packages/bar/versions/2.0.0.tar.gz"
        )


class TestDownloadAndCache:
    """Filling the cache from upstream."""

    @pytest.mark.asyncio
    async def test_fetches_once_then_serves_locally(self, file_store, stub_upstream):
        stub_upstream.add_archive("bar", "2.0.0", ARCHIVE)

        assert await file_store.download_and_cache("bar", "2.0.0")
        assert await file_store.download_and_cache("bar", "2.0.0")

        assert stub_upstream.archive_calls() == ["/packages/bar/versions/2.0.0.tar.gz"]
        assert await read_all(file_store, "bar", "2.0.0") == ARCHIVE

    @pytest.mark.asyncio
    async def test_upstream_404_leaves_nothing(self, file_store, tmp_path):
        assert not await file_store.download_and_cache("bar", "2.0.0")

        assert not await file_store.has_cached_file("bar", "2.0.0")
        assert not list((tmp_path / "archives").glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_non_gzip_body_is_rejected(self, file_store, stub_upstream, tmp_path):
        stub_upstream.add_archive("bar", "2.0.0", b"<html>maintenance</html>")

        assert not await file_store.download_and_cache("bar", "2.0.0")

        archives = tmp_path / "archives"
        assert not file_store.path_for("bar", "2.0.0").exists()
        assert not list(archives.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_offline_upstream_returns_false(self, file_store, stub_upstream):
        stub_upstream.offline = True

        assert not await file_store.download_and_cache("bar", "2.0.0")

    @pytest.mark.asyncio
    async def test_timeout_returns_false(self, tmp_path):
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, content=ARCHIVE)

        async with httpx.AsyncClient(transport=httpx.MockTransport(slow)) as client:
            store = FileStore(tmp_path, upstream=UPSTREAM, timeout=0.1, client=client)
            assert not await store.download_and_cache("bar", "2.0.0")

        assert not store.path_for("bar", "2.0.0").exists()

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_fetch(self, tmp_path):
        gate = asyncio.Event()
        calls = []

        async def gated(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            await gate.wait()
            return httpx.Response(200, content=ARCHIVE)

        async with httpx.AsyncClient(transport=httpx.MockTransport(gated)) as client:
            store = FileStore(tmp_path, upstream=UPSTREAM, client=client)
            waiters = [
                asyncio.create_task(store.download_and_cache("bar", "2.0.0")) for _ in range(5)
            ]
            await asyncio.sleep(0.2)
            gate.set()
            results = await asyncio.gather(*waiters)

        assert results == [True] * 5
        assert calls == ["/packages/bar/versions/2.0.0.tar.gz"]

    @pytest.mark.asyncio
    async def test_redirects_are_not_followed(self, tmp_path):
        def redirect(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"location": "https://elsewhere.test/a.tar.gz"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(redirect)) as client:
            store = FileStore(tmp_path, upstream=UPSTREAM, client=client)
            assert not await store.download_and_cache("bar", "2.0.0")


class TestArchivePaths:
    """Archive locations stay inside the store directory."""

    def test_escaping_name_is_refused(self, tmp_path):
        store = FileStore(tmp_path / "archives")

        with pytest.raises(UnsafeArchivePathError):
            store.path_for("../../escaped", "1.0.0")

    @pytest.mark.asyncio
    async def test_escaping_layout_writes_nothing(self, tmp_path):
        store = FileStore(
            tmp_path / "archives", get_file_path=lambda name, version: f"../{name}.tgz"
        )
        try:
            with pytest.raises(UnsafeArchivePathError):
                await store.upload("foo", "1.0.0", ARCHIVE)
        finally:
            await store.aclose()

        assert list(tmp_path.iterdir()) == []

    def test_nested_layout_is_allowed(self, tmp_path):
        store = FileStore(tmp_path, get_file_path=lambda name, version: f"{name}/{version}.tgz")

        assert store.path_for("foo", "1.0.0") == tmp_path / "foo" / "1.0.0.tgz"


class TestFillFailures:
    @pytest.mark.asyncio
    async def test_failed_rename_returns_false_and_cleans_up(
        self, file_store, stub_upstream, tmp_path, monkeypatch
    ):
        stub_upstream.add_archive("bar", "2.0.0", ARCHIVE)

        async def broken_replace(src, dst):
            raise PermissionError("read-only file system")

        monkeypatch.setattr(aiofiles.os, "replace", broken_replace)

        assert not await file_store.download_and_cache("bar", "2.0.0")
        assert list((tmp_path / "archives").glob("*.tmp")) == []
        assert not file_store.path_for("bar", "2.0.0").exists()
