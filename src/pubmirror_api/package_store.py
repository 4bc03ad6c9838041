# SPDX-License-Identifier: MIT
"""Tarball storage with cache-aside filling from an upstream registry.

A cached archive becomes visible only once it is complete and has passed the
gzip integrity check: the body is streamed into a uniquely named temporary
sibling and atomically renamed onto the canonical path. A reader therefore
sees either no file or a whole one, and concurrent fillers of the same key
never expose a corrupt file.
"""

import asyncio
import contextlib
import secrets
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import aiofiles
import aiofiles.os
import httpx
import structlog

from .integrity import is_gzip_file

logger = structlog.get_logger()

DEFAULT_UPSTREAM = "https://pub.dev/"
DEFAULT_TIMEOUT = 180.0

FilePathFunc = Callable[[str, str], str]


class TarballNotFoundError(Exception):
    """No cached archive exists for the requested version."""

    def __init__(self, name: str, version: str):
        self.name = name
        self.version = version
        super().__init__(f"No cached archive for {name} {version}")


class UnsafeArchivePathError(ValueError):
    """An archive location resolves outside the store directory."""


def default_file_path(name: str, version: str) -> str:
    """Default archive location relative to the base directory."""
    return f"{name}-{version}.tar.gz"


class PackageStore(ABC):
    """Archive storage contract."""

    @abstractmethod
    async def upload(self, name: str, version: str, content: bytes) -> None:
        """Store ``content`` verbatim, replacing any existing archive."""

    @abstractmethod
    def download(self, name: str, version: str) -> AsyncIterator[bytes]:
        """Return a byte stream of the archive.

        Raises:
            TarballNotFoundError: If the archive is not stored
        """

    @abstractmethod
    async def has_cached_file(self, name: str, version: str) -> bool:
        """Return True if a valid archive is stored."""

    @abstractmethod
    async def download_and_cache(self, name: str, version: str) -> bool:
        """Ensure the archive is stored, fetching it upstream on a miss.

        Returns False when it could not be fetched; never raises for
        upstream failures.
        """

    async def aclose(self) -> None:
        """Release network resources."""


class FileStore(PackageStore):
    """Archive store on the local filesystem.

    Args:
        base_dir: Directory holding the archives.
        upstream: Base URL of the upstream registry.
        get_file_path: Maps (name, version) to a path relative to ``base_dir``.
        timeout: Upper bound in seconds for one upstream fetch.
        client: HTTP client to fetch with. One is created when omitted.
    """

    chunk_size = 64 * 1024

    def __init__(
        self,
        base_dir: Path | str,
        upstream: str = DEFAULT_UPSTREAM,
        get_file_path: Optional[FilePathFunc] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_dir = Path(base_dir)
        self.upstream = upstream
        self.get_file_path = get_file_path or default_file_path
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._in_flight: dict[Path, asyncio.Future[bool]] = {}

    def path_for(self, name: str, version: str) -> Path:
        """Return the archive location below ``base_dir``.

        Raises:
            UnsafeArchivePathError: If the location resolves outside ``base_dir``
        """
        path = self.base_dir / self.get_file_path(name, version)
        if not path.resolve().is_relative_to(self.base_dir.resolve()):
            raise UnsafeArchivePathError(f"Archive path escapes {self.base_dir}: {path}")
        return path

    def upstream_url(self, name: str, version: str) -> str:
        return urljoin(self.upstream, f"/packages/{name}/versions/{version}.tar.gz")

    async def upload(self, name: str, version: str, content: bytes) -> None:
        path = self.path_for(name, version)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)
        logger.debug("Stored archive", package=name, version=version, size=len(content))

    def download(self, name: str, version: str) -> AsyncIterator[bytes]:
        path = self.path_for(name, version)
        if not path.is_file():
            raise TarballNotFoundError(name, version)
        return self._read_chunks(path)

    async def _read_chunks(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(self.chunk_size):
                yield chunk

    async def has_cached_file(self, name: str, version: str) -> bool:
        return await is_gzip_file(self.path_for(name, version))

    async def download_and_cache(self, name: str, version: str) -> bool:
        if await self.has_cached_file(name, version):
            return True

        # Concurrent requests for one archive share a single fetch.
        path = self.path_for(name, version)
        task = self._in_flight.get(path)
        if task is None:
            task = asyncio.ensure_future(self._fill(name, version, path))
            self._in_flight[path] = task
            task.add_done_callback(lambda _: self._in_flight.pop(path, None))
        return await asyncio.shield(task)

    async def _fill(self, name: str, version: str, path: Path) -> bool:
        url = self.upstream_url(name, version)
        tmp_path = path.with_name(f"{path.name}.{secrets.token_hex(8)}.tmp")
        log = logger.bind(package=name, version=version, url=url)

        try:
            fetched = await asyncio.wait_for(self._fetch(url, tmp_path), timeout=self.timeout)
        except asyncio.TimeoutError:
            log.warning("Upstream archive fetch timed out", timeout=self.timeout)
            fetched = False
        except (httpx.HTTPError, OSError) as exc:
            log.warning("Upstream archive fetch failed", error=str(exc))
            fetched = False

        if not fetched:
            await _remove_quietly(tmp_path)
            return False

        if not await is_gzip_file(tmp_path):
            log.warning("Rejected upstream archive without gzip header")
            await _remove_quietly(tmp_path)
            return False

        try:
            await aiofiles.os.replace(tmp_path, path)
        except OSError as exc:
            log.warning("Could not move archive into place", error=str(exc))
            await _remove_quietly(tmp_path)
            return False
        log.info("Cached upstream archive", path=str(path))
        return True

    async def _fetch(self, url: str, tmp_path: Path) -> bool:
        async with self._client.stream("GET", url, follow_redirects=False) as response:
            if response.status_code != 200:
                logger.warning(
                    "Upstream archive unavailable", url=url, status=response.status_code
                )
                return False
            await aiofiles.os.makedirs(tmp_path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in response.aiter_bytes():
                    await f.write(chunk)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


async def _remove_quietly(path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        await aiofiles.os.remove(path)
