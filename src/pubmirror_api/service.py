# SPDX-License-Identifier: MIT
"""Registry operations: cache-aside retrieval and publishing.

``RegistryService`` answers from local state first and falls back to the
upstream registry on a miss, persisting what it fetched. Publishing and
upstream seeding are serialized per package name, so the duplicate-version
check and the append never interleave with another writer of that package.
"""

import asyncio
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, Optional

import structlog

from .archive import extract_package_archive
from .integrity import compute_sha256
from .middleware.errors import (
    APIError,
    ForbiddenError,
    InvalidVersionError,
    NotPrivatePackageError,
    PackageNotFoundError,
    VersionExistsError,
)
from .models.package import Package, PackageVersion
from .package_store import PackageStore
from .semver import is_valid_semver, priority_key
from .store.base import MetaStore
from .upstream import UpstreamClient

logger = structlog.get_logger()

UploadValidator = Callable[[dict[str, Any], str], Awaitable[None]]

_EMAIL_IN_BRACKETS = re.compile(r"<(.*?)>")


def sort_versions(versions: list[PackageVersion]) -> list[PackageVersion]:
    """Order versions by pub priority; the last one is the default."""
    return sorted(versions, key=lambda v: priority_key(v.version))


def package_tags(pubspec: dict[str, Any]) -> list[str]:
    """Platform tags shown in the web listing."""
    if "flutter" in pubspec:
        return ["flutter"]
    return ["flutter", "web", "other"]


def package_authors(pubspec: dict[str, Any]) -> list[str]:
    """Emails from ``author`` or ``authors`` entries like ``Name <email>``."""
    author = pubspec.get("author")
    if isinstance(author, str):
        return _EMAIL_IN_BRACKETS.findall(author)

    authors = pubspec.get("authors")
    if isinstance(authors, list):
        emails = []
        for entry in authors:
            match = _EMAIL_IN_BRACKETS.search(str(entry))
            if match:
                emails.append(match.group(1))
        return emails
    return []


class RegistryService:
    """Retrieval orchestrator over the metadata store and the tarball cache.

    Args:
        meta_store: Package metadata store.
        package_store: Archive store.
        upstream: Upstream metadata client.
        upload_validator: Optional hook called with the pubspec and uploader
            before a publish is accepted. It rejects by raising.
    """

    def __init__(
        self,
        meta_store: MetaStore,
        package_store: PackageStore,
        upstream: UpstreamClient,
        upload_validator: Optional[UploadValidator] = None,
    ):
        self.meta_store = meta_store
        self.package_store = package_store
        self.upstream = upstream
        self.upload_validator = upload_validator
        # name -> (lock, number of tasks holding or awaiting it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _lock(self, name: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(name) or (asyncio.Lock(), 0)
        self._locks[name] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[name]
            if users == 1:
                del self._locks[name]
            else:
                self._locks[name] = (lock, users - 1)

    async def get_package(self, name: str) -> Optional[Package]:
        """Return the locally known package."""
        return await self.meta_store.query_package(name)

    async def get_or_seed_package(self, name: str) -> Optional[Package]:
        """Return the package, seeding it from upstream on a local miss.

        Seeded packages are recorded as non-private. Returns None when
        upstream does not know the package either.

        Raises:
            UpstreamError: If upstream cannot be reached
        """
        package = await self.meta_store.query_package(name)
        if package is not None:
            return package

        async with self._lock(name):
            # Another request may have seeded it while we waited.
            package = await self.meta_store.query_package(name)
            if package is not None:
                return package

            versions = await self.upstream.fetch_versions(name)
            if not versions:
                return None

            await self.meta_store.add_versions(name, versions, private=False)
            logger.info("Seeded package from upstream", package=name, versions=len(versions))

        return await self.meta_store.query_package(name)

    async def record_download(self, name: str, version: str) -> None:
        """Count a download. Failures are logged, never raised."""
        try:
            await self.meta_store.increase_downloads(name, version)
        except Exception:
            logger.exception("Failed to record download", package=name, version=version)

    async def ensure_archive(self, name: str, version: str) -> bool:
        """Make the archive available locally, filling the cache on a miss."""
        if await self.package_store.has_cached_file(name, version):
            return True
        return await self.package_store.download_and_cache(name, version)

    async def publish(self, data: bytes, uploader: str = "") -> PackageVersion:
        """Validate and store an uploaded archive.

        Every check runs before anything is written, so a rejected upload
        leaves no trace.

        Raises:
            InvalidManifestError: If the archive or pubspec is invalid
            InvalidVersionError: If the version is not semver
            NotPrivatePackageError: If the package mirrors upstream
            ForbiddenError: If the uploader may not publish the package
            VersionExistsError: If the version was already published
        """
        contents = extract_package_archive(data)
        name, version = contents.name, contents.version
        if not is_valid_semver(version):
            raise InvalidVersionError(version)

        if self.upload_validator is not None:
            try:
                await self.upload_validator(contents.pubspec, uploader)
            except APIError:
                raise
            except ValueError as e:
                raise ForbiddenError(str(e)) from e

        async with self._lock(name):
            package = await self.meta_store.query_package(name)
            if package is not None:
                if not package.private:
                    raise NotPrivatePackageError(name)
                if uploader and package.uploaders and uploader not in package.uploaders:
                    raise ForbiddenError(f"{uploader} is not an uploader of {name}")
                if package.find_version(version) is not None:
                    raise VersionExistsError(name, version)

            await self.package_store.upload(name, version, data)
            package_version = PackageVersion(
                version=version,
                pubspec=contents.pubspec,
                pubspec_yaml=contents.pubspec_yaml,
                uploader=uploader,
                readme=contents.readme,
                changelog=contents.changelog,
                created_at=datetime.now(UTC),
            )
            await self.meta_store.add_version(name, package_version)

        logger.info(
            "Published package",
            package=name,
            version=version,
            uploader=uploader,
            sha256=compute_sha256(data),
        )
        return package_version

    async def add_uploader(self, name: str, email: str, operator: str = "") -> None:
        """Grant ``email`` publish rights on a package.

        Raises:
            PackageNotFoundError: If the package is unknown
            ForbiddenError: If ``operator`` is not an uploader of the package
        """
        package = await self._require_operator(name, operator)
        if email not in package.uploaders:
            await self.meta_store.add_uploader(name, email)

    async def remove_uploader(self, name: str, email: str, operator: str = "") -> None:
        """Revoke publish rights of ``email`` on a package.

        Raises:
            PackageNotFoundError: If the package is unknown
            ForbiddenError: If ``operator`` is not an uploader of the package
        """
        await self._require_operator(name, operator)
        await self.meta_store.remove_uploader(name, email)

    async def _require_operator(self, name: str, operator: str) -> Package:
        package = await self.meta_store.query_package(name)
        if package is None:
            raise PackageNotFoundError(name)
        if operator and operator not in package.uploaders:
            raise ForbiddenError(f"{operator} is not an uploader of {name}")
        return package
