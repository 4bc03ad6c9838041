# SPDX-License-Identifier: MIT
"""Metadata store contract shared by every backend."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..models.package import Package, PackageVersion, QueryResult

# Public sort names mapped to canonical field names.
SORT_FIELDS = {
    "download": "download",
    "name": "name",
    "created_at": "created_at",
    "createdAt": "created_at",
    "updated_at": "updated_at",
    "updatedAt": "updated_at",
}


def normalize_sort(sort: str) -> str:
    """Return the canonical field for a sort name.

    Raises:
        ValueError: If the field is not sortable
    """
    try:
        return SORT_FIELDS[sort]
    except KeyError:
        raise ValueError(f"Unsupported sort field: {sort!r}") from None


def stats_day(now: Optional[datetime] = None) -> str:
    """Return the ``YYYYMMDD`` bucket for ``now`` in the local time zone."""
    return (now or datetime.now()).strftime("%Y%m%d")


class MetaStore(ABC):
    """Durable record of packages, versions, uploaders and download stats.

    Every mutation is transactional: a concurrent reader sees either the state
    before or after it, never an intermediate one.
    """

    async def open(self) -> None:
        """Prepare the backing storage. Idempotent."""

    async def close(self) -> None:
        """Release the backing storage."""

    @abstractmethod
    async def query_package(self, name: str) -> Optional[Package]:
        """Return the package with all versions and uploaders, or None."""

    async def add_version(
        self, name: str, version: PackageVersion, *, private: bool = True
    ) -> None:
        """Append ``version`` to ``name``, creating the package when absent.

        ``private`` only applies when the package is created. The uploader of
        the version joins the uploader set. Duplicate versions are not
        rejected here; callers check before appending.
        """
        await self.add_versions(name, [version], private=private)

    @abstractmethod
    async def add_versions(
        self, name: str, versions: list[PackageVersion], *, private: bool = True
    ) -> None:
        """Append ``versions`` in order as one transaction.

        Readers see either none or all of them. The package is created from
        the first version and its ``updated_at`` follows the last one.
        """

    @abstractmethod
    async def add_uploader(self, name: str, email: str) -> None:
        """Add ``email`` to the uploader set. No-op for unknown packages."""

    @abstractmethod
    async def remove_uploader(self, name: str, email: str) -> None:
        """Remove ``email`` from the uploader set. No-op when absent."""

    @abstractmethod
    async def increase_downloads(self, name: str, version: str) -> None:
        """Increment the package total and today's download bucket."""

    @abstractmethod
    async def query_download_stats(self, name: str) -> dict[str, int]:
        """Return per-day download counts keyed by ``YYYYMMDD``."""

    @abstractmethod
    async def query_packages(
        self,
        *,
        size: int,
        page: int,
        sort: str,
        keyword: Optional[str] = None,
        uploader: Optional[str] = None,
        dependency: Optional[str] = None,
    ) -> QueryResult:
        """Return one page of packages matching every given filter.

        Results are ordered by ``sort`` descending, then by name. ``count``
        is the number of matches before pagination.
        """
