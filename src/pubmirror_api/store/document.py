# SPDX-License-Identifier: MIT
"""Document metadata store on MongoDB via motor.

Each package is one document in the ``packages`` collection with its versions
embedded in publish order, so every mutation of a package is a single atomic
update. Daily download buckets live in ``stats``, one document per package
and day, because downloads are counted for names the store does not know yet.
"""

import re
from typing import Any, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from ..models.package import Package, PackageVersion, QueryResult
from .base import MetaStore, normalize_sort, stats_day

logger = structlog.get_logger()

DEFAULT_URL = "mongodb://localhost:27017"
DEFAULT_DATABASE = "pubmirror"

PACKAGES = "packages"
STATS = "stats"

# Fields returned for package documents.
PACKAGE_PROJECTION = {"_id": 0, "dependencies": 0}


class DocumentStore(MetaStore):
    """Metadata store keeping whole package documents.

    Args:
        client: Motor client to use. Any client exposing the motor API works.
        url: MongoDB URL, used when no client is given.
        database: Database holding the collections.
    """

    def __init__(
        self,
        client: Any = None,
        *,
        url: str | None = None,
        database: str = DEFAULT_DATABASE,
    ):
        self._owns_client = client is None
        self.client = client if client is not None else AsyncIOMotorClient(
            url or DEFAULT_URL,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=10000,
        )
        self.database_name = database
        db = self.client[database]
        self._packages = db[PACKAGES]
        self._stats = db[STATS]

    async def open(self) -> None:
        await self._packages.create_index("name", unique=True)
        await self._packages.create_index("uploaders")
        await self._packages.create_index("dependencies")
        await self._stats.create_index([("name", ASCENDING), ("day", ASCENDING)], unique=True)
        logger.info("Opened document store", database=self.database_name)

    async def close(self) -> None:
        if self._owns_client:
            self.client.close()

    async def _upsert(
        self, collection: Any, query: dict[str, Any], update: dict[str, Any]
    ) -> None:
        try:
            await collection.update_one(query, update, upsert=True)
        except DuplicateKeyError:
            # A concurrent upsert inserted the document first; it now matches.
            await collection.update_one(query, update, upsert=True)

    async def query_package(self, name: str) -> Optional[Package]:
        document = await self._packages.find_one({"name": name}, PACKAGE_PROJECTION)
        if document is None:
            return None
        return Package.model_validate(document)

    async def add_versions(
        self, name: str, versions: list[PackageVersion], *, private: bool = True
    ) -> None:
        if not versions:
            return

        documents = []
        dependencies: list[str] = []
        for version in versions:
            document = version.model_dump(mode="json")
            document["created_at"] = version.created_at
            documents.append(document)
            dependencies.extend(dep for dep in version.dependencies if dep not in dependencies)
        uploaders = list(dict.fromkeys(v.uploader for v in versions if v.uploader))

        update: dict[str, Any] = {
            "$setOnInsert": {
                "private": private,
                "download": 0,
                "created_at": versions[0].created_at,
            },
            "$set": {"updated_at": versions[-1].created_at},
            "$push": {"versions": {"$each": documents}},
        }
        add_to_set = {}
        if uploaders:
            add_to_set["uploaders"] = {"$each": uploaders}
        if dependencies:
            add_to_set["dependencies"] = {"$each": dependencies}
        if add_to_set:
            update["$addToSet"] = add_to_set

        await self._upsert(self._packages, {"name": name}, update)

    async def add_uploader(self, name: str, email: str) -> None:
        await self._packages.update_one({"name": name}, {"$addToSet": {"uploaders": email}})

    async def remove_uploader(self, name: str, email: str) -> None:
        await self._packages.update_one({"name": name}, {"$pull": {"uploaders": email}})

    async def increase_downloads(self, name: str, version: str) -> None:
        await self._packages.update_one({"name": name}, {"$inc": {"download": 1}})
        await self._upsert(
            self._stats, {"name": name, "day": stats_day()}, {"$inc": {"count": 1}}
        )

    async def query_download_stats(self, name: str) -> dict[str, int]:
        cursor = self._stats.find({"name": name}, {"_id": 0, "day": 1, "count": 1})
        documents = await cursor.to_list(length=None)
        return {document["day"]: document["count"] for document in documents}

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
        field = normalize_sort(sort)

        query: dict[str, Any] = {}
        if keyword:
            query["name"] = {"$regex": re.escape(keyword), "$options": "i"}
        if uploader:
            query["uploaders"] = uploader
        if dependency:
            query["dependencies"] = dependency

        count = await self._packages.count_documents(query)

        # A limit of 0 means "no limit" to MongoDB.
        size = max(size, 0)
        if size == 0:
            return QueryResult(count=count, packages=[])

        cursor = self._packages.find(
            query,
            PACKAGE_PROJECTION,
            sort=[(field, DESCENDING), ("name", ASCENDING)],
            skip=max(page, 0) * size,
            limit=size,
        )
        documents = await cursor.to_list(length=None)
        return QueryResult(
            count=count,
            packages=[Package.model_validate(document) for document in documents],
        )
