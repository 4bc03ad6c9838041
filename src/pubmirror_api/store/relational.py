# SPDX-License-Identifier: MIT
"""Relational metadata store using SQLAlchemy async sessions.

Every operation runs in its own transaction. Creation-or-append and counter
increments are upserts, so concurrent writers on PostgreSQL never race on the
package row; SQLite engines hold a single connection and serialize writers.
"""

from pathlib import Path
from typing import Any, Optional

import structlog
from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import selectinload

from ..db import create_engine, create_session_factory, create_tables
from ..db.models import DailyStatRow, DependencyRow, PackageRow, UploaderRow, VersionRow
from ..models.package import Package, PackageVersion, QueryResult
from .base import MetaStore, normalize_sort, stats_day

logger = structlog.get_logger()

_SORT_COLUMNS = {
    "download": PackageRow.download_count,
    "name": PackageRow.name,
    "created_at": PackageRow.created_at,
    "updated_at": PackageRow.updated_at,
}


class SqlStore(MetaStore):
    """Metadata store on SQLite (aiosqlite) or PostgreSQL (asyncpg).

    Args:
        engine: Engine to use.
        url: Database URL, used when no engine is given.
        dispose_engine: Dispose the engine on close. Always true for an
            engine created from ``url``.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        url: str | None = None,
        dispose_engine: bool = False,
    ):
        if engine is None and url is None:
            raise ValueError("SqlStore needs an engine or a url")
        self._owns_engine = dispose_engine or engine is None
        self.engine = engine if engine is not None else create_engine(url)
        self._session_factory = create_session_factory(self.engine)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def _insert(self, table: Any):
        """Dialect insert supporting ``ON CONFLICT``."""
        if self.dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        return insert(table)

    async def open(self) -> None:
        database = self.engine.url.database
        if self.dialect == "sqlite" and database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        await create_tables(self.engine)
        logger.info("Opened relational store", dialect=self.dialect)

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()

    async def query_package(self, name: str) -> Optional[Package]:
        query = (
            select(PackageRow)
            .options(selectinload(PackageRow.versions), selectinload(PackageRow.uploaders))
            .where(PackageRow.name == name)
        )
        async with self._session_factory() as session:
            row = (await session.execute(query)).scalar_one_or_none()
            if row is None:
                return None
            return _to_package(row)

    async def add_versions(
        self, name: str, versions: list[PackageVersion], *, private: bool = True
    ) -> None:
        if not versions:
            return
        first, last = versions[0], versions[-1]
        async with self._session_factory() as session, session.begin():
            await session.execute(
                self._insert(PackageRow)
                .values(
                    name=name,
                    private=private,
                    download_count=0,
                    created_at=first.created_at,
                    updated_at=first.created_at,
                )
                .on_conflict_do_nothing(index_elements=["name"])
            )

            for version in versions:
                row = VersionRow(
                    package_name=name,
                    version=version.version,
                    pubspec=version.model_dump(mode="json")["pubspec"],
                    pubspec_yaml=version.pubspec_yaml,
                    uploader=version.uploader,
                    readme=version.readme,
                    changelog=version.changelog,
                    created_at=version.created_at,
                )
                row.dependencies = [
                    DependencyRow(package_name=name, dependency=dep)
                    for dep in version.dependencies
                ]
                session.add(row)

            for email in dict.fromkeys(v.uploader for v in versions if v.uploader):
                await session.execute(
                    self._insert(UploaderRow)
                    .values(package_name=name, email=email)
                    .on_conflict_do_nothing(index_elements=["package_name", "email"])
                )

            await session.execute(
                update(PackageRow)
                .where(PackageRow.name == name)
                .values(updated_at=last.created_at)
                .execution_options(synchronize_session=False)
            )

    async def add_uploader(self, name: str, email: str) -> None:
        async with self._session_factory() as session, session.begin():
            found = await session.scalar(select(PackageRow.name).where(PackageRow.name == name))
            if found is None:
                return
            await session.execute(
                self._insert(UploaderRow)
                .values(package_name=name, email=email)
                .on_conflict_do_nothing(index_elements=["package_name", "email"])
            )

    async def remove_uploader(self, name: str, email: str) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                delete(UploaderRow)
                .where(UploaderRow.package_name == name, UploaderRow.email == email)
                .execution_options(synchronize_session=False)
            )

    async def increase_downloads(self, name: str, version: str) -> None:
        today = stats_day()
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(PackageRow)
                .where(PackageRow.name == name)
                .values(download_count=PackageRow.download_count + 1)
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                self._insert(DailyStatRow)
                .values(package_name=name, day=today, count=1)
                .on_conflict_do_update(
                    index_elements=["package_name", "day"],
                    set_={"count": DailyStatRow.count + 1},
                )
            )

    async def query_download_stats(self, name: str) -> dict[str, int]:
        query = select(DailyStatRow.day, DailyStatRow.count).where(
            DailyStatRow.package_name == name
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return {day: count for day, count in result.all()}

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
        column = _SORT_COLUMNS[normalize_sort(sort)]

        query = select(PackageRow)
        if keyword:
            query = query.where(PackageRow.name.icontains(keyword, autoescape=True))
        if uploader:
            query = query.where(
                exists().where(
                    UploaderRow.package_name == PackageRow.name,
                    UploaderRow.email == uploader,
                )
            )
        if dependency:
            query = query.where(
                exists().where(
                    DependencyRow.package_name == PackageRow.name,
                    DependencyRow.dependency == dependency,
                )
            )

        size = max(size, 0)
        page_query = (
            query.options(selectinload(PackageRow.versions), selectinload(PackageRow.uploaders))
            .order_by(column.desc(), PackageRow.name.asc())
            .offset(max(page, 0) * size)
            .limit(size)
        )

        async with self._session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(query.subquery()))
            rows = (await session.execute(page_query)).scalars().all()
            return QueryResult(count=count or 0, packages=[_to_package(row) for row in rows])


def _to_package(row: PackageRow) -> Package:
    return Package(
        name=row.name,
        versions=[PackageVersion.model_validate(version) for version in row.versions],
        private=row.private,
        uploaders=[uploader.email for uploader in row.uploaders],
        download=row.download_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
