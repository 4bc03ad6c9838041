# SPDX-License-Identifier: MIT
"""Database module for the relational metadata store."""

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .models import Base, DailyStatRow, DependencyRow, PackageRow, UploaderRow, VersionRow

if TYPE_CHECKING:
    from ..config import DatabaseConfig

__all__ = [
    "Base",
    "DailyStatRow",
    "DependencyRow",
    "PackageRow",
    "UploaderRow",
    "VersionRow",
    "to_async_url",
    "create_engine",
    "create_engine_from_config",
    "create_session_factory",
    "create_tables",
]


def to_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver form."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine(
    url: str,
    *,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """Create an async engine for ``url``.

    SQLite gets a single pooled connection so writers are serialized; an
    in-memory database shares one static connection.
    """
    url = to_async_url(url)

    if "sqlite" in url and ":memory:" in url:
        return create_async_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(
        url,
        echo=echo,
        pool_size=pool_size if "sqlite" not in url else 1,
        max_overflow=max_overflow if "sqlite" not in url else 0,
    )


def create_engine_from_config(config: "DatabaseConfig", url: str) -> AsyncEngine:
    """Create an engine using the pool settings of ``config``."""
    return create_engine(
        url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
