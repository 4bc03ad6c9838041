# SPDX-License-Identifier: MIT
"""Metadata store backends."""

from typing import TYPE_CHECKING

from .base import SORT_FIELDS, MetaStore, normalize_sort, stats_day
from .document import DocumentStore
from .relational import SqlStore

if TYPE_CHECKING:
    from ..config import APIConfig

__all__ = [
    "SORT_FIELDS",
    "MetaStore",
    "DocumentStore",
    "SqlStore",
    "create_meta_store",
    "normalize_sort",
    "stats_day",
]


def create_meta_store(config: "APIConfig") -> MetaStore:
    """Build the metadata store selected by ``config.database.backend``.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = config.database.backend
    if backend == "document":
        return DocumentStore(url=config.document_url, database=config.database.name)
    if backend == "relational":
        from ..db import create_engine_from_config

        engine = create_engine_from_config(config.database, config.database_url)
        return SqlStore(engine, dispose_engine=True)
    raise ValueError(f"Unknown database backend: {backend!r}")
