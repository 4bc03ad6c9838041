# SPDX-License-Identifier: MIT
"""Tests for configuration loading and store selection."""

import pytest

from pubmirror_api import APIConfig
from pubmirror_api.app import create_response_cache
from pubmirror_api.db import to_async_url
from pubmirror_api.response_cache import DirectoryCacheBackend, MemoryCacheBackend
from pubmirror_api.store import DocumentStore, SqlStore, create_meta_store


class TestAPIConfig:
    def test_defaults(self):
        config = APIConfig()

        assert config.upstream.url == "https://pub.dev/"
        assert config.upstream.timeout == 180.0
        assert config.database.backend == "relational"
        assert config.database.name == "pubmirror"
        assert config.cache.enabled is True
        assert config.cache.max_age == 3600
        assert config.proxy_origin is None

    def test_derived_locations(self, tmp_path):
        config = APIConfig()
        config.storage.local_path = str(tmp_path)

        assert config.document_url == "mongodb://localhost:27017"
        assert config.database_url == f"sqlite:///{tmp_path.absolute() / '.db' / 'pubmirror.db'}"

    def test_explicit_url(self):
        config = APIConfig()
        config.database.url = "postgresql://pub@db/pub"

        assert config.database_url == "postgresql://pub@db/pub"

        config.database.url = "mongodb://mongo:27017"
        assert config.document_url == "mongodb://mongo:27017"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PUBMIRROR_DATABASE_BACKEND", "relational")
        monkeypatch.setenv("PUBMIRROR_DATABASE_URL", "sqlite:///pub.db")
        monkeypatch.setenv("PUBMIRROR_DATABASE_NAME", "mirror")
        monkeypatch.setenv("PUBMIRROR_STORAGE_PATH", "/srv/pub")
        monkeypatch.setenv("PUBMIRROR_UPSTREAM_URL", "https://mirror.example.com/")
        monkeypatch.setenv("PUBMIRROR_UPSTREAM_TIMEOUT", "30")
        monkeypatch.setenv("PUBMIRROR_CACHE_ENABLED", "false")
        monkeypatch.setenv("PUBMIRROR_CACHE_MAX_AGE", "60")
        monkeypatch.setenv("PUBMIRROR_UPLOADER_EMAIL", "ci@example.com")
        monkeypatch.setenv("PUBMIRROR_PROXY_ORIGIN", "https://pub.example.com")
        monkeypatch.setenv("PUBMIRROR_DEBUG", "true")

        config = APIConfig.from_env()

        assert config.database.backend == "relational"
        assert config.database.url == "sqlite:///pub.db"
        assert config.database.name == "mirror"
        assert config.storage.local_path == "/srv/pub"
        assert config.upstream.url == "https://mirror.example.com/"
        assert config.upstream.timeout == 30.0
        assert config.cache.enabled is False
        assert config.cache.max_age == 60
        assert config.auth.override_uploader_email == "ci@example.com"
        assert config.proxy_origin == "https://pub.example.com"
        assert config.debug is True


class TestFactories:
    @pytest.mark.asyncio
    async def test_document_backend(self):
        config = APIConfig()
        config.database.backend = "document"
        config.database.url = "mongodb://mongo.test:27017"
        config.database.name = "mirror"

        store = create_meta_store(config)
        try:
            assert isinstance(store, DocumentStore)
            assert store.database_name == "mirror"
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_relational_backend(self, tmp_path):
        config = APIConfig()
        config.database.backend = "relational"
        config.database.url = f"sqlite:///{tmp_path / 'nested' / 'pub.db'}"

        store = create_meta_store(config)
        try:
            assert isinstance(store, SqlStore)
            assert store.dialect == "sqlite"
            await store.open()
            assert await store.query_package("foo") is None
            assert (tmp_path / "nested" / "pub.db").is_file()
        finally:
            await store.close()

    def test_unknown_backend(self):
        config = APIConfig()
        config.database.backend = "mongo"

        with pytest.raises(ValueError, match="mongo"):
            create_meta_store(config)

    def test_response_cache_selection(self, tmp_path):
        config = APIConfig()
        assert isinstance(create_response_cache(config).backend, MemoryCacheBackend)

        config.cache.directory = str(tmp_path)
        assert isinstance(create_response_cache(config).backend, DirectoryCacheBackend)

        config.cache.enabled = False
        assert create_response_cache(config) is None


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("sqlite:///pub.db", "sqlite+aiosqlite:///pub.db"),
        ("postgresql://u@h/db", "postgresql+asyncpg://u@h/db"),
        ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
    ],
)
def test_to_async_url(url, expected):
    assert to_async_url(url) == expected
