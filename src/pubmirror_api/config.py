# SPDX-License-Identifier: MIT
"""Mirror server configuration."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class DatabaseConfig:
    """Metadata store configuration.

    ``backend`` selects the store implementation: ``"relational"`` for the
    SQLAlchemy store, ``"document"`` for the MongoDB document store. ``url``
    is the database URL of the selected backend; an unset relational URL is a
    SQLite file below the storage directory.
    """

    backend: str = "relational"
    url: Optional[str] = None
    name: str = "pubmirror"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass
class StorageConfig:
    """Tarball cache configuration."""

    local_path: str = "./pubmirror-packages"


@dataclass
class UpstreamConfig:
    """Upstream registry configuration."""

    url: str = "https://pub.dev/"
    timeout: float = 180.0


@dataclass
class CacheConfig:
    """Response cache configuration.

    A ``directory`` of None keeps cached responses in memory.
    """

    enabled: bool = True
    directory: Optional[str] = None
    max_age: int = 3600


@dataclass
class AuthConfig:
    """Uploader identity configuration."""

    override_uploader_email: Optional[str] = None
    tokeninfo_url: Optional[str] = None


@dataclass
class APIConfig:
    """Main mirror server configuration."""

    # Server settings
    title: str = "pubmirror"
    description: str = "Private pub registry mirroring an upstream registry"
    version: str = "0.1.0"
    debug: bool = False
    json_logs: bool = False
    proxy_origin: Optional[str] = None

    # Sub-configurations
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    # API settings
    docs_url: str = "/docs"
    openapi_url: str = "/openapi.json"

    @property
    def document_url(self) -> str:
        """MongoDB URL for the document store."""
        return self.database.url or "mongodb://localhost:27017"

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the relational store."""
        if self.database.url:
            return self.database.url
        db_file = Path(self.storage.local_path).absolute() / ".db" / "pubmirror.db"
        return f"sqlite:///{db_file}"

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Create configuration from environment variables."""
        import os

        config = cls()

        # Database
        if backend := os.getenv("PUBMIRROR_DATABASE_BACKEND"):
            config.database.backend = backend
        if db_url := os.getenv("PUBMIRROR_DATABASE_URL"):
            config.database.url = db_url
        if db_name := os.getenv("PUBMIRROR_DATABASE_NAME"):
            config.database.name = db_name
        config.database.echo = os.getenv("PUBMIRROR_DATABASE_ECHO", "").lower() == "true"

        # Storage
        if local_path := os.getenv("PUBMIRROR_STORAGE_PATH"):
            config.storage.local_path = local_path

        # Upstream
        if upstream_url := os.getenv("PUBMIRROR_UPSTREAM_URL"):
            config.upstream.url = upstream_url
        if timeout := os.getenv("PUBMIRROR_UPSTREAM_TIMEOUT"):
            config.upstream.timeout = float(timeout)

        # Response cache
        config.cache.enabled = os.getenv("PUBMIRROR_CACHE_ENABLED", "true").lower() == "true"
        if cache_dir := os.getenv("PUBMIRROR_CACHE_DIR"):
            config.cache.directory = cache_dir
        if max_age := os.getenv("PUBMIRROR_CACHE_MAX_AGE"):
            config.cache.max_age = int(max_age)

        # Auth
        if email := os.getenv("PUBMIRROR_UPLOADER_EMAIL"):
            config.auth.override_uploader_email = email
        if tokeninfo_url := os.getenv("PUBMIRROR_TOKENINFO_URL"):
            config.auth.tokeninfo_url = tokeninfo_url

        if proxy_origin := os.getenv("PUBMIRROR_PROXY_ORIGIN"):
            config.proxy_origin = proxy_origin

        # Debug
        config.debug = os.getenv("PUBMIRROR_DEBUG", "").lower() == "true"
        config.json_logs = os.getenv("PUBMIRROR_JSON_LOGS", "").lower() == "true"

        return config
