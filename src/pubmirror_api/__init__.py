# SPDX-License-Identifier: MIT
"""Private pub registry that mirrors and caches an upstream registry."""

__version__ = "0.1.0"

from .app import create_app
from .config import (
    APIConfig,
    AuthConfig,
    CacheConfig,
    DatabaseConfig,
    StorageConfig,
    UpstreamConfig,
)
from .middleware.errors import (
    APIError,
    ErrorCode,
    ForbiddenError,
    InvalidManifestError,
    InvalidRequestError,
    InvalidVersionError,
    NotPrivatePackageError,
    PackageNotFoundError,
    UnauthorizedError,
    VersionExistsError,
    VersionNotFoundError,
)
from .package_store import FileStore, PackageStore, TarballNotFoundError
from .response_cache import CachedResponse, ResponseCache
from .service import RegistryService
from .store import DocumentStore, MetaStore, SqlStore, create_meta_store
from .upstream import UpstreamClient, UpstreamError

__all__ = [
    # App factory
    "create_app",
    # Configuration
    "APIConfig",
    "AuthConfig",
    "CacheConfig",
    "DatabaseConfig",
    "StorageConfig",
    "UpstreamConfig",
    # Core
    "RegistryService",
    "MetaStore",
    "DocumentStore",
    "SqlStore",
    "create_meta_store",
    "PackageStore",
    "FileStore",
    "TarballNotFoundError",
    "ResponseCache",
    "CachedResponse",
    "UpstreamClient",
    "UpstreamError",
    # Errors
    "APIError",
    "ErrorCode",
    "ForbiddenError",
    "InvalidManifestError",
    "InvalidRequestError",
    "InvalidVersionError",
    "NotPrivatePackageError",
    "PackageNotFoundError",
    "UnauthorizedError",
    "VersionExistsError",
    "VersionNotFoundError",
]
