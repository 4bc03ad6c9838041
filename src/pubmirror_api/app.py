# SPDX-License-Identifier: MIT
"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import APIConfig
from .package_store import FileStore, PackageStore
from .response_cache import DirectoryCacheBackend, MemoryCacheBackend, ResponseCache
from .service import RegistryService, UploadValidator
from .store import MetaStore, create_meta_store
from .upstream import UpstreamClient

logger = structlog.get_logger()


def create_response_cache(config: APIConfig) -> Optional[ResponseCache]:
    """Build the response cache selected by ``config.cache``."""
    if not config.cache.enabled:
        return None
    if config.cache.directory:
        backend = DirectoryCacheBackend(config.cache.directory)
    else:
        backend = MemoryCacheBackend()
    return ResponseCache(backend, max_age=config.cache.max_age)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    config: APIConfig = app.state.config

    # Startup: open stores unless injected
    meta_store: MetaStore = app.state.meta_store or create_meta_store(config)
    package_store: PackageStore = app.state.package_store or FileStore(
        Path(config.storage.local_path),
        upstream=config.upstream.url,
        timeout=config.upstream.timeout,
    )
    upstream = app.state.upstream or UpstreamClient(
        config.upstream.url, timeout=config.upstream.timeout
    )
    await meta_store.open()

    app.state.service = RegistryService(
        meta_store,
        package_store,
        upstream,
        upload_validator=app.state.upload_validator,
    )
    app.state.response_cache = create_response_cache(config)
    logger.info(
        "Mirror started",
        upstream=config.upstream.url,
        storage=config.storage.local_path,
        database=config.database.backend,
    )

    yield

    # Shutdown: flush pending cache writes, release resources
    if app.state.response_cache is not None:
        await app.state.response_cache.drain()
    await package_store.aclose()
    await upstream.aclose()
    await meta_store.close()


def create_app(
    config: APIConfig | None = None,
    *,
    meta_store: Optional[MetaStore] = None,
    package_store: Optional[PackageStore] = None,
    upstream: Optional[UpstreamClient] = None,
    upload_validator: Optional[UploadValidator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: API configuration. If None, loads from environment.
        meta_store: Metadata store to use instead of the configured one.
        package_store: Archive store to use instead of a ``FileStore``.
        upstream: Upstream client to use instead of the configured one.
        upload_validator: Hook that can reject publishes.

    Returns:
        Configured FastAPI application instance.
    """
    if config is None:
        config = APIConfig.from_env()

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        docs_url=config.docs_url,
        openapi_url=config.openapi_url,
        debug=config.debug,
        lifespan=lifespan,
    )

    # Store config and injected collaborators in app state
    app.state.config = config
    app.state.meta_store = meta_store
    app.state.package_store = package_store
    app.state.upstream = upstream
    app.state.upload_validator = upload_validator
    app.state.service = None
    app.state.response_cache = None

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handling middleware
    from .middleware.errors import add_error_handlers

    add_error_handlers(app)

    # Register API routes
    from .routes import download, packages, upload, webapi

    app.include_router(upload.router, tags=["upload"])
    app.include_router(packages.router, tags=["packages"])
    app.include_router(download.router, tags=["download"])
    app.include_router(webapi.router, tags=["webapi"])

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "healthy", "version": config.version}

    return app
