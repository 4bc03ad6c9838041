# SPDX-License-Identifier: MIT
"""Shared request dependencies and helpers for route modules."""

from collections.abc import Awaitable, Callable
from typing import Optional
from urllib.parse import urljoin

from fastapi import Request
from starlette.responses import Response

from ..config import APIConfig
from ..response_cache import ResponseCache, cache_key
from ..service import RegistryService

PROXY_ORIGIN_HEADER = "proxy-origin"


def get_config(request: Request) -> APIConfig:
    return request.app.state.config


def get_service(request: Request) -> RegistryService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise RuntimeError("Registry service not initialized")
    return service


def get_response_cache(request: Request) -> Optional[ResponseCache]:
    return getattr(request.app.state, "response_cache", None)


def resolve_url(request: Request, reference: str) -> str:
    """Resolve ``reference`` against the public origin of this server.

    The configured proxy origin wins, then the ``proxy-origin`` request
    header, then the URL the request was made to.
    """
    config = get_config(request)
    if config.proxy_origin:
        return urljoin(config.proxy_origin, reference)
    header = request.headers.get(PROXY_ORIGIN_HEADER)
    if header:
        return urljoin(header, reference)
    return urljoin(str(request.url), reference)


def is_pub_client(request: Request) -> bool:
    """True for requests made by the ``dart pub`` command line tool."""
    user_agent = request.headers.get("user-agent", "")
    return "dart pub" in user_agent.lower()


async def serve_cached(
    request: Request, operation: Callable[[], Awaitable[Response]]
) -> Response:
    """Run ``operation`` through the response cache when one is configured."""
    cache = get_response_cache(request)
    if cache is None:
        return await operation()
    key = cache_key(request.method, request.url.path, request.url.query)
    return await cache.wrap(key, operation)


async def invalidate_package(request: Request, name: str) -> None:
    """Forget cached responses describing package ``name``."""
    cache = get_response_cache(request)
    if cache is None:
        return
    await cache.invalidate(
        cache_key("GET", f"/api/packages/{name}"),
        cache_key("GET", f"/packages/{name}.json"),
        cache_key("GET", f"/webapi/package/{name}/latest"),
    )
