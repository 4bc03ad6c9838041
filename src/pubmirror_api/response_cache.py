# SPDX-License-Identifier: MIT
"""TTL memo for computed API responses with stale-on-error fallback.

``ResponseCache.wrap`` serves a fresh entry without recomputing it. Otherwise
it runs the operation; successful responses are persisted in the background,
and when the operation raises, any earlier entry is served even if expired,
marked with ``X-Cache-Status: stale``. Cache failures never fail a request:
they are logged and treated as a miss.
"""

import asyncio
import base64
import contextlib
import hashlib
import json
import secrets
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os
import structlog
from starlette.responses import Response

logger = structlog.get_logger()

CACHE_STATUS_HEADER = "X-Cache-Status"
DEFAULT_MAX_AGE = 3600

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def cache_key(method: str, path: str, query: str = "") -> str:
    """Build the cache key ``METHOD:path?query``."""
    return f"{method.upper()}:{path}?{query}"


@dataclass
class CachedResponse:
    """A response snapshot with its freshness window."""

    body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    status_code: int = 200
    cached_at: datetime = field(default_factory=_utc_now)
    max_age: int = DEFAULT_MAX_AGE

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or _utc_now()
        return now > self.cached_at + timedelta(seconds=self.max_age)

    def to_response(self, *, stale: bool = False) -> Response:
        headers = dict(self.headers)
        if stale:
            headers[CACHE_STATUS_HEADER] = "stale"
        return Response(content=self.body, status_code=self.status_code, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "body": base64.b64encode(self.body).decode("ascii"),
            "headers": self.headers,
            "status_code": self.status_code,
            "cached_at": self.cached_at.isoformat(),
            "max_age": self.max_age,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedResponse":
        return cls(
            body=base64.b64decode(data["body"]),
            headers=dict(data["headers"]),
            status_code=int(data["status_code"]),
            cached_at=datetime.fromisoformat(data["cached_at"]),
            max_age=int(data["max_age"]),
        )


class CacheBackend(ABC):
    """Storage for cached responses."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CachedResponse]:
        """Return the entry for ``key`` or None."""

    @abstractmethod
    async def set(self, key: str, entry: CachedResponse) -> None:
        """Store ``entry``, replacing any previous one."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Drop the entry for ``key`` if present."""


class MemoryCacheBackend(CacheBackend):
    """Entries kept in a dict for the lifetime of the process."""

    def __init__(self):
        self._entries: dict[str, CachedResponse] = {}

    async def get(self, key: str) -> Optional[CachedResponse]:
        return self._entries.get(key)

    async def set(self, key: str, entry: CachedResponse) -> None:
        self._entries[key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class DirectoryCacheBackend(CacheBackend):
    """One JSON file per key, named by the SHA-256 of the key.

    Files are written to a temporary sibling and renamed into place, so a
    reader never sees a partial entry.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    async def get(self, key: str) -> Optional[CachedResponse]:
        path = self.path_for(key)
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            data = json.loads(await f.read())
        return CachedResponse.from_dict(data)

    async def set(self, key: str, entry: CachedResponse) -> None:
        path = self.path_for(key)
        await aiofiles.os.makedirs(self.directory, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{secrets.token_hex(8)}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(entry.to_dict()))
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                await aiofiles.os.remove(tmp_path)
            raise

    async def delete(self, key: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.remove(self.path_for(key))


class ResponseCache:
    """Response memo keyed by request.

    Args:
        backend: Entry storage. Defaults to memory.
        max_age: Freshness window in seconds for new entries.
        clock: Returns the current time; replaceable in tests.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        max_age: int = DEFAULT_MAX_AGE,
        clock: Clock = _utc_now,
    ):
        self.backend = backend or MemoryCacheBackend()
        self.max_age = max_age
        self.clock = clock
        self._pending: set[asyncio.Task] = set()

    async def get(self, key: str) -> Optional[CachedResponse]:
        try:
            return await self.backend.get(key)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Response cache read failed", key=key, error=str(exc))
            return None

    async def put(self, key: str, response: Response, max_age: Optional[int] = None) -> None:
        entry = CachedResponse(
            body=bytes(response.body),
            headers=dict(response.headers),
            status_code=response.status_code,
            cached_at=self.clock(),
            max_age=self.max_age if max_age is None else max_age,
        )
        try:
            await self.backend.set(key, entry)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Response cache write failed", key=key, error=str(exc))

    async def invalidate(self, *keys: str) -> None:
        """Drop entries so the next request recomputes them."""
        # A pending write must not resurrect an entry after it is dropped.
        await self.drain()
        for key in keys:
            try:
                await self.backend.delete(key)
            except OSError as exc:
                logger.warning("Response cache delete failed", key=key, error=str(exc))

    async def wrap(self, key: str, operation: Callable[[], Awaitable[Response]]) -> Response:
        """Serve ``key`` from the cache or compute it with ``operation``."""
        cached = await self.get(key)
        if cached is not None and not cached.is_expired(self.clock()):
            logger.debug("Response cache hit", key=key)
            return cached.to_response()

        try:
            response = await operation()
        except Exception as exc:
            if cached is None:
                raise
            logger.warning("Serving stale response", key=key, error=str(exc))
            return cached.to_response(stale=True)

        # Streaming responses have no body to snapshot.
        body = getattr(response, "body", None)
        if 200 <= response.status_code < 300 and isinstance(body, bytes):
            self._schedule(self.put(key, response))
        return response

    def _schedule(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for background writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
