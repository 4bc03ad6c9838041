# SPDX-License-Identifier: MIT
"""Client for the upstream registry's package metadata API."""

from datetime import UTC, datetime
from typing import Any, Optional
from urllib.parse import urljoin

import httpx
import structlog

from .models.package import PackageVersion

logger = structlog.get_logger()


class UpstreamError(Exception):
    """The upstream registry could not be reached or answered garbage."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message} ({url})")


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(UTC)


def version_from_upstream(data: dict[str, Any]) -> PackageVersion:
    """Convert one entry of an upstream ``versions`` list."""
    return PackageVersion(
        version=str(data["version"]),
        pubspec=data.get("pubspec") or {},
        pubspec_yaml=data.get("pubspecYaml") or "",
        uploader="",
        readme=data.get("readme") or "",
        changelog=data.get("changelog") or "",
        created_at=_parse_timestamp(data.get("created") or data.get("published")),
    )


class UpstreamClient:
    """Fetches package metadata from the upstream registry.

    Args:
        base_url: Upstream registry base URL.
        timeout: Request timeout in seconds.
        client: HTTP client to use. One is created when omitted.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 180.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def url(self, path: str) -> str:
        """Resolve an absolute path against the upstream base URL."""
        return urljoin(self.base_url, path)

    def package_url(self, name: str) -> str:
        return self.url(f"/api/packages/{name}")

    def version_url(self, name: str, version: str) -> str:
        return self.url(f"/api/packages/{name}/versions/{version}")

    def archive_url(self, name: str, version: str) -> str:
        return self.url(f"/packages/{name}/versions/{version}.tar.gz")

    async def fetch_versions(self, name: str) -> Optional[list[PackageVersion]]:
        """Return every version upstream knows for ``name``.

        Returns None when upstream does not have the package.

        Raises:
            UpstreamError: On network failure or a malformed payload
        """
        url = self.package_url(name)
        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise UpstreamError(url, f"Request failed: {exc}") from exc

        if response.status_code != 200:
            logger.info("Package not found upstream", package=name, status=response.status_code)
            return None

        try:
            payload = response.json()
            entries = payload["versions"]
            versions = [version_from_upstream(entry) for entry in entries]
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamError(url, f"Malformed package metadata: {exc}") from exc

        logger.info("Fetched upstream metadata", package=name, versions=len(versions))
        return versions

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
