# SPDX-License-Identifier: MIT
"""Package metadata endpoints of the pub repository API."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response

from ..middleware.errors import PackageNotFoundError, VersionNotFoundError
from ..models.package import PackageVersion
from ..models.responses import PackageVersionsResponse, VersionEntry
from ..semver import priority_key
from ..service import RegistryService, sort_versions
from .deps import get_service, resolve_url, serve_cached

router = APIRouter()


def version_entry(request: Request, name: str, version: PackageVersion) -> VersionEntry:
    return VersionEntry(
        version=version.version,
        pubspec=version.pubspec,
        archive_url=resolve_url(request, f"/packages/{name}/versions/{version.version}.tar.gz"),
        published=version.created_at,
    )


@router.get("/api/packages/{name}", response_model=PackageVersionsResponse)
async def list_versions(
    name: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
) -> Response:
    """List every version of a package.

    Packages unknown locally are seeded from upstream. Packages upstream
    does not know either are redirected there.
    """

    async def build() -> Response:
        package = await service.get_or_seed_package(name)
        if package is None:
            return RedirectResponse(service.upstream.package_url(name), status_code=302)

        entries = [version_entry(request, name, v) for v in sort_versions(package.versions)]
        body = PackageVersionsResponse(name=name, latest=entries[-1], versions=entries)
        return JSONResponse(body.model_dump(mode="json", exclude_none=True))

    return await serve_cached(request, build)


@router.get("/api/packages/{name}/versions/{version}", response_model=VersionEntry)
async def get_version(
    name: str,
    version: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
) -> Response:
    """Describe one version of a package."""

    async def build() -> Response:
        package = await service.get_package(name)
        if package is None:
            return RedirectResponse(service.upstream.version_url(name, version), status_code=302)

        found = package.find_version(version)
        if found is None:
            raise VersionNotFoundError(name, version)
        entry = version_entry(request, name, found)
        return JSONResponse(entry.model_dump(mode="json", exclude_none=True))

    return await serve_cached(request, build)


@router.get("/packages/{name}.json")
async def list_version_numbers(
    name: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
) -> Response:
    """Version strings of a package, newest first."""

    async def build() -> Response:
        package = await service.get_package(name)
        if package is None:
            raise PackageNotFoundError(name)
        versions = sorted((v.version for v in package.versions), key=priority_key, reverse=True)
        return JSONResponse({"name": name, "versions": versions})

    return await serve_cached(request, build)
