# SPDX-License-Identifier: MIT
"""JSON endpoints for the web UI, plus badge redirects."""

from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response

from ..middleware.errors import (
    InvalidRequestError,
    PackageNotFoundError,
    VersionNotFoundError,
)
from ..models.responses import (
    DetailViewVersion,
    ListApi,
    ListApiPackage,
    WebapiDetailView,
)
from ..semver import InvalidVersionError, parse_version, primary_version, priority_key
from ..service import RegistryService, package_authors, package_tags
from .deps import get_service, serve_cached

router = APIRouter()

BADGE_URL = "https://img.shields.io/static/v1"
BADGE_LABEL = "pubmirror"


def parse_search(q: Optional[str]) -> dict[str, Optional[str]]:
    """Split a search query into store filters.

    ``email:<addr>`` filters by uploader, ``dependency:<name>`` by
    dependency; anything else is a name keyword.
    """
    filters: dict[str, Optional[str]] = {"keyword": None, "uploader": None, "dependency": None}
    if not q:
        return filters
    if q.startswith("email:"):
        filters["uploader"] = q[len("email:") :].strip()
    elif q.startswith("dependency:"):
        filters["dependency"] = q[len("dependency:") :].strip()
    else:
        filters["keyword"] = q
    return filters


@router.get("/webapi/packages", response_model=None)
async def list_packages(
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
    size: Annotated[int, Query(ge=0)] = 10,
    page: Annotated[int, Query(ge=0)] = 0,
    sort: str = "download",
    q: Optional[str] = None,
) -> Response:
    """Paginated package listing with search."""

    async def build() -> Response:
        try:
            result = await service.meta_store.query_packages(
                size=size, page=page, sort=sort, **parse_search(q)
            )
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        listing = ListApi(
            count=result.count,
            packages=[
                ListApiPackage(
                    name=package.name,
                    description=package.latest.pubspec.get("description"),
                    tags=package_tags(package.latest.pubspec),
                    latest=package.latest.version,
                    updated_at=package.updated_at,
                )
                for package in result.packages
            ],
        )
        return JSONResponse({"data": listing.model_dump(mode="json", by_alias=True)})

    return await serve_cached(request, build)


@router.get("/webapi/package/{name}/{version}", response_model=None)
async def package_detail(
    name: str,
    version: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
) -> Response:
    """Detail view of one version; ``latest`` selects the last published."""

    async def build() -> Response:
        package = await service.get_package(name)
        if package is None:
            raise PackageNotFoundError(name)

        selected = package.latest if version == "latest" else package.find_version(version)
        if selected is None:
            raise VersionNotFoundError(name, version)

        versions = [
            DetailViewVersion(version=v.version, created_at=v.created_at)
            for v in sorted(package.versions, key=lambda v: priority_key(v.version), reverse=True)
        ]
        pubspec = selected.pubspec
        detail = WebapiDetailView(
            name=package.name,
            version=selected.version,
            description=str(pubspec.get("description") or ""),
            homepage=str(pubspec.get("homepage") or ""),
            uploaders=package.uploaders,
            created_at=selected.created_at,
            readme=selected.readme,
            changelog=selected.changelog,
            versions=versions,
            authors=package_authors(pubspec),
            dependencies=selected.dependencies,
            tags=package_tags(pubspec),
        )
        return JSONResponse({"data": detail.model_dump(mode="json", by_alias=True)})

    return await serve_cached(request, build)


def badge_url(label: str, message: str, color: str, extra: dict[str, str]) -> str:
    params = {"label": label, "message": message, "color": color, **extra}
    return f"{BADGE_URL}?{urlencode(params)}"


@router.get("/badge/{kind}/{name}", response_model=None)
async def badge(
    kind: str,
    name: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
) -> Response:
    """Redirect to a shields.io badge: ``v`` for version, ``d`` for downloads."""
    if kind not in ("v", "d"):
        raise InvalidRequestError(f"Unknown badge type: {kind!r}")
    package = await service.get_package(name)
    if package is None:
        raise PackageNotFoundError(name)

    extra = dict(request.query_params)
    if kind == "d":
        return RedirectResponse(
            badge_url("downloads", str(package.download), "blue", extra), status_code=302
        )

    latest = primary_version(v.version for v in package.versions) or package.latest.version
    try:
        color = "orange" if parse_version(latest).major == 0 else "blue"
    except InvalidVersionError:
        color = "blue"
    return RedirectResponse(badge_url(BADGE_LABEL, latest, color, extra), status_code=302)
