# SPDX-License-Identifier: MIT
"""Package archive download endpoint.

Archives are served from the local tarball cache. On a miss the archive is
fetched from upstream and cached before it is served; when that fails the
client is redirected to upstream instead.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, StreamingResponse
from starlette.responses import Response

from ..package_store import TarballNotFoundError
from ..service import RegistryService
from .deps import get_service, is_pub_client

router = APIRouter()

logger = structlog.get_logger()

ARCHIVE_MEDIA_TYPE = "application/octet-stream"


@router.get("/packages/{name}/versions/{version}.tar.gz")
async def download_archive(
    name: str,
    version: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
) -> Response:
    """Stream the archive of ``name`` ``version``."""
    upstream_url = service.upstream.archive_url(name, version)

    package = await service.get_package(name)
    if package is not None and is_pub_client(request):
        await service.record_download(name, version)

    if not await service.ensure_archive(name, version):
        logger.info("Redirecting archive request upstream", package=name, version=version)
        return RedirectResponse(upstream_url, status_code=302)

    try:
        stream = service.package_store.download(name, version)
    except TarballNotFoundError:
        return RedirectResponse(upstream_url, status_code=302)
    return StreamingResponse(stream, media_type=ARCHIVE_MEDIA_TYPE)
