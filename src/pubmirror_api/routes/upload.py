# SPDX-License-Identifier: MIT
"""Publishing and uploader management endpoints.

Publishing follows the pub client's three-step flow: fetch the upload URL,
POST the archive as multipart form data, then follow the redirect to the
finish endpoint, which reports success or the error message.
"""

from typing import Annotated, Optional
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from starlette.datastructures import UploadFile

from ..auth import resolve_uploader
from ..config import APIConfig
from ..middleware.errors import APIError, InvalidManifestError, InvalidRequestError
from ..service import RegistryService
from .deps import get_config, get_service, invalidate_package, resolve_url

router = APIRouter()

logger = structlog.get_logger()

UPLOAD_PATH = "/api/packages/versions/newUpload"
FINISH_PATH = "/api/packages/versions/newUploadFinish"


def success_message(message: str) -> dict:
    return {"success": {"message": message}}


@router.get("/api/packages/versions/new")
async def get_upload_url(request: Request) -> dict:
    """Tell the client where to POST the archive."""
    return {"url": resolve_url(request, UPLOAD_PATH), "fields": {}}


async def _read_archive(request: Request) -> bytes:
    form = await request.form()
    for _, value in form.multi_items():
        if isinstance(value, UploadFile):
            return await value.read()
    raise InvalidManifestError("Upload contains no archive file")


@router.post(UPLOAD_PATH)
async def upload_archive(
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
    config: Annotated[APIConfig, Depends(get_config)],
) -> RedirectResponse:
    """Accept an archive and redirect to the finish endpoint."""
    try:
        uploader = await resolve_uploader(request, config.auth)
        data = await _read_archive(request)
        published = await service.publish(data, uploader)
    except APIError as e:
        logger.info("Rejected upload", code=e.code, error=e.message)
        target = f"{FINISH_PATH}?error={quote(e.message)}"
        return RedirectResponse(resolve_url(request, target), status_code=302)

    await invalidate_package(request, published.pubspec["name"])
    return RedirectResponse(resolve_url(request, FINISH_PATH), status_code=302)


@router.get(FINISH_PATH)
async def upload_finish(error: Optional[str] = None) -> dict:
    """Report the outcome of the upload."""
    if error is not None:
        raise InvalidRequestError(error)
    return success_message("Successfully uploaded package.")


@router.post("/api/packages/{name}/uploaders")
async def add_uploader(
    name: str,
    email: Annotated[str, Form()],
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
    config: Annotated[APIConfig, Depends(get_config)],
) -> dict:
    """Add an uploader to a package."""
    operator = await resolve_uploader(request, config.auth)
    await service.add_uploader(name, email, operator)
    return success_message("uploader added")


@router.delete("/api/packages/{name}/uploaders/{email}")
async def remove_uploader(
    name: str,
    email: str,
    request: Request,
    service: Annotated[RegistryService, Depends(get_service)],
    config: Annotated[APIConfig, Depends(get_config)],
) -> dict:
    """Remove an uploader from a package."""
    operator = await resolve_uploader(request, config.auth)
    await service.remove_uploader(name, email, operator)
    return success_message("uploader removed")
