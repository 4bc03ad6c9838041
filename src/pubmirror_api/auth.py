# SPDX-License-Identifier: MIT
"""Uploader identity resolution."""

from typing import Optional

import httpx
import structlog
from fastapi import Request

from .config import AuthConfig
from .middleware.errors import UnauthorizedError

logger = structlog.get_logger()


def bearer_token(request: Request) -> Optional[str]:
    """Return the token of the Authorization header, if any."""
    header = request.headers.get("authorization")
    if not header:
        return None
    return header.split(" ")[-1] or None


async def resolve_uploader(
    request: Request,
    config: AuthConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Return the email of the account publishing the request.

    Resolution order:
    1. ``override_uploader_email`` when configured
    2. the ``email`` claim returned by ``tokeninfo_url`` for the bearer token
    3. an empty string (anonymous uploads) when no tokeninfo URL is set

    Raises:
        UnauthorizedError: If a tokeninfo URL is configured and the token is
            missing or rejected
    """
    if config.override_uploader_email:
        return config.override_uploader_email

    if not config.tokeninfo_url:
        return ""

    token = bearer_token(request)
    if token is None:
        raise UnauthorizedError("Missing authorization header")

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=30.0) as own_client:
                response = await own_client.get(
                    config.tokeninfo_url, params={"access_token": token}
                )
        else:
            response = await client.get(config.tokeninfo_url, params={"access_token": token})
    except httpx.HTTPError as e:
        logger.warning("Token lookup failed", error=str(e))
        raise UnauthorizedError("Could not verify access token") from e

    if response.status_code != 200:
        raise UnauthorizedError("Invalid access token")

    try:
        claims = response.json()
    except ValueError as e:
        raise UnauthorizedError("Invalid token info response") from e

    email = claims.get("email") if isinstance(claims, dict) else None
    if not email:
        raise UnauthorizedError("Access token has no email")
    return str(email)
