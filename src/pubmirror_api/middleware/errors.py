# SPDX-License-Identifier: MIT
"""Error handling middleware and exception classes."""

from dataclasses import dataclass, field
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..upstream import UpstreamError

logger = structlog.get_logger()


class ErrorCode:
    """Standard API error codes."""

    INVALID_MANIFEST = "INVALID_MANIFEST"
    INVALID_VERSION = "INVALID_VERSION"
    INVALID_REQUEST = "INVALID_REQUEST"
    VERSION_EXISTS = "VERSION_EXISTS"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    NOT_PRIVATE_PACKAGE = "NOT_PRIVATE_PACKAGE"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# HTTP status codes for each error
ERROR_STATUS_CODES = {
    ErrorCode.INVALID_MANIFEST: 400,
    ErrorCode.INVALID_VERSION: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.VERSION_EXISTS: 409,
    ErrorCode.PACKAGE_NOT_FOUND: 404,
    ErrorCode.VERSION_NOT_FOUND: 404,
    ErrorCode.NOT_PRIVATE_PACKAGE: 403,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.UPSTREAM_UNAVAILABLE: 502,
    ErrorCode.INTERNAL_ERROR: 500,
}


@dataclass
class ErrorDetail:
    """Detailed error information for a specific field or issue."""

    field: str
    error: str
    value: Any = None


@dataclass
class APIError(Exception):
    """Base API exception with structured error response.

    Attributes:
        code: Error code from ErrorCode class
        message: Human-readable error message
        details: List of detailed error information
    """

    code: str
    message: str
    details: list[ErrorDetail] = field(default_factory=list)

    def __str__(self) -> str:
        return self.message

    @property
    def status_code(self) -> int:
        """Get HTTP status code for this error."""
        return ERROR_STATUS_CODES.get(self.code, 500)

    def to_response(self) -> dict:
        """Convert to API response format."""
        response = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = [
                {"field": d.field, "error": d.error} for d in self.details
            ]
        return response


class PackageNotFoundError(APIError):
    """Package does not exist."""

    def __init__(self, package_name: str):
        super().__init__(
            code=ErrorCode.PACKAGE_NOT_FOUND,
            message=f"Package '{package_name}' not found",
        )


class VersionNotFoundError(APIError):
    """Version does not exist."""

    def __init__(self, package_name: str, version: str):
        super().__init__(
            code=ErrorCode.VERSION_NOT_FOUND,
            message=f"Version '{version}' of package '{package_name}' not found",
        )


class VersionExistsError(APIError):
    """Version already published."""

    def __init__(self, package_name: str, version: str):
        super().__init__(
            code=ErrorCode.VERSION_EXISTS,
            message=f"Version '{version}' of package '{package_name}' already exists",
        )


class InvalidManifestError(APIError):
    """Archive or pubspec validation failed."""

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_MANIFEST,
            message=message,
            details=details or [],
        )


class InvalidVersionError(APIError):
    """Version string does not follow semver."""

    def __init__(self, version: str):
        super().__init__(
            code=ErrorCode.INVALID_VERSION,
            message=f"Version '{version}' does not follow semantic versioning format",
        )


class InvalidRequestError(APIError):
    """Malformed request parameters."""

    def __init__(self, message: str):
        super().__init__(code=ErrorCode.INVALID_REQUEST, message=message)


class NotPrivatePackageError(APIError):
    """Package mirrors upstream and cannot be published here."""

    def __init__(self, package_name: str):
        super().__init__(
            code=ErrorCode.NOT_PRIVATE_PACKAGE,
            message=f"'{package_name}' is not a private package; publish it upstream",
        )


class UnauthorizedError(APIError):
    """Authentication required."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=message,
        )


class ForbiddenError(APIError):
    """Not authorized for this operation."""

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(
            code=ErrorCode.FORBIDDEN,
            message=message,
        )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(),
    )


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """Upstream unreachable and nothing cached to fall back on."""
    logger.warning("Upstream unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=ERROR_STATUS_CODES[ErrorCode.UPSTREAM_UNAVAILABLE],
        content={
            "error": {
                "code": ErrorCode.UPSTREAM_UNAVAILABLE,
                "message": "Upstream registry is unavailable",
            }
        },
    )


def add_error_handlers(app: FastAPI) -> None:
    """Register error handlers with the FastAPI application."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
