# SPDX-License-Identifier: MIT
"""Middleware for the mirror server."""

from .errors import (
    APIError,
    ErrorCode,
    ErrorDetail,
    ForbiddenError,
    InvalidManifestError,
    InvalidRequestError,
    InvalidVersionError,
    NotPrivatePackageError,
    PackageNotFoundError,
    UnauthorizedError,
    VersionExistsError,
    VersionNotFoundError,
    add_error_handlers,
)

__all__ = [
    "APIError",
    "ErrorCode",
    "ErrorDetail",
    "ForbiddenError",
    "InvalidManifestError",
    "InvalidRequestError",
    "InvalidVersionError",
    "NotPrivatePackageError",
    "PackageNotFoundError",
    "UnauthorizedError",
    "VersionExistsError",
    "VersionNotFoundError",
    "add_error_handlers",
]
