# SPDX-License-Identifier: MIT
"""API route modules."""

from . import download, packages, upload, webapi

__all__ = ["packages", "download", "upload", "webapi"]
