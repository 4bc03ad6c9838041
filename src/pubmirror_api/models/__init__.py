# SPDX-License-Identifier: MIT
"""Pydantic models for registry records and API responses."""

from .package import Package, PackageVersion, QueryResult
from .responses import (
    DetailViewVersion,
    ListApi,
    ListApiPackage,
    PackageVersionsResponse,
    VersionEntry,
    WebapiDetailView,
)

__all__ = [
    # Registry records
    "Package",
    "PackageVersion",
    "QueryResult",
    # Response models
    "DetailViewVersion",
    "ListApi",
    "ListApiPackage",
    "PackageVersionsResponse",
    "VersionEntry",
    "WebapiDetailView",
]
