# SPDX-License-Identifier: MIT
"""Pydantic models for API response bodies."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Base for web API payloads, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VersionEntry(BaseModel):
    """Version entry of the pub repository API."""

    version: str
    pubspec: dict[str, Any]
    archive_url: str
    published: datetime | None = None


class PackageVersionsResponse(BaseModel):
    """Response of ``GET /api/packages/<name>``."""

    name: str
    latest: VersionEntry
    versions: list[VersionEntry]


class ListApiPackage(_CamelModel):
    """Package row of the web package listing."""

    name: str
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    latest: str
    updated_at: datetime


class ListApi(_CamelModel):
    """Web package listing page."""

    count: int
    packages: list[ListApiPackage]


class DetailViewVersion(_CamelModel):
    """Version row of the web package detail view."""

    version: str
    created_at: datetime


class WebapiDetailView(_CamelModel):
    """Web package detail view."""

    name: str
    version: str
    description: str = ""
    homepage: str = ""
    uploaders: list[str] = Field(default_factory=list)
    created_at: datetime
    readme: str | None = None
    changelog: str | None = None
    versions: list[DetailViewVersion] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
