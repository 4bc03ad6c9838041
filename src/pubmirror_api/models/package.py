# SPDX-License-Identifier: MIT
"""Pydantic models for registry records."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _ensure_utc(value: datetime) -> datetime:
    # Naive timestamps (e.g. read back from SQLite) are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class PackageVersion(BaseModel):
    """One published version of a package."""

    model_config = ConfigDict(from_attributes=True)

    version: str
    pubspec: dict[str, Any]
    pubspec_yaml: str | None = None
    uploader: str | None = None
    readme: str | None = None
    changelog: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @property
    def dependencies(self) -> list[str]:
        """Names of the packages listed under ``dependencies``."""
        deps = self.pubspec.get("dependencies")
        if not isinstance(deps, dict):
            return []
        return [str(name) for name in deps]


class Package(BaseModel):
    """A package with every version in publish order."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    versions: list[PackageVersion]
    private: bool = True
    uploaders: list[str] = Field(default_factory=list)
    download: int = 0
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @property
    def latest(self) -> PackageVersion:
        """The most recently published version."""
        return self.versions[-1]

    def find_version(self, version: str) -> PackageVersion | None:
        """Return the version record matching ``version``, if any."""
        for item in self.versions:
            if item.version == version:
                return item
        return None


class QueryResult(BaseModel):
    """A page of packages plus the total number of matches."""

    count: int
    packages: list[Package] = Field(default_factory=list)
