# SPDX-License-Identifier: MIT
"""Semantic version parsing and ordering for pub packages.

Supports MAJOR.MINOR.PATCH format with optional pre-release and build metadata:
- Pre-release: -alpha, -alpha.1, -beta, -dev.3, -rc.1
- Build metadata: +1, +build.123, +20240101

Two orderings are provided. ``version_key`` is plain SemVer precedence.
``priority_key`` is the ordering pub clients use to pick a default version:
every stable release outranks every pre-release, so the last element of a
priority-sorted list is the latest stable version when one exists.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

# Semantic versioning regex pattern (SemVer 2.0.0 compliant)
# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
SEMVER_PATTERN = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"\.(?P<minor>0|[1-9]\d*)"
    r"\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<buildmetadata>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


class InvalidVersionError(Exception):
    """Raised when a version string does not follow semantic versioning."""

    def __init__(self, version: str, message: str = ""):
        self.version = version
        self.message = message or f"Invalid semantic version: {version}"
        super().__init__(self.message)


@dataclass(frozen=True, slots=True)
class Version:
    """A parsed semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    build: Optional[str] = None

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            version += f"-{self.prerelease}"
        if self.build:
            version += f"+{self.build}"
        return version

    @property
    def is_prerelease(self) -> bool:
        """Return True if this is a pre-release version."""
        return self.prerelease is not None


def parse_version(version_string: str) -> Version:
    """Parse a semantic version string into a Version object.

    Raises:
        InvalidVersionError: If the string does not follow semantic versioning

    Examples:
        >>> parse_version("1.2.3")
        Version(major=1, minor=2, patch=3, prerelease=None, build=None)

        >>> parse_version("2.0.0-dev.1+4")
        Version(major=2, minor=0, patch=0, prerelease='dev.1', build='4')
    """
    if not isinstance(version_string, str):
        raise InvalidVersionError(
            str(version_string), f"Version must be a string, got {type(version_string).__name__}"
        )

    version_string = version_string.strip()
    if not version_string:
        raise InvalidVersionError(version_string, "Version string cannot be empty")

    match = SEMVER_PATTERN.match(version_string)
    if not match:
        raise InvalidVersionError(version_string)

    return Version(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=match.group("prerelease"),
        build=match.group("buildmetadata"),
    )


def is_valid_semver(version_string: str) -> bool:
    """Check if a string is a valid semantic version.

    Examples:
        >>> is_valid_semver("1.0.0")
        True
        >>> is_valid_semver("1.0")
        False
    """
    if not isinstance(version_string, str):
        return False
    return SEMVER_PATTERN.match(version_string.strip()) is not None


def _prerelease_key(prerelease: Optional[str]) -> tuple:
    # Numeric identifiers sort before alphanumeric ones; a release sorts
    # after all of its pre-releases.
    if prerelease is None:
        return (1,)
    parts = []
    for part in prerelease.split("."):
        if part.isdigit():
            parts.append((0, int(part), ""))
        else:
            parts.append((1, 0, part))
    return (0, tuple(parts))


def version_key(version: Union[str, Version]) -> tuple:
    """Return a SemVer precedence sort key. Build metadata is ignored.

    Examples:
        >>> sorted(["1.0.0", "2.0.0", "1.0.0-alpha"], key=version_key)
        ['1.0.0-alpha', '1.0.0', '2.0.0']
    """
    v = parse_version(version) if isinstance(version, str) else version
    return (v.major, v.minor, v.patch, _prerelease_key(v.prerelease))


def compare_versions(version1: Union[str, Version], version2: Union[str, Version]) -> int:
    """Compare two versions by SemVer precedence.

    Returns:
        -1 if version1 < version2, 0 if equal, 1 if version1 > version2
    """
    key1 = version_key(version1)
    key2 = version_key(version2)
    if key1 == key2:
        return 0
    return -1 if key1 < key2 else 1


def priority_key(version: Union[str, Version]) -> tuple:
    """Return a sort key that ranks stable releases above pre-releases.

    Strings that are not valid versions rank below everything else.

    Examples:
        >>> sorted(["2.0.0-dev", "1.0.0", "1.1.0"], key=priority_key)
        ['2.0.0-dev', '1.0.0', '1.1.0']
    """
    try:
        v = parse_version(version) if isinstance(version, str) else version
    except InvalidVersionError:
        return (-1, str(version))
    return (0 if v.is_prerelease else 1, version_key(v))


def primary_version(versions: Iterable[str]) -> Optional[str]:
    """Return the highest stable version, or the highest pre-release if
    there is no stable one. None for an empty input."""
    candidates = list(versions)
    if not candidates:
        return None
    return max(candidates, key=priority_key)
