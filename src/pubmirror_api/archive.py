# SPDX-License-Identifier: MIT
"""Decoding of uploaded package archives."""

import io
import re
import tarfile
from dataclasses import dataclass
from typing import Any, Optional

import yaml

from .middleware.errors import ErrorDetail, InvalidManifestError

MANIFEST_NAME = "pubspec.yaml"
README_NAME = "readme.md"
CHANGELOG_NAME = "changelog.md"

# Package names pub accepts.
PACKAGE_NAME = re.compile(r"[a-z_][a-z0-9_]*")


@dataclass
class ArchiveContents:
    """Metadata files found at the root of a package archive."""

    pubspec: dict[str, Any]
    pubspec_yaml: str
    readme: Optional[str] = None
    changelog: Optional[str] = None

    @property
    def name(self) -> str:
        return str(self.pubspec["name"])

    @property
    def version(self) -> str:
        return str(self.pubspec["version"])


def _member_name(member: tarfile.TarInfo) -> str:
    name = member.name
    while name.startswith("./"):
        name = name[2:]
    return name


def _read_text(archive: tarfile.TarFile, member: tarfile.TarInfo) -> str:
    f = archive.extractfile(member)
    if f is None:
        raise InvalidManifestError(f"Cannot read {member.name} from archive")
    return f.read().decode("utf-8", errors="replace")


def extract_package_archive(data: bytes) -> ArchiveContents:
    """Read ``pubspec.yaml``, ``README.md`` and ``CHANGELOG.md`` from a
    gzip-compressed tarball.

    Only files at the archive root are considered. README and CHANGELOG are
    matched case-insensitively.

    Raises:
        InvalidManifestError: If the archive is unreadable, the manifest is
            missing or not a YAML mapping with ``name`` and ``version``, or the
            name is not a valid package name
    """
    pubspec_yaml = readme = changelog = None
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                name = _member_name(member)
                if name == MANIFEST_NAME:
                    pubspec_yaml = _read_text(archive, member)
                elif name.lower() == README_NAME:
                    readme = _read_text(archive, member)
                elif name.lower() == CHANGELOG_NAME:
                    changelog = _read_text(archive, member)
    except (tarfile.TarError, OSError, EOFError) as e:
        raise InvalidManifestError(f"Invalid package archive: {e}") from e

    if pubspec_yaml is None:
        raise InvalidManifestError("Did not find any pubspec.yaml file in upload")

    try:
        pubspec = yaml.safe_load(pubspec_yaml)
    except yaml.YAMLError as e:
        raise InvalidManifestError(f"Invalid pubspec.yaml: {e}") from e

    if not isinstance(pubspec, dict):
        raise InvalidManifestError("pubspec.yaml must be a mapping")

    missing = [key for key in ("name", "version") if not pubspec.get(key)]
    if missing:
        raise InvalidManifestError(
            "pubspec.yaml is missing required fields",
            details=[ErrorDetail(field=key, error="required") for key in missing],
        )

    if not PACKAGE_NAME.fullmatch(str(pubspec["name"])):
        raise InvalidManifestError(
            f"Invalid package name: {pubspec['name']!r}",
            details=[ErrorDetail(field="name", error="must match [a-z_][a-z0-9_]*")],
        )

    return ArchiveContents(
        pubspec=pubspec,
        pubspec_yaml=pubspec_yaml,
        readme=readme,
        changelog=changelog,
    )
