# SPDX-License-Identifier: MIT
"""Integrity checks for cached package archives.

Archives are gzip-compressed tarballs. Checking the two-byte gzip magic
marker rejects zero-byte files, HTML error pages and most truncated
transfers without needing an upstream-supplied digest.
"""

import hashlib
from pathlib import Path

import aiofiles

GZIP_MAGIC = b"\x1f\x8b"


def is_gzip_bytes(data: bytes) -> bool:
    """Return True if ``data`` starts with the gzip magic marker."""
    return len(data) >= len(GZIP_MAGIC) and data[: len(GZIP_MAGIC)] == GZIP_MAGIC


async def is_gzip_file(file_path: Path) -> bool:
    """Return True if the file exists, is non-empty and starts with the gzip
    magic marker. Unreadable files count as invalid."""
    try:
        async with aiofiles.open(file_path, "rb") as f:
            head = await f.read(len(GZIP_MAGIC))
    except OSError:
        return False
    return is_gzip_bytes(head)


def compute_sha256(data: bytes) -> str:
    """Compute the lowercase hex SHA256 of bytes data."""
    return hashlib.sha256(data).hexdigest()
