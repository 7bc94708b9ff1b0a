# src/blob/layout.py — v1
"""On-disk layout of the content-addressed archive.

    {archive_root}/objects/ab/cd/abcd...   published blobs, sharded by hash prefix
    {archive_root}/staging/                in-flight writes, same filesystem
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterator
from pathlib import Path

OBJECTS_DIR = "objects"
STAGING_DIR = "staging"

HASH_ALGORITHM = "sha256"
_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


def compute_hash(data: bytes) -> str:
    """Content hash identifying a blob."""
    return hashlib.sha256(data).hexdigest()


def new_hasher():
    return hashlib.new(HASH_ALGORITHM)


def is_valid_hash(value: str) -> bool:
    return bool(_HASH_RE.match(value))


def objects_dir(root: Path) -> Path:
    return root / OBJECTS_DIR


def staging_dir(root: Path) -> Path:
    return root / STAGING_DIR


def object_path(root: Path, blob_hash: str) -> Path:
    """Return the published path of a blob.

    Raises:
        ValueError: If blob_hash is not a lowercase hex SHA-256 digest.
    """
    if not is_valid_hash(blob_hash):
        raise ValueError(f"Invalid blob hash: {blob_hash!r}")
    return objects_dir(root) / blob_hash[:2] / blob_hash[2:4] / blob_hash


def iter_object_paths(root: Path) -> Iterator[Path]:
    """Yield every published blob file."""
    base = objects_dir(root)
    if not base.is_dir():
        return
    for path in sorted(base.glob("*/*/*")):
        if path.is_file() and is_valid_hash(path.name):
            yield path
