# src/blob/models.py — v1
"""Blob store models: BlobInfo, bundle manifest entries."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

BUNDLE_FORMAT_VERSION = 1


class BlobInfo(BaseModel):
    """Metadata of a published blob."""

    hash: str
    size: int
    stored_at: datetime


class BundleEntry(BaseModel):
    """One blob packed in an export bundle."""

    hash: str
    name: str
    size: int
    stored_at: datetime


class BundleManifest(BaseModel):
    """MANIFEST.json of an export bundle."""

    format_version: int = BUNDLE_FORMAT_VERSION
    hash_algorithm: str = "sha256"
    created_at: datetime
    entries: list[BundleEntry] = Field(default_factory=list)
    documents: list[str] = Field(default_factory=list)


class ImportReport(BaseModel):
    """Outcome of restoring an export bundle."""

    blobs_imported: int = 0
    blobs_present: int = 0
    documents: list[str] = Field(default_factory=list)
