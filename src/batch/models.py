# src/batch/models.py — v1
"""Inbox scan models: ScanEntry, ScanResult."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ScanEntry(BaseModel):
    """A single file discovered in the inbox."""

    file_path: str
    filename: str
    format: str
    size_bytes: int
    specimen_hash: str = ""
    status: Literal["new", "archived", "duplicate", "error"] = "new"
    document_id: str | None = None
    error: str | None = None


class ScanResult(BaseModel):
    """Summary of one inbox scan."""

    scan_root: str
    total_files_found: int
    archived: int
    duplicates: int
    errors: int
    entries: list[ScanEntry] = Field(default_factory=list)
    duration_seconds: float
