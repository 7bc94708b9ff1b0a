# src/blob/gc.py — v1
"""Garbage collection of unreferenced blobs.

Deleting a Document only tombstones it; its blobs stay in the archive
until collect_garbage() runs. A blob survives as long as any live
(non-deleted) Document references it as specimen or artifact.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from adacta.blob.base_blob_store import BaseBlobStore
    from adacta.documents.base_registry import BaseDocumentRegistry

logger = logging.getLogger(__name__)


class GCReport(BaseModel):
    """Outcome of a garbage collection pass."""

    scanned: int = 0
    referenced: int = 0
    removed: list[str] = Field(default_factory=list)
    dry_run: bool = False


async def collect_garbage(
    store: BaseBlobStore,
    registry: BaseDocumentRegistry,
    dry_run: bool = False,
    protected: set[str] | None = None,
) -> GCReport:
    """Delete blobs no live Document references.

    Args:
        store: Blob store to sweep.
        registry: Source of truth for references.
        dry_run: Report candidates without deleting.
        protected: Extra hashes to keep (e.g. blobs of in-flight jobs).
    """
    live: set[str] = set(protected or ())
    for doc in await registry.list_documents():
        if not doc.is_deleted:
            live |= doc.referenced_hashes()

    report = GCReport(dry_run=dry_run)
    for blob_hash in await store.list_hashes():
        report.scanned += 1
        if blob_hash in live:
            report.referenced += 1
            continue
        if dry_run or await store.delete(blob_hash):
            report.removed.append(blob_hash)

    logger.info(
        "GC %s: scanned=%d referenced=%d removed=%d",
        "dry-run" if dry_run else "done",
        report.scanned, report.referenced, len(report.removed),
    )
    return report
