# src/index/projection.py — v1
"""Project a Document into its searchable IndexRecord."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from adacta.core.errors import BlobNotFound
from adacta.core.models import Document, IndexRecord

if TYPE_CHECKING:
    from adacta.blob.base_blob_store import BaseBlobStore

logger = logging.getLogger(__name__)


async def build_index_record(
    document: Document,
    blob_store: BaseBlobStore,
    text_artifacts: Iterable[str] = ("text",),
) -> IndexRecord:
    """Build the record for a live Document.

    Textual artifacts are read from the blob store and decoded as UTF-8;
    a missing blob is logged and left out rather than failing the sync.
    """
    texts: list[str] = []
    for artifact in text_artifacts:
        blob_hash = document.artifacts.get(artifact)
        if blob_hash is None:
            continue
        try:
            data = await blob_store.get(blob_hash)
        except BlobNotFound:
            logger.warning(
                "Text artifact '%s' of %s missing from blob store", artifact, document.id
            )
            continue
        texts.append(data.decode("utf-8", errors="replace"))

    return IndexRecord(
        document_id=document.id,
        version=document.version,
        fields={
            "status": document.status,
            "archived": document.is_archived,
            "specimen_hash": document.specimen_hash,
            "artifact_types": sorted(document.artifacts),
            "tags": list(document.tags),
            "metadata": dict(document.metadata),
            "text": "\n".join(texts),
            "created_at": document.created_at.isoformat(),
            "updated_at": document.updated_at.isoformat(),
        },
    )
