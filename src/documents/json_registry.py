# src/documents/json_registry.py — v1
"""JSON manifest registry (default REGISTRY_BACKEND=json).

One manifest file per Document under {root}/documents/<id[:2]>/<id>.json.
Writes go through a temporary file and an atomic rename. A per-id
asyncio lock makes read-verify-write atomic within the process; use the
sqlite backend when several processes share one registry.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from adacta.core.errors import DocumentNotFound
from adacta.core.locks import KeyedLock
from adacta.core.models import Document
from adacta.documents.base_registry import (
    BaseDocumentRegistry,
    Mutation,
    apply_mutation,
    tombstone,
)
from adacta.documents.manifest import ManifestError, dump_manifest, load_manifest

logger = logging.getLogger(__name__)


class JsonDocumentRegistry(BaseDocumentRegistry):
    """File-based registry storing one manifest per Document."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser() / "documents"
        self._root.mkdir(parents=True, exist_ok=True)
        self._locks = KeyedLock()

    async def create(
        self,
        specimen_hash: str,
        tags: list[str] | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Document:
        doc = Document(
            specimen_hash=specimen_hash,
            tags=list(tags or []),
            metadata=dict(metadata or {}),
        )
        async with self._locks.hold(doc.id):
            self._write(doc)
        logger.info("Registered document %s (specimen %s)", doc.id, specimen_hash[:12])
        return doc

    async def get(self, document_id: str) -> Document:
        return self._read(document_id)

    async def update(
        self, document_id: str, expected_version: int, mutation: Mutation
    ) -> Document:
        async with self._locks.hold(document_id):
            current = self._read(document_id)
            updated = apply_mutation(current, expected_version, mutation)
            self._write(updated)
        return updated

    async def delete(self, document_id: str) -> Document:
        async with self._locks.hold(document_id):
            current = self._read(document_id)
            if current.is_deleted:
                return current
            deleted = tombstone(current)
            self._write(deleted)
        logger.info("Tombstoned document %s at version %d", document_id, deleted.version)
        return deleted

    async def list_documents(self) -> list[Document]:
        documents: list[Document] = []
        for path in sorted(self._root.glob("*/*.json")):
            try:
                documents.append(load_manifest(path.read_bytes()))
            except (OSError, ManifestError) as exc:
                logger.warning("Skipping unreadable manifest %s: %s", path, exc)
        return documents

    async def import_document(self, document: Document) -> bool:
        async with self._locks.hold(document.id):
            if self._path(document.id).exists():
                return False
            self._write(document)
        return True

    # ------------------------------------------------------------------

    def _path(self, document_id: str) -> Path:
        safe_id = document_id.replace("/", "_").replace("\\", "_")
        return self._root / safe_id[:2] / f"{safe_id}.json"

    def _read(self, document_id: str) -> Document:
        try:
            raw = self._path(document_id).read_bytes()
        except FileNotFoundError:
            raise DocumentNotFound(document_id) from None
        return load_manifest(raw)

    def _write(self, document: Document) -> None:
        path = self._path(document.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(dump_manifest(document))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)
