# src/documents/sqlite_registry.py — v1
"""SQLite-based registry (REGISTRY_BACKEND=sqlite).

Uses stdlib sqlite3. The version guard is enforced by the database:
``UPDATE ... WHERE id = ? AND version = ?`` touches zero rows when another
writer got there first, which also holds across processes.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from adacta.core.errors import DocumentNotFound, VersionConflict
from adacta.core.models import Document
from adacta.documents.base_registry import (
    BaseDocumentRegistry,
    Mutation,
    apply_mutation,
    tombstone,
)
from adacta.documents.manifest import ManifestError, dump_manifest, load_manifest

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    version INTEGER NOT NULL,
    specimen_hash TEXT NOT NULL,
    status TEXT NOT NULL,
    manifest TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_specimen_hash ON documents(specimen_hash);
"""


class SqliteDocumentRegistry(BaseDocumentRegistry):
    """SQLite-backed registry with database-enforced version checks."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

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
        self._insert(doc)
        logger.info("Registered document %s (specimen %s)", doc.id, specimen_hash[:12])
        return doc

    async def get(self, document_id: str) -> Document:
        row = self._conn.execute(
            "SELECT manifest FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        if row is None:
            raise DocumentNotFound(document_id)
        return load_manifest(row[0])

    async def update(
        self, document_id: str, expected_version: int, mutation: Mutation
    ) -> Document:
        current = await self.get(document_id)
        updated = apply_mutation(current, expected_version, mutation)
        self._swap(updated, expected_version)
        return updated

    async def delete(self, document_id: str) -> Document:
        current = await self.get(document_id)
        if current.is_deleted:
            return current
        deleted = tombstone(current)
        self._swap(deleted, current.version)
        logger.info("Tombstoned document %s at version %d", document_id, deleted.version)
        return deleted

    async def list_documents(self) -> list[Document]:
        documents: list[Document] = []
        for (raw,) in self._conn.execute("SELECT manifest FROM documents ORDER BY id"):
            try:
                documents.append(load_manifest(raw))
            except ManifestError as exc:
                logger.warning("Skipping unreadable manifest row: %s", exc)
        return documents

    async def find_by_specimen(self, specimen_hash: str) -> Document | None:
        rows = self._conn.execute(
            "SELECT manifest FROM documents WHERE specimen_hash = ? AND status != 'deleted'",
            (specimen_hash,),
        ).fetchall()
        return load_manifest(rows[0][0]) if rows else None

    async def import_document(self, document: Document) -> bool:
        try:
            self._insert(document)
        except sqlite3.IntegrityError:
            return False
        return True

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ------------------------------------------------------------------

    def _insert(self, doc: Document) -> None:
        with self._conn:
            self._conn.execute(
                """INSERT INTO documents
                   (id, version, specimen_hash, status, manifest, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    doc.id,
                    doc.version,
                    doc.specimen_hash,
                    doc.status,
                    dump_manifest(doc, indent=None),
                    doc.updated_at.isoformat(),
                ),
            )

    def _swap(self, doc: Document, expected_version: int) -> None:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE documents
                   SET version = ?, status = ?, manifest = ?, updated_at = ?
                   WHERE id = ? AND version = ?""",
                (
                    doc.version,
                    doc.status,
                    dump_manifest(doc, indent=None),
                    doc.updated_at.isoformat(),
                    doc.id,
                    expected_version,
                ),
            )
        if cursor.rowcount == 0:
            row = self._conn.execute(
                "SELECT version FROM documents WHERE id = ?", (doc.id,)
            ).fetchone()
            if row is None:
                raise DocumentNotFound(doc.id)
            raise VersionConflict(doc.id, expected_version, row[0])
