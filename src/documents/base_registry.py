# src/documents/base_registry.py — v1
"""Abstract document registry interface.

The registry is the single source of truth for Document state. Every
mutation names the version the caller last read; the backend applies it
only if the stored version still matches (optimistic concurrency) and
bumps the version by one.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from adacta.core.errors import DocumentDeleted, VersionConflict
from adacta.core.models import Document, utcnow

logger = logging.getLogger(__name__)

# Mutations edit a private copy of the Document in place.
Mutation = Callable[[Document], None]


class BaseDocumentRegistry(ABC):
    """Unified interface for registry storage backends."""

    @abstractmethod
    async def create(
        self,
        specimen_hash: str,
        tags: list[str] | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Document:
        """Register a new Document at version 1 with status 'ingested'."""

    @abstractmethod
    async def get(self, document_id: str) -> Document:
        """Return the current Document (tombstones included).

        Raises:
            DocumentNotFound: If the id was never registered.
        """

    @abstractmethod
    async def update(
        self, document_id: str, expected_version: int, mutation: Mutation
    ) -> Document:
        """Apply mutation if the stored version equals expected_version.

        Raises:
            DocumentNotFound: If the id was never registered.
            DocumentDeleted: If the Document is a tombstone.
            VersionConflict: If the stored version moved on.
        """

    @abstractmethod
    async def delete(self, document_id: str) -> Document:
        """Tombstone a Document and return the tombstone. Idempotent."""

    @abstractmethod
    async def list_documents(self) -> list[Document]:
        """Return every registered Document, tombstones included."""

    async def find_by_specimen(self, specimen_hash: str) -> Document | None:
        """Return the live Document archiving this specimen, if any."""
        for doc in await self.list_documents():
            if doc.specimen_hash == specimen_hash and not doc.is_deleted:
                return doc
        return None

    async def import_document(self, document: Document) -> bool:
        """Insert a Document restored from a bundle. Returns False if present."""
        raise NotImplementedError(f"{type(self).__name__} does not support import")

    def close(self) -> None:
        """Release backend resources."""


def apply_mutation(current: Document, expected_version: int, mutation: Mutation) -> Document:
    """Check the version guard and produce the next Document version.

    Shared by all backends so the concurrency rules cannot drift.
    """
    if current.is_deleted:
        raise DocumentDeleted(current.id)
    if current.version != expected_version:
        raise VersionConflict(current.id, expected_version, current.version)

    draft = current.model_copy(deep=True)
    mutation(draft)
    draft.id = current.id
    draft.version = current.version + 1
    draft.created_at = current.created_at
    draft.updated_at = utcnow()
    return draft


def tombstone(current: Document) -> Document:
    """Produce the 'deleted' successor of a Document."""
    draft = current.model_copy(deep=True)
    draft.status = "deleted"
    draft.version = current.version + 1
    draft.updated_at = utcnow()
    return draft


async def update_with_retry(
    registry: BaseDocumentRegistry,
    document_id: str,
    mutation: Mutation,
    attempts: int = 5,
) -> Document:
    """Read-verify-write loop: re-read and re-apply on VersionConflict.

    Raises:
        VersionConflict: If every attempt lost the race.
        DocumentDeleted: If the Document was tombstoned meanwhile.
    """
    last_conflict: VersionConflict | None = None
    for attempt in range(1, attempts + 1):
        current = await registry.get(document_id)
        try:
            return await registry.update(document_id, current.version, mutation)
        except VersionConflict as exc:
            last_conflict = exc
            logger.debug(
                "Version conflict on %s (attempt %d/%d): %s",
                document_id, attempt, attempts, exc,
            )
    assert last_conflict is not None
    raise last_conflict
