# src/index/base_search_index.py — v1
"""Abstract search index interface.

The index stores IndexRecords keyed by document id and tagged with the
registry version they were projected from. Backends reject writes
older than what they already hold.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from adacta.core.models import IndexRecord, SearchHit


class BaseSearchIndex(ABC):
    """Unified interface for search engine backends."""

    @abstractmethod
    async def ensure(self) -> None:
        """Create the index if it does not exist yet."""

    @abstractmethod
    async def bulk_upsert(self, records: list[IndexRecord]) -> list[str]:
        """Insert or replace records.

        Returns:
            Ids whose write was rejected as stale.

        Raises:
            TransientError: If the engine is unreachable or overloaded.
        """

    @abstractmethod
    async def delete(self, document_id: str, version: int | None = None) -> bool:
        """Remove a record. Returns False if none existed.

        With a version, writes older than it stay rejected after the delete.
        """

    @abstractmethod
    async def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        """Full-text query across indexed fields."""

    @abstractmethod
    async def list_versions(self) -> dict[str, int]:
        """Return document_id -> indexed version for every record."""

    async def close(self) -> None:
        """Release client resources."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Backend identifier (memory, elasticsearch, ...)."""
