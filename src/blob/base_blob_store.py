# src/blob/base_blob_store.py — v1
"""Abstract blob store interface.

Blobs are immutable and addressed by the SHA-256 of their content.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from adacta.blob.models import BlobInfo

if TYPE_CHECKING:
    from adacta.core.models import Document


class BaseBlobStore(ABC):
    """Unified interface for content-addressed storage backends."""

    @abstractmethod
    async def put(self, data: bytes) -> str:
        """Store data if absent and return its hash. Idempotent."""

    @abstractmethod
    async def put_file(self, path: Path) -> str:
        """Store a file's content if absent and return its hash."""

    @abstractmethod
    async def get(self, blob_hash: str) -> bytes:
        """Return blob content.

        Raises:
            BlobNotFound: If no blob is stored under blob_hash.
        """

    @abstractmethod
    async def exists(self, blob_hash: str) -> bool:
        """Check whether a blob is stored."""

    @abstractmethod
    async def stat(self, blob_hash: str) -> BlobInfo:
        """Return blob size and publication time.

        Raises:
            BlobNotFound: If no blob is stored under blob_hash.
        """

    @abstractmethod
    async def delete(self, blob_hash: str) -> bool:
        """Remove a whole blob. Returns False if it was absent.

        Only garbage collection calls this, after checking references.
        """

    @abstractmethod
    async def list_hashes(self) -> list[str]:
        """List all stored blob hashes."""

    async def export(
        self,
        hashes: Iterable[str],
        destination: Path,
        names: dict[str, str] | None = None,
        documents: Iterable[Document] = (),
    ) -> Path:
        """Pack the selected blobs into a sealed archive bundle.

        Args:
            hashes: Blob hashes to include.
            destination: Bundle file to create (.tar.gz).
            names: Optional hash -> human-readable entry name.
            documents: Document manifests to include alongside the blobs.

        Returns:
            Path of the published bundle.
        """
        from adacta.blob.bundle import export_bundle

        return await export_bundle(
            self, hashes, destination, names=names, documents=documents
        )
