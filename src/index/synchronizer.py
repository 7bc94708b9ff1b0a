# src/index/synchronizer.py — v1
"""Index synchronizer — keep the search index consistent with the registry.

The registry is the source of truth; the index is a rebuildable cache.
After a successful upsert of version v the synchronizer writes the sync
marker: it updates the Document from v to v+1 setting indexed_version to
v+1, so the marker write itself never makes the Document look stale.

Writes older than what this process already indexed for an id are
dropped before they reach the engine; the engine applies the same rule
with its own version check.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from adacta.core.errors import (
    AdactaError,
    ConsistencyError,
    DocumentNotFound,
    TransientError,
    VersionConflict,
)
from adacta.core.locks import KeyedLock
from adacta.core.models import Document, SearchHit
from adacta.index.projection import build_index_record

if TYPE_CHECKING:
    from adacta.blob.base_blob_store import BaseBlobStore
    from adacta.documents.base_registry import BaseDocumentRegistry
    from adacta.index.base_search_index import BaseSearchIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    scanned: int = 0
    resynced: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    inconsistent: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.failed or self.inconsistent)


class IndexSynchronizer:
    """Project registry state into the search index.

    Args:
        registry: Document registry.
        index: Search index backend.
        blob_store: Source of textual artifacts.
        text_artifacts: Artifact types whose content is indexed as text.
        max_attempts: Attempts per index call before giving up.
        retry_delay_s: Base delay between attempts (doubled each time).
        max_tracked: Ids whose last indexed version is kept for the
            stale-write guard; the least recently written are forgotten
            first and the backend version check still applies to them.
    """

    def __init__(
        self,
        registry: BaseDocumentRegistry,
        index: BaseSearchIndex,
        blob_store: BaseBlobStore,
        text_artifacts: Iterable[str] = ("text",),
        max_attempts: int = 3,
        retry_delay_s: float = 1.0,
        max_tracked: int = 10_000,
    ) -> None:
        self._registry = registry
        self._index = index
        self._blob_store = blob_store
        self._text_artifacts = list(text_artifacts)
        self._max_attempts = max_attempts
        self._retry_delay_s = retry_delay_s
        self._max_tracked = max_tracked
        self._indexed: OrderedDict[str, int] = OrderedDict()
        self._locks = KeyedLock()
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    @property
    def index(self) -> BaseSearchIndex:
        return self._index

    # ------------------------------------------------------------------
    # Lifecycle and background queue
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self._with_retry(self._index.ensure)
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="index-sync")

    async def close(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

    def submit(self, document_id: str) -> None:
        """Queue a Document for background synchronization."""
        self._queue.put_nowait(document_id)

    async def drain(self) -> None:
        """Wait until every queued Document has been handled."""
        if self._worker is not None:
            await self._queue.join()

    async def _run(self) -> None:
        while True:
            document_id = await self._queue.get()
            try:
                await self.sync_by_id(document_id)
            except TransientError as exc:
                logger.warning("Index sync of %s deferred to reconcile: %s", document_id, exc)
            except AdactaError as exc:
                logger.error("Index sync of %s failed: %s", document_id, exc)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_by_id(self, document_id: str) -> bool:
        try:
            document = await self._registry.get(document_id)
        except DocumentNotFound:
            return await self.delete(document_id)
        return await self.sync(document)

    async def sync(self, document: Document) -> bool:
        """Project one Document into the index.

        Sync and delete of the same id are serialized, so a slow write of
        an older version cannot land after the Document's removal.

        Returns:
            False if the write was rejected as stale.

        Raises:
            TransientError: If the index stayed unavailable.
        """
        async with self._locks.hold(document.id):
            if document.is_deleted:
                await self._delete(document.id, document.version)
                return True

            known = self._indexed.get(document.id)
            if known is not None and document.version < known:
                logger.info(
                    "Dropping stale index write for %s: version %d < indexed %d",
                    document.id, document.version, known,
                )
                return False

            record = await build_index_record(document, self._blob_store, self._text_artifacts)
            rejected = await self._with_retry(self._index.bulk_upsert, [record])
            if rejected:
                logger.info(
                    "Index rejected stale write for %s (version %d)", document.id, document.version
                )
                return False

            self._remember(document.id, document.version)
            logger.debug("Indexed %s at version %d", document.id, document.version)
            await self._write_marker(document)
            return True

    async def delete(self, document_id: str, version: int | None = None) -> bool:
        """Remove a Document's index entry.

        With the tombstone version, later writes of older versions are
        refused here and by the index backend.
        """
        async with self._locks.hold(document_id):
            return await self._delete(document_id, version)

    async def _delete(self, document_id: str, version: int | None) -> bool:
        removed = await self._with_retry(self._index.delete, document_id, version)
        if version is not None:
            self._remember(document_id, max(version, self._indexed.get(document_id, 0)))
        if removed:
            logger.info("Removed %s from search index", document_id)
        return removed

    def _remember(self, document_id: str, version: int) -> None:
        self._indexed[document_id] = version
        self._indexed.move_to_end(document_id)
        while len(self._indexed) > self._max_tracked:
            self._indexed.popitem(last=False)

    async def _write_marker(self, document: Document) -> None:
        def mark(doc: Document) -> None:
            doc.indexed_version = document.version + 1

        try:
            await self._registry.update(document.id, document.version, mark)
        except (VersionConflict, DocumentNotFound) as exc:
            # A newer change exists; its own sync or reconcile covers it.
            logger.debug("Sync marker for %s not written: %s", document.id, exc)

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    async def reconcile(self) -> ReconcileReport:
        """Repair every divergence between registry and index.

        Resyncs Documents whose registry version is ahead of their sync
        marker or which are missing from the index, and deletes entries
        of tombstoned or unknown Documents. An index entry newer than the
        registry is reported as a ConsistencyError and rebuilt.
        """
        report = ReconcileReport()
        documents = await self._registry.list_documents()
        index_versions = await self._with_retry(self._index.list_versions)
        registered: set[str] = set()

        for doc in documents:
            report.scanned += 1
            registered.add(doc.id)
            indexed = index_versions.get(doc.id)
            try:
                if doc.is_deleted:
                    if indexed is not None:
                        await self.delete(doc.id, doc.version)
                        report.deleted.append(doc.id)
                    continue

                if indexed is not None and indexed > doc.version:
                    error = ConsistencyError(
                        doc.id, f"index holds version {indexed}, registry {doc.version}"
                    )
                    logger.error("%s", error)
                    report.inconsistent.append(doc.id)
                    async with self._locks.hold(doc.id):
                        await self._with_retry(self._index.delete, doc.id)
                        self._indexed.pop(doc.id, None)
                    indexed = None

                if indexed is None or doc.needs_index_sync:
                    if await self.sync(doc):
                        report.resynced.append(doc.id)
            except TransientError as exc:
                logger.warning("Reconcile of %s failed: %s", doc.id, exc)
                report.failed.append(doc.id)

        for doc_id in sorted(set(index_versions) - registered):
            try:
                await self.delete(doc_id)
                report.deleted.append(doc_id)
            except TransientError as exc:
                logger.warning("Removal of unknown %s failed: %s", doc_id, exc)
                report.failed.append(doc_id)

        logger.info(
            "Reconcile: %d scanned, %d resynced, %d deleted, %d failed, %d inconsistent",
            report.scanned, len(report.resynced), len(report.deleted),
            len(report.failed), len(report.inconsistent),
        )
        return report

    async def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        return await self._with_retry(self._index.search, query, limit)

    async def _with_retry(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await fn(*args)
            except TransientError as exc:
                if attempt >= self._max_attempts:
                    raise
                delay = self._retry_delay_s * (2 ** (attempt - 1))
                logger.warning(
                    "Index call failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt, self._max_attempts, delay, exc,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")
