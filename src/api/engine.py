# src/api/engine.py — v1
"""Public API facade — single entry point to the archive.

Usage:
    async with ArchiveEngine(load_settings()) as engine:
        doc = await engine.ingest(data, tags=["invoice"])
        await engine.wait_idle()
        hits = await engine.search("acme")

The engine wires blob store, registry, executor, orchestrator and
synchronizer from Settings. Runtime and search clients can be injected;
the engine owns their lifecycle either way.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from adacta.api.models import EngineStats
from adacta.blob.base_blob_store import BaseBlobStore
from adacta.blob.bundle import import_bundle
from adacta.blob.gc import GCReport, collect_garbage
from adacta.blob.local_store import LocalBlobStore
from adacta.blob.models import ImportReport
from adacta.config.settings import Settings, load_settings
from adacta.config.steps import DEFAULT_STEPS, STEP_PLUGINS, load_step_definitions
from adacta.core.errors import DocumentDeleted, TransientError
from adacta.core.locks import KeyedLock
from adacta.core.models import Document, SearchHit, StepDefinition, utcnow
from adacta.documents.base_registry import BaseDocumentRegistry, update_with_retry
from adacta.documents.registry_factory import create_registry
from adacta.executor.base_runtime import BaseContainerRuntime
from adacta.executor.executor import ContainerExecutor
from adacta.executor.runtime_factory import create_runtime
from adacta.index.base_search_index import BaseSearchIndex
from adacta.index.index_factory import create_search_index
from adacta.index.synchronizer import IndexSynchronizer, ReconcileReport
from adacta.pipeline.orchestrator import PipelineOrchestrator
from adacta.pipeline.registry import StepRegistry

logger = logging.getLogger(__name__)

# Statuses of Documents whose pipeline has finished; these wait in the inbox.
INBOX_STATUSES: frozenset[str] = frozenset({"processed", "partially_failed", "failed"})


class ArchiveEngine:
    """Archive facade with an explicit start()/close() lifecycle.

    Args:
        settings: Application settings. Loaded from .env if None.
        blob_store: Override for the local blob store.
        registry: Override for the configured registry backend.
        runtime: Override for the configured container runtime.
        search_index: Override for the configured search backend.
        steps: Step definitions. Defaults to PIPELINE_STEPS_FILE or DEFAULT_STEPS.
        plugins: Dotted paths of custom BaseStep classes. Defaults to STEP_PLUGINS.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        blob_store: BaseBlobStore | None = None,
        registry: BaseDocumentRegistry | None = None,
        runtime: BaseContainerRuntime | None = None,
        search_index: BaseSearchIndex | None = None,
        steps: Iterable[StepDefinition] | None = None,
        plugins: Iterable[str] | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        s = self._settings

        self._blob_store = blob_store or LocalBlobStore(s.archive_root)
        self._registry = registry or create_registry(s)
        self._runtime = runtime or create_runtime(s)
        self._index = search_index or create_search_index(s)

        self._executor = ContainerExecutor(
            self._runtime,
            work_root=s.work_root,
            pool_size=s.executor_pool_size,
            queue_limit=s.executor_queue_limit,
            keep_failed_workdirs=s.executor_keep_failed_workdirs,
        )
        if steps is None:
            steps = (
                load_step_definitions(s.pipeline_steps_file, s)
                if s.pipeline_steps_file
                else DEFAULT_STEPS
            )
        self._steps = StepRegistry()
        self._steps.load_all(
            steps,
            self._executor,
            plugins=STEP_PLUGINS if plugins is None else plugins,
            disabled=set(s.disabled_steps_list),
        )
        self._synchronizer = IndexSynchronizer(
            self._registry,
            self._index,
            self._blob_store,
            text_artifacts=s.search_text_artifacts_list,
            max_attempts=s.sync_max_attempts,
            retry_delay_s=s.sync_retry_delay_s,
        )
        self._orchestrator = PipelineOrchestrator(
            self._registry,
            self._blob_store,
            self._steps,
            synchronizer=self._synchronizer,
            update_attempts=s.registry_update_attempts,
        )
        # Held by writers of new blob references (ingest, reingest, import)
        # and by garbage collection, which must see a settled reference set.
        self._gc_lock = asyncio.Lock()
        self._doc_locks = KeyedLock()
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> ReconcileReport | None:
        """Prepare storage, reconcile the index and resume interrupted runs."""
        if self._started:
            return None
        if isinstance(self._blob_store, LocalBlobStore):
            self._blob_store.purge_staging()
        await self._synchronizer.start()
        self._started = True

        report: ReconcileReport | None = None
        if self._settings.reconcile_on_start:
            try:
                report = await self._synchronizer.reconcile()
            except TransientError as exc:
                logger.warning("Startup reconcile skipped, index unavailable: %s", exc)
        if self._settings.resume_interrupted_on_start:
            await self._orchestrator.resume_interrupted()
        logger.info(
            "Engine started: %d steps, runtime=%s, index=%s",
            len(self._steps.step_names),
            self._runtime.provider_name,
            self._index.provider_name,
        )
        return report

    async def close(self) -> None:
        """Cancel in-flight runs and release clients."""
        await self._orchestrator.close()
        await self._synchronizer.drain()
        await self._synchronizer.close()
        await self._index.close()
        await self._runtime.close()
        self._registry.close()
        self._started = False
        logger.info("Engine closed")

    async def __aenter__(self) -> ArchiveEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def blob_store(self) -> BaseBlobStore:
        return self._blob_store

    @property
    def registry(self) -> BaseDocumentRegistry:
        return self._registry

    @property
    def executor(self) -> ContainerExecutor:
        return self._executor

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        return self._orchestrator

    @property
    def synchronizer(self) -> IndexSynchronizer:
        return self._synchronizer

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        data: bytes,
        tags: list[str] | None = None,
        metadata: dict[str, str] | None = None,
        dedup: bool = True,
    ) -> Document:
        """Archive a specimen and start its pipeline.

        With dedup, a specimen already archived by a live Document
        returns that Document instead of registering a new one.
        """
        async with self._gc_lock:
            specimen_hash = await self._blob_store.put(data)
            return await self._register(specimen_hash, tags, metadata, dedup)

    async def ingest_file(
        self,
        path: Path,
        tags: list[str] | None = None,
        metadata: dict[str, str] | None = None,
        dedup: bool = True,
    ) -> Document:
        """Archive a specimen from disk without loading it into memory."""
        async with self._gc_lock:
            specimen_hash = await self._blob_store.put_file(Path(path))
            return await self._register(specimen_hash, tags, metadata, dedup)

    async def _register(
        self,
        specimen_hash: str,
        tags: list[str] | None,
        metadata: dict[str, str] | None,
        dedup: bool,
    ) -> Document:
        if dedup:
            existing = await self._registry.find_by_specimen(specimen_hash)
            if existing is not None:
                logger.info("Specimen %s already archived as %s", specimen_hash[:12], existing.id)
                return existing
        doc = await self._registry.create(specimen_hash, tags=tags, metadata=metadata)
        self._synchronizer.submit(doc.id)
        await self._orchestrator.submit(doc.id)
        return doc

    async def reingest(self, document_id: str) -> Document:
        """Reprocess a Document from its specimen, superseding any run in flight.

        Raises:
            DocumentNotFound: If the id was never registered.
            DocumentDeleted: If the Document is a tombstone.
        """
        async with self._gc_lock, self._doc_locks.hold(document_id):
            doc = await self._registry.get(document_id)
            if doc.is_deleted:
                raise DocumentDeleted(document_id)
            await self._orchestrator.submit(document_id)
            return doc

    async def delete(self, document_id: str) -> Document:
        """Cancel outstanding Jobs, tombstone the Document and drop its index entry.

        Blobs stay in the archive until collect_garbage() runs.
        """
        async with self._doc_locks.hold(document_id):
            await self._orchestrator.cancel(document_id, reason="document deleted")
            tombstone = await self._registry.delete(document_id)
        try:
            await self._synchronizer.delete(document_id, tombstone.version)
        except TransientError as exc:
            logger.warning("Index delete of %s deferred to reconcile: %s", document_id, exc)
        return tombstone

    async def archive(self, document_id: str) -> Document:
        """File a reviewed Document, taking it out of the inbox.

        Archiving an already archived Document returns it unchanged.

        Raises:
            DocumentNotFound: If the id was never registered.
            DocumentDeleted: If the Document is a tombstone.
        """
        doc = await self._registry.get(document_id)
        if doc.is_deleted:
            raise DocumentDeleted(document_id)
        if doc.is_archived:
            return doc

        def mark(d: Document) -> None:
            if d.archived_at is None:
                d.archived_at = utcnow()

        doc = await update_with_retry(
            self._registry, document_id, mark, self._settings.registry_update_attempts
        )
        self._synchronizer.submit(document_id)
        logger.info("Archived document %s", document_id)
        return doc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def inbox(self) -> list[Document]:
        """Finished, not yet archived Documents, oldest upload first."""
        docs = await self._registry.list_documents()
        pending = [
            d for d in docs
            if d.status in INBOX_STATUSES and not d.is_archived
        ]
        return sorted(pending, key=lambda d: (d.created_at, d.id))

    async def get_document(self, document_id: str) -> Document:
        return await self._registry.get(document_id)

    async def list_documents(self, include_deleted: bool = False) -> list[Document]:
        docs = await self._registry.list_documents()
        return docs if include_deleted else [d for d in docs if not d.is_deleted]

    async def find_by_specimen(self, specimen_hash: str) -> Document | None:
        return await self._registry.find_by_specimen(specimen_hash)

    async def read_artifact(self, document_id: str, artifact_type: str) -> bytes:
        """Return the content of one artifact (or the specimen).

        Raises:
            DocumentDeleted: If the Document is a tombstone.
            KeyError: If the Document has no such artifact.
        """
        doc = await self._registry.get(document_id)
        if doc.is_deleted:
            raise DocumentDeleted(document_id)
        blob_hash = doc.available_artifacts().get(artifact_type)
        if blob_hash is None:
            raise KeyError(f"Document {document_id} has no artifact '{artifact_type}'")
        return await self._blob_store.get(blob_hash)

    async def read_log(self, document_id: str, step: str) -> str:
        """Return the last container output recorded for a step."""
        doc = await self._registry.get(document_id)
        blob_hash = doc.logs.get(step)
        if blob_hash is None:
            raise KeyError(f"Document {document_id} has no log for step '{step}'")
        return (await self._blob_store.get(blob_hash)).decode("utf-8", errors="replace")

    async def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        return await self._synchronizer.search(query, limit)

    async def stats(self) -> EngineStats:
        docs = await self._registry.list_documents()
        return EngineStats(
            executor=self._executor.stats,
            active_documents=self._orchestrator.active_documents,
            documents_by_status=dict(Counter(d.status for d in docs)),
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def export(
        self,
        document_ids: Iterable[str],
        destination: Path,
        include_logs: bool = False,
    ) -> Path:
        """Pack Documents with their specimen and artifacts into a bundle."""
        docs = [await self._registry.get(doc_id) for doc_id in document_ids]
        names: dict[str, str] = {}
        for doc in docs:
            for artifact, blob_hash in doc.available_artifacts().items():
                names.setdefault(blob_hash, f"{doc.id}/{artifact}")
            if include_logs:
                for step, blob_hash in doc.logs.items():
                    names.setdefault(blob_hash, f"{doc.id}/logs/{step}")
        return await self._blob_store.export(
            names.keys(), Path(destination), names=names, documents=docs
        )

    async def import_bundle(self, bundle: Path) -> ImportReport:
        """Restore blobs and Documents from a bundle.

        Documents already registered are left untouched.
        """
        async with self._gc_lock:
            report, documents = await import_bundle(self._blob_store, Path(bundle))
            restored: list[str] = []
            for doc in documents:
                if await self._registry.import_document(doc):
                    restored.append(doc.id)
                    self._synchronizer.submit(doc.id)
        report.documents = restored
        logger.info("Restored %d of %d documents from %s", len(restored), len(documents), bundle)
        return report

    async def reconcile(self) -> ReconcileReport:
        return await self._synchronizer.reconcile()

    async def collect_garbage(self, dry_run: bool = False) -> GCReport:
        """Sweep unreferenced blobs once no pipeline is writing new ones.

        Ingestion, re-ingestion and bundle import wait until the sweep is done.
        """
        async with self._gc_lock:
            await self._orchestrator.wait_idle()
            return await collect_garbage(self._blob_store, self._registry, dry_run=dry_run)

    async def wait_idle(self) -> None:
        """Wait for every pipeline run and queued index sync to finish."""
        await self._orchestrator.wait_idle()
        await self._synchronizer.drain()
