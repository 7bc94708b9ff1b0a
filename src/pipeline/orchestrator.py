# src/pipeline/orchestrator.py — v1
"""Pipeline orchestrator — artifact-driven scheduling of Jobs per Document.

On every run the orchestrator starts each step whose inputs are
available (initially the specimen alone), and on every success resolves
the steps the new artifacts unlock. Independent branches run
concurrently; Jobs report back over an asyncio.Queue. A permanently
failed step causes every step downstream of its outputs to be skipped
while unrelated branches carry on.

Each Document run owns a CancellationToken. Deleting or re-ingesting a
Document fires it; jobs and containers wind down and the run exits
without touching the registry again.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from adacta.core.errors import BlobNotFound, DocumentNotFound
from adacta.core.locks import KeyedLock
from adacta.core.models import Document, DocumentStatus, Job
from adacta.documents.base_registry import update_with_retry
from adacta.executor.cancellation import CancellationToken
from adacta.logging.context import set_document_context
from adacta.pipeline.dag_builder import ArtifactGraph, build_artifact_graph
from adacta.pipeline.jobs import transition
from adacta.pipeline.runner import JobResult, JobRunner

if TYPE_CHECKING:
    from adacta.blob.base_blob_store import BaseBlobStore
    from adacta.documents.base_registry import BaseDocumentRegistry
    from adacta.index.synchronizer import IndexSynchronizer
    from adacta.pipeline.plugin_kit.base_step import BaseStep
    from adacta.pipeline.registry import StepRegistry

logger = logging.getLogger(__name__)

INTERRUPTED_STATUSES: frozenset[str] = frozenset({"ingested", "processing"})


@dataclass
class PipelineResult:
    """Outcome of one Document run."""

    document_id: str
    status: DocumentStatus | None = None
    jobs: dict[str, Job] = field(default_factory=dict)
    produced: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False
    duration_ms: int = 0

    def _steps_in(self, state: str) -> list[str]:
        return sorted(name for name, job in self.jobs.items() if job.state == state)

    @property
    def succeeded_steps(self) -> list[str]:
        return self._steps_in("succeeded")

    @property
    def failed_steps(self) -> list[str]:
        return self._steps_in("permanently_failed")

    @property
    def skipped_steps(self) -> list[str]:
        return self._steps_in("skipped")

    @property
    def cancelled_steps(self) -> list[str]:
        return self._steps_in("cancelled")


def resolve_status(result: PipelineResult) -> DocumentStatus:
    """processed if nothing failed, partially_failed if something was produced."""
    if not result.failed_steps and not result.skipped_steps:
        return "processed"
    if result.produced:
        return "partially_failed"
    return "failed"


class PipelineOrchestrator:
    """Schedule and supervise the pipeline runs of all Documents.

    Args:
        registry: Document registry (single source of truth).
        blob_store: Source of step inputs.
        steps: Loaded StepRegistry.
        runner: JobRunner; defaults to one writing into blob_store.
        synchronizer: Optional IndexSynchronizer notified after each run.
        update_attempts: Read-verify-write attempts per registry mutation.
    """

    def __init__(
        self,
        registry: BaseDocumentRegistry,
        blob_store: BaseBlobStore,
        steps: StepRegistry,
        runner: JobRunner | None = None,
        synchronizer: IndexSynchronizer | None = None,
        update_attempts: int = 5,
    ) -> None:
        self._registry = registry
        self._blob_store = blob_store
        self._steps = steps
        self._graph = build_artifact_graph(steps.steps.values())
        self._runner = runner or JobRunner(blob_store)
        self._synchronizer = synchronizer
        self._update_attempts = update_attempts
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: dict[str, asyncio.Task[PipelineResult]] = {}
        self._locks = KeyedLock()

    @property
    def graph(self) -> ArtifactGraph:
        return self._graph

    @property
    def active_documents(self) -> list[str]:
        return sorted(self._tasks)

    # ------------------------------------------------------------------
    # Run supervision
    # ------------------------------------------------------------------

    async def submit(self, document_id: str) -> asyncio.Task[PipelineResult]:
        """Start a background run, superseding any run already in flight.

        Submissions and cancellations of one Document are serialized, so
        at most one run per Document exists and it is always the one
        registered for cancellation.
        """
        async with self._locks.hold(document_id):
            await self._cancel(document_id, "superseded by re-ingestion")
            token = CancellationToken()
            task = asyncio.create_task(
                self.process(document_id, token), name=f"pipeline-{document_id[:8]}"
            )
            self._tokens[document_id] = token
            self._tasks[document_id] = task
            task.add_done_callback(functools.partial(self._forget, document_id))
            return task

    async def cancel(self, document_id: str, reason: str = "cancelled") -> bool:
        """Fire the run's token and wait until it has wound down."""
        async with self._locks.hold(document_id):
            return await self._cancel(document_id, reason)

    async def _cancel(self, document_id: str, reason: str) -> bool:
        token = self._tokens.get(document_id)
        task = self._tasks.get(document_id)
        if token is None or task is None:
            return False
        logger.info("Cancelling pipeline of %s: %s", document_id, reason)
        token.cancel(reason)
        await asyncio.wait({task})
        return True

    async def wait_idle(self) -> None:
        """Wait until no Document run is in flight."""
        while self._tasks:
            await asyncio.wait(set(self._tasks.values()))

    async def resume_interrupted(self) -> list[str]:
        """Restart runs of Documents left mid-pipeline by a crash."""
        resumed: list[str] = []
        for doc in await self._registry.list_documents():
            if doc.status in INTERRUPTED_STATUSES and doc.id not in self._tasks:
                await self.submit(doc.id)
                resumed.append(doc.id)
        if resumed:
            logger.info("Resumed %d interrupted documents", len(resumed))
        return resumed

    async def close(self) -> None:
        for token in self._tokens.values():
            token.cancel("shutting down")
        await self.wait_idle()

    def _forget(self, document_id: str, task: asyncio.Task[PipelineResult]) -> None:
        if self._tasks.get(document_id) is task:
            del self._tasks[document_id]
            del self._tokens[document_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Pipeline of %s crashed", document_id, exc_info=task.exception()
            )

    # ------------------------------------------------------------------
    # One Document run
    # ------------------------------------------------------------------

    async def process(
        self, document_id: str, token: CancellationToken | None = None
    ) -> PipelineResult:
        """Run every step against a Document and record the outcome."""
        token = token or CancellationToken()
        set_document_context(document_id)
        start_ns = time.monotonic_ns()
        result = PipelineResult(document_id=document_id)

        def begin(doc: Document) -> None:
            doc.status = "processing"
            doc.artifacts = {}
            doc.logs = {}

        try:
            doc = await update_with_retry(
                self._registry, document_id, begin, self._update_attempts
            )
        except DocumentNotFound as exc:
            logger.warning("Not processing %s: %s", document_id, exc)
            result.cancelled = True
            return result

        available = doc.available_artifacts()
        result.jobs = {
            name: Job(document_id=doc.id, document_version=doc.version, step=name)
            for name in self._graph.step_names
        }
        channel: asyncio.Queue[JobResult] = asyncio.Queue()
        started: set[str] = set()
        in_flight: set[asyncio.Task[None]] = set()
        pending = 0

        def launch() -> None:
            nonlocal pending
            for name in self._graph.ready_steps(available, exclude=started):
                started.add(name)
                step = self._steps.get_or_raise(name)
                task = asyncio.create_task(
                    self._run_job(result.jobs[name], step, dict(available), token, channel)
                )
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
                pending += 1

        logger.info("Processing document %s (version %d)", doc.id, doc.version)
        try:
            launch()
            while pending:
                job_result = await channel.get()
                pending -= 1
                await self._settle(job_result, result, available, started, token)
                launch()
        except BaseException:
            token.cancel("pipeline aborted")
            for task in in_flight:
                task.cancel()
            raise

        for job in result.jobs.values():
            if job.state == "pending":
                transition(job, "cancelled" if token.cancelled else "skipped")

        result.duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        if token.cancelled:
            result.cancelled = True
            logger.info("Run of %s cancelled: %s", document_id, token.reason)
            return result

        status = resolve_status(result)

        def finish(doc: Document) -> None:
            doc.status = status

        try:
            await update_with_retry(self._registry, document_id, finish, self._update_attempts)
        except DocumentNotFound:
            result.cancelled = True
            return result
        result.status = status
        logger.info(
            "Document %s %s: %d succeeded, %d failed, %d skipped, %dms",
            document_id, status, len(result.succeeded_steps),
            len(result.failed_steps), len(result.skipped_steps), result.duration_ms,
        )
        if self._synchronizer is not None:
            self._synchronizer.submit(document_id)
        return result

    async def _settle(
        self,
        job_result: JobResult,
        result: PipelineResult,
        available: dict[str, str],
        started: set[str],
        token: CancellationToken,
    ) -> None:
        """Record a terminal Job and propagate failure downstream."""
        job = job_result.job
        if token.cancelled:
            return

        if job_result.succeeded or job_result.log_hash:
            try:
                await self._record(job.document_id, job.step, job_result)
            except DocumentNotFound as exc:
                token.cancel(str(exc))
                return

        if job_result.succeeded:
            available.update(job_result.artifacts)
            result.produced.update(job_result.artifacts)
            return

        if job.state == "permanently_failed":
            for name in sorted(self._graph.dependents(job.step)):
                if name in started:
                    continue
                started.add(name)
                transition(
                    result.jobs[name], "skipped", error=f"upstream step '{job.step}' failed"
                )
                logger.info("Skipping step '%s': '%s' failed", name, job.step)

    async def _record(self, document_id: str, step: str, job_result: JobResult) -> Document:
        def mutation(doc: Document) -> None:
            doc.artifacts.update(job_result.artifacts)
            if job_result.log_hash:
                doc.logs[step] = job_result.log_hash

        return await update_with_retry(
            self._registry, document_id, mutation, self._update_attempts
        )

    async def _run_job(
        self,
        job: Job,
        step: BaseStep,
        available: dict[str, str],
        token: CancellationToken,
        channel: asyncio.Queue[JobResult],
    ) -> None:
        try:
            inputs = {a: await self._blob_store.get(available[a]) for a in step.inputs}
        except BlobNotFound as exc:
            transition(job, "running")
            transition(job, "permanently_failed", error=str(exc))
            logger.error("Step '%s' input missing: %s", step.name, exc)
            channel.put_nowait(JobResult(job=job))
            return
        try:
            job_result = await self._runner.run(job, step, inputs, token)
        except Exception as exc:
            # Task boundary: the orchestrator must always hear back.
            logger.exception("Job %s (%s) crashed", job.id, step.name)
            job.state = "permanently_failed"
            job.error = f"{type(exc).__name__}: {exc}"
            job_result = JobResult(job=job)
        channel.put_nowait(job_result)
