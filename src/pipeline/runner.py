# src/pipeline/runner.py — v1
"""Job runner — execute one step against one Document with retries.

Transient failures are retried with exponential backoff up to the step's
max_attempts; permanent failures are not retried. ResourceExhaustion
backs off without consuming an attempt. Produced files and the combined
container log are written to the blob store; the runner never touches
the registry.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from adacta.core.errors import (
    ExecutionCancelled,
    PermanentError,
    ResourceExhaustion,
    TransientError,
)
from adacta.core.models import Job
from adacta.executor.cancellation import CancellationToken
from adacta.logging.context import set_job_context
from adacta.pipeline.jobs import backoff_delay, transition
from adacta.pipeline.plugin_kit.models import StepContext, StepOutput

if TYPE_CHECKING:
    from adacta.blob.base_blob_store import BaseBlobStore
    from adacta.pipeline.plugin_kit.base_step import BaseStep

logger = logging.getLogger(__name__)


@dataclass
class JobResult:
    """Terminal outcome of one Job."""

    job: Job
    artifacts: dict[str, str] = field(default_factory=dict)
    log_hash: str | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.job.state == "succeeded"


class JobRunner:
    """Drive a Job from pending to a terminal state.

    Args:
        blob_store: Destination for produced artifacts and logs.
    """

    def __init__(self, blob_store: BaseBlobStore) -> None:
        self._blob_store = blob_store

    async def run(
        self,
        job: Job,
        step: BaseStep,
        inputs: dict[str, bytes],
        token: CancellationToken,
    ) -> JobResult:
        """Run job to completion. Never raises for step failures."""
        set_job_context(job.id, step.name)
        start_ns = time.monotonic_ns()
        result = JobResult(job=job)
        policy = step.retry
        exhausted = 0

        while True:
            if token.cancelled:
                transition(job, "cancelled", error=token.reason)
                break
            transition(job, "running")
            logger.debug(
                "Running step '%s' (attempt %d/%d)",
                step.name, job.attempt, policy.max_attempts,
            )
            context = StepContext(
                document_id=job.document_id,
                document_version=job.document_version,
                job_id=job.id,
                attempt=job.attempt,
                inputs=inputs,
                token=token,
            )
            try:
                output = await step.execute(context)
                self._check_outputs(step, output)
                result.artifacts = await self._store_outputs(step, output)
                result.log_hash = await self._store_logs(output.logs)
                transition(job, "succeeded")
                break
            except ExecutionCancelled as exc:
                transition(job, "cancelled", error=str(exc))
                break
            except ResourceExhaustion as exc:
                # Back-pressure is not the step's fault.
                exhausted += 1
                job.attempt -= 1
                transition(job, "retrying", error=str(exc))
                delay = backoff_delay(policy, exhausted)
                logger.info("Step '%s' waiting for capacity, retrying in %.1fs", step.name, delay)
                if not await self._sleep(job, token, delay):
                    break
            except TransientError as exc:
                result.log_hash = await self._store_logs(exc.logs) or result.log_hash
                if job.attempt >= policy.max_attempts:
                    transition(job, "permanently_failed", error=str(exc))
                    logger.error(
                        "Step '%s' failed after %d attempts: %s",
                        step.name, job.attempt, exc,
                    )
                    break
                transition(job, "retrying", error=str(exc))
                delay = backoff_delay(policy, job.attempt)
                logger.warning(
                    "Step '%s' transient failure (attempt %d/%d), retrying in %.1fs: %s",
                    step.name, job.attempt, policy.max_attempts, delay, exc,
                )
                if not await self._sleep(job, token, delay):
                    break
            except PermanentError as exc:
                result.log_hash = await self._store_logs(exc.logs) or result.log_hash
                transition(job, "permanently_failed", error=str(exc))
                logger.error("Step '%s' failed permanently: %s", step.name, exc)
                break
            except Exception as exc:
                # Task boundary: a broken plugin must not take the pipeline down.
                transition(job, "permanently_failed", error=f"{type(exc).__name__}: {exc}")
                logger.exception("Step '%s' raised unexpectedly", step.name)
                break

        result.duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        logger.info(
            "Job %s (%s) %s after %d attempt(s), %dms",
            job.id, step.name, job.state, job.attempt, result.duration_ms,
        )
        return result

    @staticmethod
    async def _sleep(job: Job, token: CancellationToken, delay: float) -> bool:
        try:
            await token.sleep(delay)
        except ExecutionCancelled as exc:
            transition(job, "cancelled", error=str(exc))
            return False
        return True

    @staticmethod
    def _check_outputs(step: BaseStep, output: StepOutput) -> None:
        missing = [a for a in step.outputs if a not in output.files]
        if missing:
            raise PermanentError(f"Step '{step.name}' did not produce {missing}")

    async def _store_outputs(self, step: BaseStep, output: StepOutput) -> dict[str, str]:
        artifacts: dict[str, str] = {}
        for artifact in step.outputs:
            artifacts[artifact] = await self._blob_store.put(output.files[artifact])
        return artifacts

    async def _store_logs(self, logs: str) -> str | None:
        if not logs:
            return None
        return await self._blob_store.put(logs.encode("utf-8"))
