# src/pipeline/jobs.py — v1
"""Job state machine and retry backoff.

    pending  -> running | skipped | cancelled
    running  -> succeeded | retrying | permanently_failed | cancelled
    retrying -> running | cancelled
"""

from __future__ import annotations

import logging
import random

from adacta.core.errors import AdactaError
from adacta.core.models import Job, JobState, RetryPolicy

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"running", "skipped", "cancelled"}),
    "running": frozenset({"succeeded", "retrying", "permanently_failed", "cancelled"}),
    "retrying": frozenset({"running", "cancelled"}),
}


class InvalidTransition(AdactaError):
    """Raised when a Job is moved along an edge the state machine lacks."""

    def __init__(self, job: Job, target: str) -> None:
        super().__init__(f"Job {job.id} ({job.step}): {job.state} -> {target} not allowed")
        self.job_id = job.id
        self.source = job.state
        self.target = target


def transition(job: Job, target: JobState, error: str | None = None) -> Job:
    """Move job to target in place.

    Raises:
        InvalidTransition: If the edge is not in TRANSITIONS.
    """
    if target not in TRANSITIONS.get(job.state, frozenset()):
        raise InvalidTransition(job, target)
    logger.debug("Job %s (%s): %s -> %s", job.id, job.step, job.state, target)
    job.state = target
    if target == "running":
        job.attempt += 1
    if error is not None:
        job.error = error
    return job


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay before retrying after failed attempt number attempt (1-based)."""
    delay = policy.delay_for(attempt)
    if policy.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return min(delay, policy.max_delay_s)
