# src/logging/context.py — v1
"""Contextual logging support: attach document_id, job_id, step to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set per document pipeline and per job. asyncio tasks copy the context
# at creation, so values set inside a job task stay local to it.
_document_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "document_id", default=None
)
_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    document_id: str | None = None
    job_id: str | None = None
    step: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        document_id=_document_id.get(),
        job_id=_job_id.get(),
        step=_step.get(),
    )


def set_document_context(document_id: str) -> None:
    """Set document-level context (once per document pipeline)."""
    _document_id.set(document_id)


def set_job_context(job_id: str, step: str) -> None:
    """Set job-level context (once per job task)."""
    _job_id.set(job_id)
    _step.set(step)


def clear_context() -> None:
    """Reset all context variables."""
    _document_id.set(None)
    _job_id.set(None)
    _step.set(None)
