# src/api/models.py — v1
"""Engine-level models: EngineStats."""

from __future__ import annotations

from pydantic import BaseModel, Field

from adacta.executor.models import ExecutorStats


class EngineStats(BaseModel):
    """Snapshot of engine activity."""

    executor: ExecutorStats
    active_documents: list[str] = Field(default_factory=list)
    documents_by_status: dict[str, int] = Field(default_factory=dict)
