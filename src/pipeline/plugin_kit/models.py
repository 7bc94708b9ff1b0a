# src/pipeline/plugin_kit/models.py — v1
"""Step plugin models: StepContext, StepOutput."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from adacta.executor.cancellation import CancellationToken


@dataclass
class StepContext:
    """Everything a step sees for one attempt.

    inputs maps each declared input artifact type to its content.
    """

    document_id: str
    document_version: int
    job_id: str
    attempt: int
    inputs: dict[str, bytes]
    token: CancellationToken = field(default_factory=CancellationToken)


class StepOutput(BaseModel):
    """Standard return type for all BaseStep.execute() calls."""

    files: dict[str, bytes] = Field(default_factory=dict)
    logs: str = ""
    duration_ms: int = 0
