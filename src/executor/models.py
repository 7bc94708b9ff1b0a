# src/executor/models.py — v1
"""Container executor models: runtime specs, execution requests and outputs."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from adacta.core.models import ResourceLimits

INPUT_MOUNT = "/in"
OUTPUT_MOUNT = "/out"


class Mount(BaseModel):
    """Bind mount of a host directory into the container."""

    source: Path
    target: str
    read_only: bool = True


class ContainerSpec(BaseModel):
    """Everything the runtime needs to create one container."""

    name: str
    image: str
    command: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    mounts: list[Mount] = Field(default_factory=list)
    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    labels: dict[str, str] = Field(default_factory=dict)


class ContainerExit(BaseModel):
    """Terminal status reported by the runtime."""

    status_code: int
    error: str | None = None


class ExecutionRequest(BaseModel):
    """One step invocation handed to the executor.

    inputs maps artifact type to content; each becomes a read-only file
    /in/<artifact type>. Every name in outputs must appear as /out/<name>.
    """

    label: str
    image: str
    command: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    inputs: dict[str, bytes] = Field(default_factory=dict)
    outputs: list[str] = Field(default_factory=list)
    timeout_s: float = 300.0
    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    transient_exit_codes: list[int] = Field(default_factory=list)


class ExecutionOutputs(BaseModel):
    """Files and diagnostics captured from a successful run."""

    files: dict[str, bytes] = Field(default_factory=dict)
    exit_code: int = 0
    logs: str = ""
    duration_ms: int = 0


class ExecutorStats(BaseModel):
    """Pool occupancy snapshot."""

    pool_size: int
    running: int = 0
    waiting: int = 0
    peak_running: int = 0
    completed: int = 0
    failed: int = 0
