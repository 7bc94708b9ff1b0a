# src/core/models.py — v1
"""Core domain models: Document, step definitions, Job, IndexRecord.

Documents reference blobs by content hash only; the blob store is the
single owner of bytes.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Artifact type of the original ingested blob.
SPECIMEN = "specimen"

MANIFEST_SCHEMA_VERSION = 1

_ARTIFACT_TYPE_RE = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")

DocumentStatus = Literal[
    "ingested",
    "processing",
    "processed",
    "partially_failed",
    "failed",
    "deleted",
]

JobState = Literal[
    "pending",
    "running",
    "retrying",
    "succeeded",
    "permanently_failed",
    "cancelled",
    "skipped",
]

TERMINAL_JOB_STATES: frozenset[str] = frozenset(
    {"succeeded", "permanently_failed", "cancelled", "skipped"}
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_document_id() -> str:
    """Opaque, stable document identifier."""
    return uuid.uuid4().hex


class Document(BaseModel):
    """Authoritative metadata record of one archived document.

    version starts at 1 and is bumped by the registry on every mutation.
    logs maps step name to the blob holding its last container output.
    indexed_version is the sync marker written by the index synchronizer:
    the registry version the search index is known to reflect.
    archived_at is set once the owner has reviewed the Document and
    filed it; until then a processed Document sits in the inbox.
    """

    schema_version: int = MANIFEST_SCHEMA_VERSION
    id: str = Field(default_factory=new_document_id)
    version: int = 1
    specimen_hash: str
    artifacts: dict[str, str] = Field(default_factory=dict)
    logs: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    status: DocumentStatus = "ingested"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    indexed_version: int | None = None
    archived_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.status == "deleted"

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def needs_index_sync(self) -> bool:
        """True when the registry holds changes the index has not seen."""
        return self.indexed_version is None or self.version > self.indexed_version

    def referenced_hashes(self) -> set[str]:
        """All blob hashes this document points at."""
        return {self.specimen_hash, *self.artifacts.values(), *self.logs.values()}

    def available_artifacts(self) -> dict[str, str]:
        """Artifact type -> hash, including the specimen."""
        return {SPECIMEN: self.specimen_hash, **self.artifacts}


class RetryPolicy(BaseModel):
    """Per-step retry configuration for transient failures."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    max_delay_s: float = 60.0
    jitter: bool = True

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based), without jitter."""
        delay = self.base_delay_s * (self.backoff_factor ** max(attempt - 1, 0))
        return min(delay, self.max_delay_s)


class ResourceLimits(BaseModel):
    """Resource ceilings applied to one container."""

    memory: str = "512m"
    cpus: float = 1.0
    pids: int = 256
    network_disabled: bool = True


class StepDefinition(BaseModel):
    """Static declaration of a containerized pipeline step.

    Input files are mounted read-only under /in, named after their
    artifact type. The step must write one file per declared output
    artifact type under /out.
    """

    name: str
    image: str
    command: list[str] = Field(default_factory=list)
    inputs: list[str] = Field(default_factory=lambda: [SPECIMEN])
    outputs: list[str]
    env: dict[str, str] = Field(default_factory=dict)
    timeout_s: float = 300.0
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    limits: ResourceLimits = Field(default_factory=ResourceLimits)
    transient_exit_codes: list[int] = Field(default_factory=lambda: [75])
    version: str = "1"

    @model_validator(mode="after")
    def validate_artifact_types(self) -> StepDefinition:
        for artifact in (*self.inputs, *self.outputs):
            if not _ARTIFACT_TYPE_RE.match(artifact):
                raise ValueError(
                    f"Step '{self.name}': invalid artifact type {artifact!r}"
                )
        if not self.inputs:
            raise ValueError(f"Step '{self.name}' declares no inputs")
        if not self.outputs:
            raise ValueError(f"Step '{self.name}' declares no outputs")
        if SPECIMEN in self.outputs:
            raise ValueError(f"Step '{self.name}' cannot produce '{SPECIMEN}'")
        overlap = set(self.inputs) & set(self.outputs)
        if overlap:
            raise ValueError(
                f"Step '{self.name}' consumes its own outputs: {sorted(overlap)}"
            )
        return self


class Job(BaseModel):
    """One instantiation of a step against one Document."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    document_id: str
    document_version: int
    step: str
    attempt: int = 0
    state: JobState = "pending"
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_JOB_STATES


class IndexRecord(BaseModel):
    """Search-engine projection of a Document."""

    document_id: str
    version: int
    fields: dict[str, Any] = Field(default_factory=dict)


class SearchHit(BaseModel):
    document_id: str
    score: float = 0.0
