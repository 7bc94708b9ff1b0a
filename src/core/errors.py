# src/core/errors.py — v1
"""Error taxonomy shared by every component.

TransientError and PermanentError drive the per-step retry policy.
ResourceExhaustion is a back-pressure signal, never a Document failure.
VersionConflict asks the caller to re-read and retry. ConsistencyError
flags a registry/index divergence found by reconciliation.
"""

from __future__ import annotations


class AdactaError(Exception):
    """Base class for all domain errors."""


class TransientError(AdactaError):
    """Infrastructure hiccup or timeout; worth retrying."""

    def __init__(self, message: str, *, logs: str = "") -> None:
        super().__init__(message)
        self.logs = logs


class PermanentError(AdactaError):
    """Failure attributable to the step itself or to malformed input."""

    def __init__(
        self, message: str, *, exit_code: int | None = None, logs: str = ""
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.logs = logs


class ExecutionTimeout(TransientError):
    """Container exceeded its wall-clock budget."""


class ExecutionCancelled(AdactaError):
    """Execution aborted because its cancellation token fired."""


class ResourceExhaustion(AdactaError):
    """Execution pool is saturated; the caller should back off."""


class VersionConflict(AdactaError):
    """Optimistic concurrency check failed on a registry mutation."""

    def __init__(
        self, document_id: str, expected_version: int, actual_version: int
    ) -> None:
        super().__init__(
            f"Document {document_id}: expected version {expected_version}, "
            f"found {actual_version}"
        )
        self.document_id = document_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class ConsistencyError(AdactaError):
    """Registry and search index disagree about a Document."""

    def __init__(self, document_id: str, message: str) -> None:
        super().__init__(f"Document {document_id}: {message}")
        self.document_id = document_id


class BlobNotFound(AdactaError, KeyError):
    """No blob is stored under the requested hash."""

    def __init__(self, blob_hash: str) -> None:
        super().__init__(f"Blob not found: {blob_hash}")
        self.blob_hash = blob_hash

    def __str__(self) -> str:
        return f"Blob not found: {self.blob_hash}"


class DocumentNotFound(AdactaError, KeyError):
    """No Document is registered under the requested id."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document not found: {document_id}")
        self.document_id = document_id

    def __str__(self) -> str:
        return f"Document not found: {self.document_id}"


class DocumentDeleted(DocumentNotFound):
    """Document exists only as a tombstone and cannot be mutated."""

    def __str__(self) -> str:
        return f"Document deleted: {self.document_id}"
