# tests/unit/core/test_unit_errors.py — v1
"""Tests for core/errors.py — taxonomy and context attributes."""

from __future__ import annotations

from adacta.core.errors import (
    AdactaError,
    BlobNotFound,
    ConsistencyError,
    DocumentDeleted,
    DocumentNotFound,
    ExecutionTimeout,
    PermanentError,
    TransientError,
    VersionConflict,
)


class TestErrorTaxonomy:
    def test_timeout_is_transient(self):
        assert issubclass(ExecutionTimeout, TransientError)

    def test_all_domain_errors_share_base(self):
        for cls in (TransientError, PermanentError, VersionConflict, ConsistencyError):
            assert issubclass(cls, AdactaError)

    def test_not_found_errors_are_key_errors(self):
        assert isinstance(BlobNotFound("h"), KeyError)
        assert isinstance(DocumentNotFound("d"), KeyError)

    def test_deleted_is_not_found(self):
        assert issubclass(DocumentDeleted, DocumentNotFound)


class TestErrorContext:
    def test_version_conflict_attributes(self):
        exc = VersionConflict("doc1", 3, 5)
        assert exc.document_id == "doc1"
        assert exc.expected_version == 3
        assert exc.actual_version == 5
        assert "expected version 3" in str(exc)

    def test_permanent_error_carries_exit_code_and_logs(self):
        exc = PermanentError("step failed", exit_code=2, logs="trace")
        assert exc.exit_code == 2
        assert exc.logs == "trace"

    def test_not_found_str_is_readable(self):
        assert str(BlobNotFound("abc")) == "Blob not found: abc"
        assert str(DocumentDeleted("d1")) == "Document deleted: d1"

    def test_consistency_error_message(self):
        exc = ConsistencyError("d1", "index ahead")
        assert exc.document_id == "d1"
        assert str(exc) == "Document d1: index ahead"
