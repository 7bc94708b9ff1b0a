# src/documents/manifest.py — v1
"""Persisted form of a Document.

A manifest is the JSON dump of the Document model, stamped with
schema_version. It must round-trip losslessly: storage backends and
export bundles both go through these two functions.
"""

from __future__ import annotations

import json

from adacta.core.models import MANIFEST_SCHEMA_VERSION, Document


class ManifestError(ValueError):
    """Raised when a manifest cannot be decoded."""


def dump_manifest(document: Document, indent: int | None = 2) -> str:
    """Serialize a Document to its manifest JSON."""
    return document.model_dump_json(indent=indent)


def load_manifest(raw: str | bytes) -> Document:
    """Decode manifest JSON into a Document.

    Raises:
        ManifestError: On malformed JSON, unknown schema versions or
            invalid fields.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError("Manifest must be a JSON object")

    schema_version = data.get("schema_version", 1)
    if not isinstance(schema_version, int) or schema_version > MANIFEST_SCHEMA_VERSION:
        raise ManifestError(f"Unsupported manifest schema version: {schema_version!r}")

    try:
        return Document.model_validate(data)
    except ValueError as exc:
        raise ManifestError(f"Invalid manifest: {exc}") from exc
