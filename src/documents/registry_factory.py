# src/documents/registry_factory.py — v1
"""Factory for document registry instantiation."""

from __future__ import annotations

from adacta.config.settings import Settings
from adacta.documents.base_registry import BaseDocumentRegistry


def create_registry(settings: Settings | None = None) -> BaseDocumentRegistry:
    """Instantiate the configured registry backend.

    Args:
        settings: Application settings. Defaults to the JSON backend.

    Returns:
        Configured BaseDocumentRegistry implementation.
    """
    settings = settings or Settings()
    backend = settings.registry_backend

    if backend == "json":
        from adacta.documents.json_registry import JsonDocumentRegistry

        return JsonDocumentRegistry(root=settings.registry_root)

    if backend == "sqlite":
        from adacta.documents.sqlite_registry import SqliteDocumentRegistry

        return SqliteDocumentRegistry(
            db_path=settings.registry_root.expanduser() / "registry.db"
        )

    raise ValueError(f"Unsupported registry backend: {backend!r}")
