# src/index/index_factory.py — v1
"""Factory: instantiate the search index from configuration."""

from __future__ import annotations

import logging

from adacta.config.settings import Settings
from adacta.index.base_search_index import BaseSearchIndex

logger = logging.getLogger(__name__)


class UnsupportedSearchBackendError(ValueError):
    """Raised when a search backend is not supported."""


def create_search_index(settings: Settings) -> BaseSearchIndex:
    """Instantiate the configured search index.

    Raises:
        UnsupportedSearchBackendError: If SEARCH_BACKEND is not supported.
    """
    backend = settings.search_backend

    if backend == "memory":
        from adacta.index.memory_index import MemorySearchIndex

        return MemorySearchIndex()

    if backend == "elasticsearch":
        from adacta.index.elasticsearch_index import ElasticsearchIndex

        logger.info("Using Elasticsearch index %s at %s", settings.search_index, settings.search_url)
        return ElasticsearchIndex(
            url=settings.search_url,
            index=settings.search_index,
            api_key=settings.search_api_key or None,
        )

    raise UnsupportedSearchBackendError(
        f"Unsupported search backend: {backend!r}. Available: memory, elasticsearch"
    )
