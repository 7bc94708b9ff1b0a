# src/index/elasticsearch_index.py — v1
"""Elasticsearch search index adapter (SEARCH_BACKEND=elasticsearch).

Records are written with external versioning (version_type=external_gte)
so the engine itself refuses a write older than the stored one, even
across processes. The blocking client runs in asyncio.to_thread.
Requires: pip install elasticsearch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from adacta.core.errors import PermanentError, TransientError
from adacta.core.models import IndexRecord, SearchHit
from adacta.index.base_search_index import BaseSearchIndex

logger = logging.getLogger(__name__)

MAPPINGS: dict[str, Any] = {
    "properties": {
        "version": {"type": "long"},
        "status": {"type": "keyword"},
        "archived": {"type": "boolean"},
        "specimen_hash": {"type": "keyword"},
        "artifact_types": {"type": "keyword"},
        "tags": {"type": "keyword"},
        "metadata": {"type": "object", "dynamic": True},
        "text": {"type": "text"},
        "created_at": {"type": "date"},
        "updated_at": {"type": "date"},
    }
}

SEARCH_FIELDS = ["text", "tags^2", "metadata.*"]


class ElasticsearchIndex(BaseSearchIndex):
    """Search index backed by an Elasticsearch cluster."""

    def __init__(
        self,
        url: str,
        index: str = "adacta",
        api_key: str | None = None,
        request_timeout_s: float = 30.0,
        refresh: bool | str = False,
        client: Any = None,
    ) -> None:
        try:
            import elasticsearch
            from elasticsearch import helpers
        except ImportError as e:
            raise ImportError(
                "elasticsearch package required: pip install elasticsearch"
            ) from e

        self._es = elasticsearch
        self._helpers = helpers
        self._index = index
        self._refresh = refresh
        self._client = client or elasticsearch.Elasticsearch(
            hosts=[url], api_key=api_key or None, request_timeout=request_timeout_s
        )

    async def ensure(self) -> None:
        exists = await self._call(self._client.indices.exists, index=self._index)
        if exists:
            return
        # 400 = created concurrently by another process.
        await self._call(
            self._client.options(ignore_status=400).indices.create,
            index=self._index,
            mappings=MAPPINGS,
        )
        logger.info("Created search index %s", self._index)

    async def bulk_upsert(self, records: list[IndexRecord]) -> list[str]:
        if not records:
            return []
        actions = [
            {
                "_op_type": "index",
                "_index": self._index,
                "_id": r.document_id,
                "version": r.version,
                "version_type": "external_gte",
                "_source": {**r.fields, "version": r.version},
            }
            for r in records
        ]
        _, errors = await self._call(
            self._helpers.bulk,
            self._client,
            actions,
            raise_on_error=False,
            refresh=self._refresh,
        )
        rejected: list[str] = []
        failed: list[str] = []
        for item in errors:
            info = next(iter(item.values()))
            if info.get("status") == 409:
                rejected.append(info.get("_id", ""))
            else:
                failed.append(f"{info.get('_id')}: {info.get('error')}")
        if failed:
            raise TransientError(f"Bulk upsert failed for {len(failed)} records: {failed[:3]}")
        return rejected

    async def delete(self, document_id: str, version: int | None = None) -> bool:
        ignore: tuple[int, ...] = (404,)
        versioning: dict[str, Any] = {}
        if version is not None:
            # Leaves a versioned tombstone that rejects older upserts.
            # 409 = the index already holds a newer version.
            ignore = (404, 409)
            versioning = {"version": version, "version_type": "external_gte"}
        resp = await self._call(
            self._client.options(ignore_status=ignore).delete,
            index=self._index,
            id=document_id,
            refresh=self._refresh,
            **versioning,
        )
        return resp.body.get("result") == "deleted"

    async def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        resp = await self._call(
            self._client.search,
            index=self._index,
            query={"multi_match": {"query": query, "fields": SEARCH_FIELDS, "operator": "and"}},
            size=limit,
            source=False,
        )
        return [
            SearchHit(document_id=hit["_id"], score=hit.get("_score") or 0.0)
            for hit in resp["hits"]["hits"]
        ]

    async def list_versions(self) -> dict[str, int]:
        def scan() -> dict[str, int]:
            return {
                hit["_id"]: int(hit["_source"]["version"])
                for hit in self._helpers.scan(
                    self._client,
                    index=self._index,
                    query={"query": {"match_all": {}}},
                    _source=["version"],
                )
            }

        return await self._call(scan)

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)

    @property
    def provider_name(self) -> str:
        return "elasticsearch"

    async def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking client call and translate its errors."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except self._es.ApiError as exc:
            if exc.status_code >= 500 or exc.status_code == 429:
                raise TransientError(f"Elasticsearch error: {exc}") from exc
            raise PermanentError(f"Elasticsearch rejected request: {exc}") from exc
        except self._es.TransportError as exc:
            raise TransientError(f"Elasticsearch unavailable: {exc}") from exc
