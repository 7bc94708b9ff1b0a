# src/index/memory_index.py — v1
"""In-memory search index (SEARCH_BACKEND=memory).

Token-matching search over the string fields of each record. Meant for
tests and single-process deployments; contents vanish with the process
and are rebuilt by reconciliation.
"""

from __future__ import annotations

import re
from typing import Any

from adacta.core.models import IndexRecord, SearchHit
from adacta.index.base_search_index import BaseSearchIndex

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

SEARCH_FIELDS = ("text", "tags", "metadata")


def _tokens(text: str) -> list[str]:
    return [t.lower() for t in _TOKEN_RE.findall(text)]


def _flatten(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [s for v in value.values() for s in _flatten(v)]
    if isinstance(value, (list, tuple)):
        return [s for v in value for s in _flatten(v)]
    return []


class MemorySearchIndex(BaseSearchIndex):
    """Dict-backed index with a per-id version guard."""

    def __init__(self) -> None:
        self._records: dict[str, IndexRecord] = {}
        self._tombstones: dict[str, int] = {}

    async def ensure(self) -> None:
        return None

    async def bulk_upsert(self, records: list[IndexRecord]) -> list[str]:
        rejected: list[str] = []
        for record in records:
            current = self._records.get(record.document_id)
            floor = current.version if current is not None else self._tombstones.get(record.document_id)
            if floor is not None and floor > record.version:
                rejected.append(record.document_id)
                continue
            self._records[record.document_id] = record.model_copy(deep=True)
        return rejected

    async def delete(self, document_id: str, version: int | None = None) -> bool:
        current = self._records.get(document_id)
        if version is not None:
            if current is not None and current.version > version:
                return False
            self._tombstones[document_id] = max(version, self._tombstones.get(document_id, 0))
        return self._records.pop(document_id, None) is not None

    async def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        terms = _tokens(query)
        if not terms:
            return []
        hits: list[SearchHit] = []
        for doc_id, record in self._records.items():
            words = _tokens(" ".join(_flatten([record.fields.get(f) for f in SEARCH_FIELDS])))
            if not all(term in words for term in terms):
                continue
            score = float(sum(words.count(term) for term in terms))
            hits.append(SearchHit(document_id=doc_id, score=score))
        hits.sort(key=lambda h: (-h.score, h.document_id))
        return hits[:limit]

    async def list_versions(self) -> dict[str, int]:
        return {doc_id: r.version for doc_id, r in self._records.items()}

    def get(self, document_id: str) -> IndexRecord | None:
        return self._records.get(document_id)

    @property
    def provider_name(self) -> str:
        return "memory"
