"""
In-process document store.

Evaluates `RecordQuery` objects with plain Python predicates and the haversine
containment test from `safetails.core.geo`. Used by the test-suite, the CLI demo
mode (`store.backend: memory`) and anywhere a Mongo server is not available.

`geo_available=False` simulates a deployment whose geospatial index is missing:
any query carrying a spatial clause raises `GeoIndexUnavailable`.
"""

from __future__ import annotations

import copy
import re
import threading
import uuid
from typing import Any, Iterable, Mapping, Sequence

from safetails.core.errors import GeoIndexUnavailable
from safetails.core.geo import EARTH_RADIUS_KM, point_from_coordinates, within_radius
from safetails.proximity.ranking import sort_documents
from safetails.store.base import (
    COLLECTION_KINDS,
    TEXT_SCORE_FIELD,
    CollectionKind,
    IndexSpec,
    RecordQuery,
    SortKey,
    TextClause,
    get_path,
)


def _matches_equal(actual: Any, expected: Any) -> bool:
    # Array fields match when any element equals the value (Mongo semantics).
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _matches_any(actual: Any, candidates: tuple[Any, ...]) -> bool:
    if isinstance(actual, list):
        return any(v in candidates for v in actual)
    return actual in candidates


def _matches_contains(actual: Any, needle: str) -> bool:
    return isinstance(actual, str) and needle.casefold() in actual.casefold()


_WORD = re.compile(r"\w+")


def _words(value: Any) -> list[str]:
    if isinstance(value, str):
        return [w.casefold() for w in _WORD.findall(value)]
    if isinstance(value, list):
        return [w for item in value for w in _words(item)]
    return []


def text_score(document: Mapping[str, Any], clause: TextClause) -> int:
    """Number of indexed words matching any search term (0 means no match).

    A whole-word, case-insensitive approximation of Mongo `$text` (no stemming).
    """
    terms = set(_words(clause.search))
    return sum(1 for path in clause.fields for w in _words(get_path(document, path)) if w in terms)


class MemoryRecordStore:
    def __init__(
        self,
        documents: Mapping[str, Iterable[Mapping[str, Any]]] | None = None,
        *,
        geo_available: bool = True,
        earth_radius_km: float = EARTH_RADIUS_KM,
    ):
        self.geo_available = geo_available
        self._earth_radius_km = float(earth_radius_km)
        self._lock = threading.Lock()
        self._collections: dict[str, list[dict[str, Any]]] = {kind: [] for kind in COLLECTION_KINDS}
        self._indexes: dict[str, list[str]] = {kind: [] for kind in COLLECTION_KINDS}
        for kind, docs in (documents or {}).items():
            self.insert_many(kind, docs)  # type: ignore[arg-type]

    def _matches(self, document: Mapping[str, Any], query: RecordQuery) -> bool:
        for path, expected in query.equals.items():
            if not _matches_equal(get_path(document, path), expected):
                return False
        for path, candidates in query.any_of.items():
            if not _matches_any(get_path(document, path), candidates):
                return False
        for path, needle in query.contains.items():
            if not _matches_contains(get_path(document, path), needle):
                return False
        if query.text is not None and text_score(document, query.text) == 0:
            return False
        if query.spatial is not None:
            point = point_from_coordinates(get_path(document, query.spatial.field))
            if point is None:
                return False
            if not within_radius(
                query.spatial.origin, point, query.spatial.radius_km, earth_radius_km=self._earth_radius_km
            ):
                return False
        return True

    def _select(self, kind: CollectionKind, query: RecordQuery) -> list[dict[str, Any]]:
        if query.spatial is not None and not self.geo_available:
            raise GeoIndexUnavailable(f"no geospatial index on {kind}.{query.spatial.field}")
        with self._lock:
            docs = list(self._collections[kind])
        return [d for d in docs if self._matches(d, query)]

    def find(
        self,
        kind: CollectionKind,
        query: RecordQuery,
        *,
        sort: Sequence[SortKey],
        skip: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        docs = self._select(kind, query)
        if query.text is not None:
            docs = [{**d, TEXT_SCORE_FIELD: text_score(d, query.text)} for d in docs]
        page = [copy.deepcopy(d) for d in sort_documents(docs, sort)[skip : skip + limit]]
        for doc in page:
            doc.pop(TEXT_SCORE_FIELD, None)
        return page

    def count(self, kind: CollectionKind, query: RecordQuery) -> int:
        return len(self._select(kind, query))

    def average(self, kind: CollectionKind, query: RecordQuery, field: str) -> float | None:
        values = [get_path(d, field) for d in self._select(kind, query)]
        numbers = [float(v) for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]
        if not numbers:
            return None
        return sum(numbers) / len(numbers)

    def insert_many(self, kind: CollectionKind, documents: Iterable[Mapping[str, Any]]) -> int:
        added = []
        for doc in documents:
            stored = copy.deepcopy(dict(doc))
            stored.setdefault("_id", uuid.uuid4().hex)
            added.append(stored)
        with self._lock:
            self._collections[kind].extend(added)
        return len(added)

    def ensure_indexes(self, kind: CollectionKind, specs: Sequence[IndexSpec]) -> list[str]:
        names = ["_".join(f"{k}_{v}" for k, v in spec.keys) for spec in specs]
        with self._lock:
            for name in names:
                if name not in self._indexes[kind]:
                    self._indexes[kind].append(name)
        return names
