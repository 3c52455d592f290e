"""
Backend-neutral query language + the store interface.

The proximity layer never builds Mongo filter documents directly. It builds a
`RecordQuery` (equality / any-of / case-insensitive contains clauses, an optional
`TextClause` and an optional `SpatialClause`) and hands it to a `RecordStore` adapter:
- `safetails.store.mongo.MongoRecordStore` (pymongo)
- `safetails.store.memory.MemoryRecordStore` (in-process, used by tests and demos)

Collections are addressed by kind ("alerts", "posts", "vets"); adapters map kinds to
physical collection names.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Literal, Mapping, Protocol, Sequence

from safetails.core.geo import GeoPoint

CollectionKind = Literal["alerts", "posts", "vets"]
COLLECTION_KINDS: tuple[CollectionKind, ...] = ("alerts", "posts", "vets")

# Pseudo-field holding the full-text relevance score; usable as a `SortKey` when the
# query carries a `TextClause`, never returned with results.
TEXT_SCORE_FIELD = "_textScore"


@dataclass(frozen=True)
class SpatialClause:
    """Geodesic disc: `field` must hold a `[lng, lat]` pair within `radius_km` of `origin`."""

    field: str
    origin: GeoPoint
    radius_km: float


@dataclass(frozen=True)
class TextClause:
    """Full-text match: any of the words in `search` appearing in one of `fields`."""

    search: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class RecordQuery:
    equals: Mapping[str, Any] = field(default_factory=dict)
    any_of: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)
    contains: Mapping[str, str] = field(default_factory=dict)
    text: TextClause | None = None
    spatial: SpatialClause | None = None

    def without_spatial(self) -> "RecordQuery":
        """Same query with only the distance constraint removed."""
        return replace(self, spatial=None)


@dataclass(frozen=True)
class SortKey:
    """One sort component.

    `rank` lists enumerated values highest-priority first; when present the store sorts
    by position in that list instead of the raw (alphabetical) value.
    """

    field: str
    descending: bool = True
    rank: tuple[str, ...] | None = None


@dataclass(frozen=True)
class IndexSpec:
    keys: tuple[tuple[str, int | str], ...]
    expire_after_seconds: int | None = None


class RecordStore(Protocol):
    def find(
        self,
        kind: CollectionKind,
        query: RecordQuery,
        *,
        sort: Sequence[SortKey],
        skip: int,
        limit: int,
    ) -> list[dict[str, Any]]: ...

    def count(self, kind: CollectionKind, query: RecordQuery) -> int: ...

    def average(self, kind: CollectionKind, query: RecordQuery, field: str) -> float | None: ...

    def insert_many(self, kind: CollectionKind, documents: Iterable[Mapping[str, Any]]) -> int: ...

    def ensure_indexes(self, kind: CollectionKind, specs: Sequence[IndexSpec]) -> list[str]: ...


def get_path(document: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path (`location.city`) inside a nested document; None if absent."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current
