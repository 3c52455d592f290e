"""
MongoDB adapter (pymongo).

Translates `RecordQuery` into Mongo filter documents:
- equality        -> `{"field": value}`
- any-of          -> `{"field": {"$in": [...]}}`
- contains (ci)   -> `{"field": {"$regex": re.escape(text), "$options": "i"}}`
- text            -> `{"$text": {"$search": words}}` (needs the collection's text index)
- spatial         -> `{"location.coordinates": {"$geoWithin": {"$centerSphere": [[lng, lat], km / 6371]}}}`

`$geoWithin` (rather than `$near`) is used for both the data and the count query so
the two always share one filter and the result can be re-sorted by priority.

Error mapping:
- geo-index failures (`OperationFailure` with a geo error) -> `GeoIndexUnavailable`
- connection failures / `maxTimeMS` expiry -> `StoreUnavailable`
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping, Sequence

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, ExecutionTimeout, OperationFailure

from safetails.config.settings import Settings
from safetails.core.errors import GeoIndexUnavailable, StoreUnavailable
from safetails.core.geo import EARTH_RADIUS_KM, km_to_radians
from safetails.store.base import TEXT_SCORE_FIELD, CollectionKind, IndexSpec, RecordQuery, SortKey

logger = logging.getLogger(__name__)

# 16755: can't extract geo keys, 17007: unable to execute query (no geo index),
# 291: NoQueryExecutionPlans (geo operator without a usable index).
GEO_ERROR_CODES = frozenset({16755, 17007, 291})
_GEO_MESSAGE_MARKERS = ("2dsphere", "$centersphere")


def is_geo_index_error(exc: OperationFailure) -> bool:
    if exc.code in GEO_ERROR_CODES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _GEO_MESSAGE_MARKERS)


def to_mongo_filter(query: RecordQuery, *, earth_radius_km: float = EARTH_RADIUS_KM) -> dict[str, Any]:
    out: dict[str, Any] = dict(query.equals)
    for path, candidates in query.any_of.items():
        out[path] = {"$in": list(candidates)}
    for path, needle in query.contains.items():
        out[path] = {"$regex": re.escape(needle), "$options": "i"}
    if query.text is not None:
        out["$text"] = {"$search": query.text.search}
    if query.spatial is not None:
        origin = query.spatial.origin
        out[query.spatial.field] = {
            "$geoWithin": {
                "$centerSphere": [
                    origin.as_coordinates(),
                    km_to_radians(query.spatial.radius_km, earth_radius_km=earth_radius_km),
                ]
            },
            # [0, 0] marks an unset location on stored records.
            "$ne": [0, 0],
        }
    return out


def _rank_field(key: SortKey) -> str:
    return "_rank_" + key.field.replace(".", "_")


def to_pipeline(
    query: RecordQuery,
    *,
    sort: Sequence[SortKey],
    skip: int,
    limit: int,
    earth_radius_km: float = EARTH_RADIUS_KM,
) -> list[dict[str, Any]]:
    """Build the aggregation pipeline for a sorted, paginated `find`."""
    pipeline: list[dict[str, Any]] = [{"$match": to_mongo_filter(query, earth_radius_km=earth_radius_km)}]

    computed: dict[str, Any] = {}
    for k in sort:
        if k.rank is not None:
            # $indexOfArray over the lowest-first list: higher priority -> larger index, unknown -> -1.
            computed[_rank_field(k)] = {"$indexOfArray": [list(reversed(k.rank)), f"${k.field}"]}
        elif k.field == TEXT_SCORE_FIELD and query.text is not None:
            computed[TEXT_SCORE_FIELD] = {"$meta": "textScore"}
    if computed:
        pipeline.append({"$addFields": computed})

    sort_spec: dict[str, int] = {}
    for k in sort:
        if k.field == TEXT_SCORE_FIELD and query.text is None:
            continue
        sort_spec[_rank_field(k) if k.rank is not None else k.field] = -1 if k.descending else 1
    if sort_spec:
        pipeline.append({"$sort": sort_spec})

    pipeline.append({"$skip": int(skip)})
    pipeline.append({"$limit": int(limit)})
    if computed:
        pipeline.append({"$project": {name: 0 for name in computed}})
    return pipeline


@contextmanager
def _translate_errors(kind: str, *, spatial: bool) -> Iterator[None]:
    try:
        yield
    except ExecutionTimeout as e:
        raise StoreUnavailable(f"query on {kind} exceeded its time limit") from e
    except OperationFailure as e:
        if spatial and is_geo_index_error(e):
            raise GeoIndexUnavailable(f"geospatial query on {kind} failed: {e}") from e
        raise
    except ConnectionFailure as e:
        raise StoreUnavailable(f"document store unavailable: {e}") from e


class MongoRecordStore:
    def __init__(
        self,
        client: MongoClient,
        database: str,
        collection_names: Mapping[str, str],
        *,
        max_time_ms: int | None = None,
        earth_radius_km: float = EARTH_RADIUS_KM,
    ):
        self._client = client
        self._db = client[database]
        self._names = dict(collection_names)
        self._max_time_ms = max_time_ms
        self._earth_radius_km = float(earth_radius_km)

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoRecordStore":
        store = settings.store
        # MongoClient connects lazily; an unreachable server surfaces per query as StoreUnavailable.
        client: MongoClient = MongoClient(
            store.mongo_uri,
            serverSelectionTimeoutMS=store.server_selection_timeout_ms,
            tz_aware=True,
        )
        logger.info("Using MongoDB database %r", store.database)
        return cls(
            client,
            store.database,
            store.collections.model_dump(),
            max_time_ms=store.max_time_ms,
            earth_radius_km=settings.proximity.earth_radius_km,
        )

    def _collection(self, kind: CollectionKind) -> Collection:
        return self._db[self._names[kind]]

    def _options(self) -> dict[str, Any]:
        return {"maxTimeMS": self._max_time_ms} if self._max_time_ms else {}

    def find(
        self,
        kind: CollectionKind,
        query: RecordQuery,
        *,
        sort: Sequence[SortKey],
        skip: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        pipeline = to_pipeline(query, sort=sort, skip=skip, limit=limit, earth_radius_km=self._earth_radius_km)
        with _translate_errors(kind, spatial=query.spatial is not None):
            return list(self._collection(kind).aggregate(pipeline, **self._options()))

    def count(self, kind: CollectionKind, query: RecordQuery) -> int:
        flt = to_mongo_filter(query, earth_radius_km=self._earth_radius_km)
        with _translate_errors(kind, spatial=query.spatial is not None):
            return int(self._collection(kind).count_documents(flt, **self._options()))

    def average(self, kind: CollectionKind, query: RecordQuery, field: str) -> float | None:
        pipeline = [
            {"$match": to_mongo_filter(query, earth_radius_km=self._earth_radius_km)},
            {"$group": {"_id": None, "avg": {"$avg": f"${field}"}}},
        ]
        with _translate_errors(kind, spatial=query.spatial is not None):
            rows = list(self._collection(kind).aggregate(pipeline, **self._options()))
        if not rows or rows[0].get("avg") is None:
            return None
        return float(rows[0]["avg"])

    def insert_many(self, kind: CollectionKind, documents: Iterable[Mapping[str, Any]]) -> int:
        docs = [dict(d) for d in documents]
        if not docs:
            return 0
        with _translate_errors(kind, spatial=False):
            result = self._collection(kind).insert_many(docs)
        return len(result.inserted_ids)

    def ensure_indexes(self, kind: CollectionKind, specs: Sequence[IndexSpec]) -> list[str]:
        names: list[str] = []
        with _translate_errors(kind, spatial=False):
            for spec in specs:
                options: dict[str, Any] = {}
                if spec.expire_after_seconds is not None:
                    options["expireAfterSeconds"] = spec.expire_after_seconds
                names.append(self._collection(kind).create_index(list(spec.keys), **options))
        return names
