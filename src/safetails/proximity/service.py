"""
Proximity query service.

`ProximityService.find_near` is the single entrypoint used by the API and CLI:

1. resolve the collection profile, radius and pagination (input errors raise before any I/O);
2. build one `RecordQuery` (base filter + caller filters + optional text search and spatial clause);
3. run count + find with that query;
4. if the store reports `GeoIndexUnavailable`, re-run the *same* query with only the
   spatial clause removed. The response shape does not change; the degradation is
   only visible in server logs.

Records are returned as stored: the service converts them to JSON-safe values
(ObjectId and datetimes become strings) but never re-validates or fills defaults.

The service holds no mutable state and can be shared across request threads.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Sequence

from pydantic_core import to_jsonable_python

from safetails.config.settings import PaginationSettings, Settings
from safetails.core.errors import GeoIndexUnavailable, InputError
from safetails.core.geo import GeoPoint
from safetails.domain.models import PaginationMeta, ProximityResult
from safetails.proximity.profiles import CollectionProfile, build_profiles
from safetails.proximity.query import build_record_query
from safetails.proximity.ranking import TEXT_RELEVANCE
from safetails.store.base import RecordQuery, RecordStore, SortKey

logger = logging.getLogger(__name__)


class ProximityService:
    def __init__(
        self,
        store: RecordStore,
        profiles: Mapping[str, CollectionProfile],
        *,
        pagination: PaginationSettings | None = None,
    ):
        self._store = store
        self._profiles = dict(profiles)
        self._pagination = pagination or PaginationSettings()

    @classmethod
    def from_settings(cls, settings: Settings, store: RecordStore) -> "ProximityService":
        return cls(store, build_profiles(settings), pagination=settings.proximity.pagination)

    @property
    def store(self) -> RecordStore:
        return self._store

    def profile(self, name: str) -> CollectionProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise InputError(f"Unknown collection '{name}'") from None

    def resolve_radius(self, profile: CollectionProfile, radius_km: float | None) -> float:
        """Apply the profile default; out-of-bounds radii are rejected, never clamped."""
        if radius_km is None:
            return float(profile.radius.default_km)
        r = float(radius_km)
        bounds = profile.radius
        if not math.isfinite(r) or not (bounds.min_km <= r <= bounds.max_km):
            raise InputError(
                f"Radius must be between {bounds.min_km:g} and {bounds.max_km:g} km for {profile.name}"
            )
        return r

    def resolve_pagination(self, page: int | None, limit: int | None) -> tuple[int, int]:
        page_num = 1 if page is None else int(page)
        limit_num = self._pagination.default_limit if limit is None else int(limit)
        if page_num < 1:
            raise InputError("page must be >= 1")
        if not (1 <= limit_num <= self._pagination.max_limit):
            raise InputError(f"limit must be between 1 and {self._pagination.max_limit}")
        return page_num, limit_num

    def build_query(
        self,
        profile: CollectionProfile,
        *,
        origin: GeoPoint | None,
        radius_km: float | None,
        filters: Mapping[str, Any] | None,
        search: str | None = None,
    ) -> RecordQuery:
        radius = self.resolve_radius(profile, radius_km)
        return build_record_query(
            base=profile.base_filter,
            fields=profile.filter_fields,
            filters=filters,
            origin=None if origin is None or origin.is_unset else origin,
            radius_km=radius,
            spatial_path=profile.spatial_path,
            search=search,
            text_fields=profile.text_fields,
        )

    def find_near(
        self,
        collection: str,
        *,
        origin: GeoPoint | None = None,
        radius_km: float | None = None,
        filters: Mapping[str, Any] | None = None,
        search: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> ProximityResult:
        """Return one ordered, paginated page of records for `collection`."""
        profile = self.profile(collection)
        page_num, limit_num = self.resolve_pagination(page, limit)
        query = self.build_query(profile, origin=origin, radius_km=radius_km, filters=filters, search=search)

        degraded = False
        try:
            total, docs = self._execute(profile, query, page=page_num, limit=limit_num)
        except GeoIndexUnavailable as e:
            if query.spatial is None:
                raise
            logger.warning(
                "Geospatial query on %s failed; falling back to non-spatial query: %s", profile.name, e
            )
            degraded = True
            total, docs = self._execute(profile, query.without_spatial(), page=page_num, limit=limit_num)

        data = [self._serialize(doc) for doc in docs]
        return ProximityResult(
            data=data,
            pagination=PaginationMeta.build(page=page_num, limit=limit_num, total=total),
            degraded=degraded,
        )

    def _execute(
        self, profile: CollectionProfile, query: RecordQuery, *, page: int, limit: int
    ) -> tuple[int, list[dict[str, Any]]]:
        # Count and data share one query so `total` always matches what pagination walks over.
        total = self._store.count(profile.kind, query)
        skip = (page - 1) * limit
        if skip >= total:
            return total, []
        docs = self._store.find(profile.kind, query, sort=self._sort_for(profile, query), skip=skip, limit=limit)
        return total, docs

    @staticmethod
    def _sort_for(profile: CollectionProfile, query: RecordQuery) -> Sequence[SortKey]:
        if query.text is not None:
            return (TEXT_RELEVANCE, *profile.sort)
        return profile.sort

    @staticmethod
    def _serialize(doc: Mapping[str, Any]) -> dict[str, Any]:
        # str() covers ObjectId (`_id`, owner references) and any other BSON scalar.
        return to_jsonable_python(dict(doc), fallback=str)
