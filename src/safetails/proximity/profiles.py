"""
Per-collection query profiles.

One named profile per query flavor keeps the default radius, its bounds, the base
filter, the accepted filters, the text-searchable fields and the sort order in one place:

- `alerts`         nearby alert feed (urgency, then recency)
- `posts`          nearby rescue posts (recency)
- `vets`           vet directory listing (rating, then emergency availability)
- `emergency_vets` emergency lookup (24-hour clinics first, then rating)

Numbers come from settings (`proximity.*` in defaults.yaml).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from safetails.config.settings import RadiusSettings, Settings
from safetails.proximity.query import FilterField
from safetails.proximity.ranking import ALERT_SORT, EMERGENCY_VET_SORT, POST_SORT, VET_DIRECTORY_SORT
from safetails.store.base import CollectionKind, IndexSpec, SortKey

SPATIAL_PATH = "location.coordinates"


@dataclass(frozen=True)
class CollectionProfile:
    name: str
    kind: CollectionKind
    radius: RadiusSettings
    base_filter: Mapping[str, Any]
    filter_fields: tuple[FilterField, ...]
    sort: tuple[SortKey, ...]
    spatial_path: str = SPATIAL_PATH
    text_fields: tuple[str, ...] = ()
    indexes: tuple[IndexSpec, ...] = field(default_factory=tuple)


ALERT_INDEXES = (
    IndexSpec(((SPATIAL_PATH, "2dsphere"),)),
    IndexSpec((("type", 1), ("status", 1), ("isActive", 1))),
    IndexSpec((("urgency", 1), ("createdAt", -1))),
    IndexSpec((("expiresAt", 1),), expire_after_seconds=0),
)
POST_INDEXES = (
    IndexSpec(((SPATIAL_PATH, "2dsphere"),)),
    IndexSpec((("status", 1), ("postType", 1), ("createdAt", -1))),
)
VET_TEXT_FIELDS = ("clinicName", "specialization", "services", "location.city", "location.state")

VET_INDEXES = (
    IndexSpec(((SPATIAL_PATH, "2dsphere"),)),
    IndexSpec(tuple((f, "text") for f in VET_TEXT_FIELDS)),
    IndexSpec((("isActive", 1), ("rating", -1))),
    IndexSpec((("isEmergencyAvailable", 1), ("is24Hours", 1))),
)

_VET_FILTERS = (
    FilterField("specialization", "specialization", "any_of"),
    FilterField("isEmergencyAvailable", "isEmergencyAvailable"),
    FilterField("is24Hours", "is24Hours"),
    FilterField("city", "location.city", "contains"),
    FilterField("state", "location.state", "contains"),
)


def build_profiles(settings: Settings) -> dict[str, CollectionProfile]:
    prox = settings.proximity
    profiles = [
        CollectionProfile(
            name="alerts",
            kind="alerts",
            radius=prox.alerts.radius,
            base_filter={"status": prox.alerts.default_status, "isActive": True},
            filter_fields=(
                FilterField("type", "type"),
                FilterField("urgency", "urgency"),
                FilterField("status", "status"),
            ),
            sort=ALERT_SORT,
            indexes=ALERT_INDEXES,
        ),
        CollectionProfile(
            name="posts",
            kind="posts",
            radius=prox.posts.radius,
            base_filter={"status": prox.posts.status},
            filter_fields=(FilterField("postType", "postType", "any_of"),),
            sort=POST_SORT,
            indexes=POST_INDEXES,
        ),
        CollectionProfile(
            name="vets",
            kind="vets",
            radius=prox.vets.radius,
            base_filter={"isActive": True},
            filter_fields=_VET_FILTERS,
            sort=VET_DIRECTORY_SORT,
            text_fields=VET_TEXT_FIELDS,
            indexes=VET_INDEXES,
        ),
        CollectionProfile(
            name="emergency_vets",
            kind="vets",
            radius=prox.vets.emergency_radius,
            base_filter={"isActive": True, "isEmergencyAvailable": True},
            filter_fields=(
                FilterField("specialization", "specialization", "any_of"),
                FilterField("is24Hours", "is24Hours"),
            ),
            sort=EMERGENCY_VET_SORT,
        ),
    ]
    return {p.name: p for p in profiles}
