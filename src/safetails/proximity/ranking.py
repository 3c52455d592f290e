"""
Result ranking.

Each collection has one deterministic sort order. Orders are expressed as `SortKey`
tuples so the Mongo adapter can push them into an aggregation pipeline, while
`sort_documents` applies the same order in Python for the in-memory store.

Every order ends with `_id` ascending so equal keys never flip between calls.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from safetails.domain.models import URGENCY_LEVELS
from safetails.store.base import TEXT_SCORE_FIELD, SortKey, get_path

_ID_TIEBREAK = SortKey("_id", descending=False)

# critical > high > medium > low, then newest first.
ALERT_SORT: tuple[SortKey, ...] = (
    SortKey("urgency", descending=True, rank=URGENCY_LEVELS),
    SortKey("createdAt", descending=True),
    _ID_TIEBREAK,
)

POST_SORT: tuple[SortKey, ...] = (
    SortKey("createdAt", descending=True),
    _ID_TIEBREAK,
)

VET_DIRECTORY_SORT: tuple[SortKey, ...] = (
    SortKey("rating", descending=True),
    SortKey("isEmergencyAvailable", descending=True),
    _ID_TIEBREAK,
)

# Round-the-clock clinics first, then best rated.
EMERGENCY_VET_SORT: tuple[SortKey, ...] = (
    SortKey("is24Hours", descending=True),
    SortKey("rating", descending=True),
    _ID_TIEBREAK,
)

# Prepended to a collection order when the query carries a text search.
TEXT_RELEVANCE = SortKey(TEXT_SCORE_FIELD, descending=True)


def rank_value(key: SortKey, value: Any) -> Any:
    """Map a raw field value to its sortable value (ordinal for ranked enums)."""
    if key.rank is None:
        return value
    try:
        return len(key.rank) - key.rank.index(value)
    except ValueError:
        return -1


def _sortable(key: SortKey, document: dict[str, Any]) -> tuple[bool, Any]:
    value = rank_value(key, get_path(document, key.field))
    if isinstance(value, bool):
        value = int(value)
    # Missing values sort lowest, like Mongo's null ordering.
    return (value is not None, value if value is not None else 0)


def sort_documents(documents: Iterable[dict[str, Any]], sort: Sequence[SortKey]) -> list[dict[str, Any]]:
    """Stable multi-key sort; applies keys from least to most significant."""
    out = list(documents)
    for key in reversed(sort):
        out.sort(key=lambda doc, k=key: _sortable(k, doc), reverse=key.descending)
    return out
