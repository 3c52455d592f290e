"""
Query-filter builder.

Composes a collection's base filter (status / active flags), the caller's categorical
filters and the optional spatial clause into one `RecordQuery`.

Rules:
- unset filters (None, empty string, empty list) are omitted, never widened to a wildcard;
- equality filters override the base filter (e.g. alerts `status=resolved`);
- unknown filter names are an input error, as are several values for a single-value filter;
- free-text search becomes a `TextClause` over the collection's text-indexed fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Sequence

from safetails.core.errors import InputError
from safetails.core.geo import GeoPoint
from safetails.store.base import RecordQuery, SpatialClause, TextClause

FilterMode = Literal["equals", "any_of", "contains"]


@dataclass(frozen=True)
class FilterField:
    """Maps a caller-facing filter name onto a document path."""

    name: str
    path: str
    mode: FilterMode = "equals"


def _is_unset(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _as_tuple(value: Any) -> tuple[Any, ...]:
    if isinstance(value, (list, tuple, set, frozenset)):
        # dict.fromkeys keeps first-seen order while dropping duplicates.
        return tuple(dict.fromkeys(v for v in value if not _is_unset(v)))
    return (value,)


def build_record_query(
    *,
    base: Mapping[str, Any],
    fields: Sequence[FilterField],
    filters: Mapping[str, Any] | None,
    origin: GeoPoint | None = None,
    radius_km: float | None = None,
    spatial_path: str = "location.coordinates",
    search: str | None = None,
    text_fields: Sequence[str] = (),
) -> RecordQuery:
    by_name = {f.name: f for f in fields}
    equals: dict[str, Any] = dict(base)
    any_of: dict[str, tuple[Any, ...]] = {}
    contains: dict[str, str] = {}

    for name, value in (filters or {}).items():
        spec = by_name.get(name)
        if spec is None:
            raise InputError(f"Unknown filter '{name}'")
        if _is_unset(value):
            continue
        if spec.mode != "any_of" and isinstance(value, (list, tuple, set, frozenset)):
            raise InputError(f"Filter '{name}' takes a single value")
        if spec.mode == "equals":
            equals[spec.path] = value
        elif spec.mode == "any_of":
            candidates = _as_tuple(value)
            if candidates:
                any_of[spec.path] = candidates
        else:
            contains[spec.path] = str(value).strip()

    text = None
    if search is not None and search.strip():
        if not text_fields:
            raise InputError("Text search is not supported for this collection")
        text = TextClause(search=search.strip(), fields=tuple(text_fields))

    spatial = None
    if origin is not None:
        if radius_km is None:
            raise InputError("A search radius is required when an origin is supplied")
        spatial = SpatialClause(field=spatial_path, origin=origin, radius_km=float(radius_km))

    return RecordQuery(equals=equals, any_of=any_of, contains=contains, text=text, spatial=spatial)
