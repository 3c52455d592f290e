"""
API routes.

Endpoints:
- GET `/api/alerts`: alert feed, optionally restricted to a radius around the caller.
- GET `/api/alerts/count`: totals by status and type.
- GET `/api/posts/nearby`: rescue posts around a point.
- GET `/api/vet-directory`: vet directory listing (optionally near a point and/or text search).
- GET `/api/vet-directory/emergency`: emergency-capable clinics, 24-hour first.
- GET `/api/vet-directory/stats`: directory counters.
- GET `/api/health`: liveness + configured store backend.

Every list endpoint returns `{success, data, pagination}`. Errors are raised as
`HTTPException`; `safetails.api.app` renders them as `{success: false, message}`.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, get_args

from fastapi import APIRouter, HTTPException, Query

from safetails.config.settings import get_settings
from safetails.core.errors import InputError, SafeTailsError
from safetails.core.geo import origin_from_params
from safetails.domain.models import AlertStatus, AlertType, PostType, ProximityResult, Specialization, Urgency
from safetails.proximity.service import ProximityService
from safetails.quality.report import build_alert_counts, build_vet_stats
from safetails.store.factory import build_store

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache
def _service() -> ProximityService:
    settings = get_settings()
    return ProximityService.from_settings(settings, build_store(settings))


def _payload(result: ProximityResult) -> dict[str, Any]:
    return {
        "success": True,
        "data": result.data,
        "pagination": result.pagination.model_dump(mode="json", by_alias=True),
    }


def _run(failure_message: str, fn, *args, **kwargs) -> Any:
    """Call into the service and map its error taxonomy onto HTTP status codes."""
    try:
        return fn(*args, **kwargs)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except SafeTailsError as e:
        logger.error("%s: %s", failure_message, e)
        raise HTTPException(status_code=500, detail=failure_message) from e


def _parse_post_types(raw: str | None) -> list[str] | None:
    if raw is None:
        return None
    allowed = set(get_args(PostType))
    out = [t.strip() for t in raw.split(",") if t.strip()]
    unknown = [t for t in out if t not in allowed]
    if unknown:
        raise InputError(f"Unknown postType value(s): {', '.join(unknown)}")
    return out


@router.get("/api/alerts")
def get_alerts(
    latitude: float | None = None,
    longitude: float | None = None,
    radius: float | None = None,
    type: AlertType | None = None,
    urgency: Urgency | None = None,
    status: AlertStatus | None = None,
    page: int = 1,
    limit: int | None = None,
) -> dict:
    """Return active alerts, most urgent and newest first."""

    def query() -> ProximityResult:
        origin = origin_from_params(longitude, latitude)
        return _service().find_near(
            "alerts",
            origin=origin,
            radius_km=radius,
            filters={"type": type, "urgency": urgency, "status": status},
            page=page,
            limit=limit,
        )

    return _payload(_run("Failed to fetch alerts", query))


@router.get("/api/alerts/count")
def get_alert_counts() -> dict:
    """Return alert totals by status and by type."""
    data = _run("Failed to count alerts", build_alert_counts, _service().store)
    return {"success": True, "data": data}


@router.get("/api/posts/nearby")
def get_nearby_posts(
    longitude: float,
    latitude: float,
    distance: float | None = None,
    post_type: str | None = Query(None, alias="postType"),
    page: int = 1,
    limit: int | None = None,
) -> dict:
    """Return active rescue posts within `distance` km, newest first."""

    def query() -> ProximityResult:
        origin = origin_from_params(longitude, latitude)
        return _service().find_near(
            "posts",
            origin=origin,
            radius_km=distance,
            filters={"postType": _parse_post_types(post_type)},
            page=page,
            limit=limit,
        )

    return _payload(_run("Failed to fetch nearby posts", query))


@router.get("/api/vet-directory")
def get_vet_directory(
    longitude: float | None = None,
    latitude: float | None = None,
    distance: float | None = None,
    specialization: list[Specialization] | None = Query(None),
    specialization_brackets: list[Specialization] | None = Query(None, alias="specialization[]"),
    is_emergency_available: bool | None = Query(None, alias="isEmergencyAvailable"),
    is_24_hours: bool | None = Query(None, alias="is24Hours"),
    city: str | None = None,
    state: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int | None = None,
) -> dict:
    """Return active vet entries, best rated first (best text match first with `search`)."""

    def query() -> ProximityResult:
        origin = origin_from_params(longitude, latitude)
        specs = [*(specialization or []), *(specialization_brackets or [])]
        return _service().find_near(
            "vets",
            origin=origin,
            radius_km=distance,
            filters={
                "specialization": specs,
                "isEmergencyAvailable": is_emergency_available,
                "is24Hours": is_24_hours,
                "city": city,
                "state": state,
            },
            search=search,
            page=page,
            limit=limit,
        )

    return _payload(_run("Failed to fetch vet directory", query))


@router.get("/api/vet-directory/emergency")
def get_emergency_vets(
    longitude: float | None = None,
    latitude: float | None = None,
    distance: float | None = None,
    page: int = 1,
    limit: int | None = None,
) -> dict:
    """Return emergency-capable clinics: 24-hour clinics first, then by rating."""

    def query() -> ProximityResult:
        origin = origin_from_params(longitude, latitude)
        return _service().find_near(
            "emergency_vets", origin=origin, radius_km=distance, page=page, limit=limit
        )

    return _payload(_run("Failed to fetch emergency vets", query))


@router.get("/api/vet-directory/stats")
def get_vet_stats() -> dict:
    """Return vet directory counters (active entries only)."""
    data = _run("Failed to fetch vet statistics", build_vet_stats, _service().store)
    return {"success": True, "data": data}


@router.get("/api/health")
def get_health() -> dict:
    settings = get_settings()
    return {"success": True, "status": "ok", "store": settings.store.backend}
