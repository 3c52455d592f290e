import math
from datetime import datetime, timedelta, timezone

import pytest

from safetails.config.settings import get_settings
from safetails.core.errors import InputError, InvalidCoordinates
from safetails.core.geo import EARTH_RADIUS_KM, GeoPoint, haversine_km, origin_from_params
from safetails.domain.models import URGENCY_LEVELS
from safetails.proximity.service import ProximityService
from safetails.store.memory import MemoryRecordStore

ORIGIN = GeoPoint(lon=90.4125, lat=23.8103)
T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _north_of(origin: GeoPoint, km: float) -> list[float]:
    return [origin.lon, origin.lat + math.degrees(km / EARTH_RADIUS_KM)]


def _east_of(origin: GeoPoint, km: float) -> list[float]:
    return [origin.lon + math.degrees(km / (EARTH_RADIUS_KM * math.cos(math.radians(origin.lat)))), origin.lat]


def _alert(alert_id: str, coordinates: list[float], **overrides) -> dict:
    doc = {
        "_id": alert_id,
        "type": "lost_pet",
        "title": f"Alert {alert_id}",
        "description": "Brown terrier last seen near the park",
        "location": {
            "coordinates": coordinates,
            "address": "Road 11",
            "city": "Dhaka",
            "state": "Dhaka",
            "radius": 10,
        },
        "urgency": "medium",
        "status": "active",
        "isActive": True,
        "createdAt": T0,
    }
    doc.update(overrides)
    return doc


def _service(alerts: list[dict], **store_kwargs) -> ProximityService:
    store = MemoryRecordStore({"alerts": alerts}, **store_kwargs)
    return ProximityService.from_settings(get_settings(), store)


def test_alerts_near_origin_excludes_records_outside_radius():
    service = _service([_alert("near", _north_of(ORIGIN, 2)), _alert("far", _north_of(ORIGIN, 15))])

    result = service.find_near("alerts", origin=ORIGIN, radius_km=10)

    assert [r["_id"] for r in result.data] == ["near"]
    assert result.pagination.total == 1


def test_every_returned_alert_is_within_great_circle_radius():
    alerts = []
    for i, km in enumerate([0.5, 3, 7.5, 9.9, 10.2, 12, 40]):
        alerts.append(_alert(f"n{i}", _north_of(ORIGIN, km)))
        alerts.append(_alert(f"e{i}", _east_of(ORIGIN, km)))
    service = _service(alerts)

    result = service.find_near("alerts", origin=ORIGIN, radius_km=10, limit=100)

    returned = {r["_id"] for r in result.data}
    for doc in alerts:
        lon, lat = doc["location"]["coordinates"]
        inside = haversine_km(ORIGIN, GeoPoint(lon=lon, lat=lat)) <= 10
        assert (doc["_id"] in returned) == inside
    assert len(returned) == 8


def test_radius_equal_to_record_distance_is_inclusive():
    coords = [90.47, 23.85]
    d = haversine_km(ORIGIN, GeoPoint(lon=coords[0], lat=coords[1]))
    service = _service([_alert("edge", coords)])

    assert [r["_id"] for r in service.find_near("alerts", origin=ORIGIN, radius_km=d).data] == ["edge"]
    assert service.find_near("alerts", origin=ORIGIN, radius_km=d - 1e-6).data == []


def test_alert_sort_is_urgency_then_newest_first():
    alerts = [
        _alert("low-new", _north_of(ORIGIN, 1), urgency="low", createdAt=T0 + timedelta(days=3)),
        _alert("high-old", _north_of(ORIGIN, 1), urgency="high", createdAt=T0),
        _alert("critical", _north_of(ORIGIN, 1), urgency="critical", createdAt=T0 - timedelta(days=9)),
        _alert("medium", _north_of(ORIGIN, 1), urgency="medium", createdAt=T0),
        _alert("high-new", _north_of(ORIGIN, 1), urgency="high", createdAt=T0 + timedelta(hours=1)),
    ]
    service = _service(alerts)

    data = service.find_near("alerts", origin=ORIGIN, radius_km=10).data

    assert [r["_id"] for r in data] == ["critical", "high-new", "high-old", "medium", "low-new"]
    for a, b in zip(data, data[1:]):
        ua, ub = URGENCY_LEVELS.index(a["urgency"]), URGENCY_LEVELS.index(b["urgency"])
        assert ua <= ub
        if ua == ub:
            assert a["createdAt"] >= b["createdAt"]


def test_pagination_metadata_and_page_slices():
    alerts = [
        _alert(f"a{i}", _north_of(ORIGIN, 1), createdAt=T0 - timedelta(minutes=i)) for i in range(5)
    ]
    service = _service(alerts)

    page1 = service.find_near("alerts", origin=ORIGIN, radius_km=10, page=1, limit=2)
    page3 = service.find_near("alerts", origin=ORIGIN, radius_km=10, page=3, limit=2)
    page4 = service.find_near("alerts", origin=ORIGIN, radius_km=10, page=4, limit=2)

    assert [r["_id"] for r in page1.data] == ["a0", "a1"]
    assert page1.pagination.model_dump(by_alias=True) == {
        "currentPage": 1,
        "totalPages": 3,
        "total": 5,
        "hasNext": True,
        "hasPrev": False,
    }
    assert [r["_id"] for r in page3.data] == ["a4"]
    assert page3.pagination.has_next is False and page3.pagination.has_prev is True
    assert page4.data == [] and page4.pagination.total == 5


def test_empty_result_is_not_an_error():
    result = _service([]).find_near("alerts", origin=ORIGIN, radius_km=10)
    assert result.data == []
    assert result.pagination.total == 0
    assert result.pagination.total_pages == 0
    assert result.pagination.has_next is False


def test_repeated_queries_return_identical_results():
    alerts = [_alert(f"a{i}", _north_of(ORIGIN, i % 4 + 0.5), urgency=URGENCY_LEVELS[i % 4]) for i in range(12)]
    service = _service(alerts)

    first = service.find_near("alerts", origin=ORIGIN, radius_km=10, page=2, limit=4)
    second = service.find_near("alerts", origin=ORIGIN, radius_km=10, page=2, limit=4)

    assert first.data == second.data
    assert first.pagination == second.pagination


def test_zero_origin_skips_spatial_clause():
    alerts = [_alert("near", _north_of(ORIGIN, 2)), _alert("far", _north_of(ORIGIN, 900))]
    service = _service(alerts)

    zero = service.find_near("alerts", origin=GeoPoint(lon=0, lat=0), radius_km=10)
    unfiltered = service.find_near("alerts", origin=None, radius_km=10)

    assert zero.data == unfiltered.data
    assert {r["_id"] for r in zero.data} == {"near", "far"}
    assert origin_from_params(0, 0) is None


def test_malformed_origin_is_rejected_before_any_query():
    class _ExplodingStore:
        def count(self, *args, **kwargs):
            raise AssertionError("store must not be queried")

        def find(self, *args, **kwargs):
            raise AssertionError("store must not be queried")

    with pytest.raises(InvalidCoordinates):
        origin = origin_from_params(200, 23)
        ProximityService.from_settings(get_settings(), _ExplodingStore()).find_near("alerts", origin=origin)


@pytest.mark.parametrize("radius", [0.5, 100.5, float("nan")])
def test_alert_radius_out_of_bounds_is_rejected(radius):
    with pytest.raises(InputError, match="Radius"):
        _service([]).find_near("alerts", origin=ORIGIN, radius_km=radius)


@pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101)])
def test_bad_pagination_is_rejected(page, limit):
    with pytest.raises(InputError):
        _service([]).find_near("alerts", page=page, limit=limit)


def test_status_and_active_flags_filter_alerts():
    alerts = [
        _alert("active", _north_of(ORIGIN, 1)),
        _alert("resolved", _north_of(ORIGIN, 1), status="resolved"),
        _alert("soft-deleted", _north_of(ORIGIN, 1), status="expired", isActive=False),
        _alert("inactive", _north_of(ORIGIN, 1), isActive=False),
    ]
    service = _service(alerts)

    assert [r["_id"] for r in service.find_near("alerts").data] == ["active"]
    assert [r["_id"] for r in service.find_near("alerts", filters={"status": "resolved"}).data] == ["resolved"]
    assert service.find_near("alerts", filters={"status": "expired"}).data == []


def test_unset_filters_are_omitted_not_widened():
    alerts = [
        _alert("lost", _north_of(ORIGIN, 1), type="lost_pet", urgency="high"),
        _alert("found", _north_of(ORIGIN, 1), type="found_pet", urgency="high"),
    ]
    service = _service(alerts)

    both = service.find_near("alerts", filters={"type": None, "urgency": ""})
    only_found = service.find_near("alerts", filters={"type": "found_pet", "urgency": "high"})

    assert {r["_id"] for r in both.data} == {"lost", "found"}
    assert [r["_id"] for r in only_found.data] == ["found"]


def test_unknown_filter_and_collection_are_input_errors():
    service = _service([])
    with pytest.raises(InputError, match="Unknown filter"):
        service.find_near("alerts", filters={"colour": "brown"})
    with pytest.raises(InputError, match="Unknown collection"):
        service.find_near("comments")


def test_default_radius_comes_from_alert_profile():
    service = _service([_alert("9km", _north_of(ORIGIN, 9)), _alert("11km", _north_of(ORIGIN, 11))])
    assert [r["_id"] for r in service.find_near("alerts", origin=ORIGIN).data] == ["9km"]


@pytest.mark.parametrize("value", [["high", "critical"], ("high",)])
def test_single_value_filter_rejects_lists(value):
    service = _service([_alert("a", _north_of(ORIGIN, 1), urgency="high")])
    with pytest.raises(InputError, match="takes a single value"):
        service.find_near("alerts", filters={"urgency": value})
