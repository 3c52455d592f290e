import pytest
from pymongo.errors import ExecutionTimeout, OperationFailure, ServerSelectionTimeoutError

from safetails.config.settings import get_settings
from safetails.core.errors import GeoIndexUnavailable, StoreUnavailable
from safetails.core.geo import GeoPoint
from safetails.proximity.profiles import VET_INDEXES, VET_TEXT_FIELDS
from safetails.proximity.ranking import ALERT_SORT, TEXT_RELEVANCE, VET_DIRECTORY_SORT
from safetails.proximity.service import ProximityService
from safetails.store.base import RecordQuery, SpatialClause, TextClause
from safetails.store.mongo import MongoRecordStore, is_geo_index_error, to_mongo_filter, to_pipeline

ORIGIN = GeoPoint(lon=90.4125, lat=23.8103)


class _FakeCollection:
    """Records calls; raises `error` for queries that carry a geo operator (or always)."""

    def __init__(self, docs=None, *, error=None, only_geo=False):
        self.docs = list(docs or [])
        self.error = error
        self.only_geo = only_geo
        self.calls = []

    def _maybe_raise(self, flt):
        has_geo = "$geoWithin" in str(flt)
        if self.error is not None and (has_geo or not self.only_geo):
            raise self.error

    def aggregate(self, pipeline, **kwargs):
        self.calls.append(("aggregate", pipeline, kwargs))
        self._maybe_raise(pipeline[0]["$match"])
        skip = next(s["$skip"] for s in pipeline if "$skip" in s)
        limit = next(s["$limit"] for s in pipeline if "$limit" in s)
        return iter(self.docs[skip : skip + limit])

    def count_documents(self, flt, **kwargs):
        self.calls.append(("count", flt, kwargs))
        self._maybe_raise(flt)
        return len(self.docs)


def _store(collection, **kwargs) -> MongoRecordStore:
    client = {"safetails": {"alerts": collection}}
    return MongoRecordStore(client, "safetails", {"alerts": "alerts"}, **kwargs)


def test_to_mongo_filter_translates_every_clause():
    query = RecordQuery(
        equals={"isActive": True},
        any_of={"specialization": ("dental", "surgery")},
        contains={"location.city": "Dh.ka"},
        spatial=SpatialClause(field="location.coordinates", origin=ORIGIN, radius_km=10),
    )

    flt = to_mongo_filter(query)

    assert flt["isActive"] is True
    assert flt["specialization"] == {"$in": ["dental", "surgery"]}
    assert flt["location.city"] == {"$regex": r"Dh\.ka", "$options": "i"}
    geo = flt["location.coordinates"]
    assert geo["$geoWithin"]["$centerSphere"][0] == [90.4125, 23.8103]
    assert geo["$geoWithin"]["$centerSphere"][1] == pytest.approx(10 / 6371)
    assert geo["$ne"] == [0, 0]


def test_without_spatial_drops_only_the_geo_clause():
    query = RecordQuery(
        equals={"status": "active"},
        spatial=SpatialClause(field="location.coordinates", origin=ORIGIN, radius_km=10),
    )
    assert to_mongo_filter(query.without_spatial()) == {"status": "active"}


def test_pipeline_ranks_urgency_instead_of_sorting_alphabetically():
    pipeline = to_pipeline(RecordQuery(equals={"status": "active"}), sort=ALERT_SORT, skip=20, limit=10)

    assert pipeline[0] == {"$match": {"status": "active"}}
    assert pipeline[1] == {
        "$addFields": {"_rank_urgency": {"$indexOfArray": [["low", "medium", "high", "critical"], "$urgency"]}}
    }
    assert pipeline[2] == {"$sort": {"_rank_urgency": -1, "createdAt": -1, "_id": 1}}
    assert pipeline[3:] == [{"$skip": 20}, {"$limit": 10}, {"$project": {"_rank_urgency": 0}}]


def test_geo_operation_failure_maps_to_geo_index_unavailable():
    error = OperationFailure("unable to find index for $geoNear query", code=291)
    store = _store(_FakeCollection(error=error))
    spatial = RecordQuery(spatial=SpatialClause(field="location.coordinates", origin=ORIGIN, radius_km=10))

    with pytest.raises(GeoIndexUnavailable):
        store.count("alerts", spatial)


def test_operation_failure_without_spatial_clause_is_not_masked():
    error = OperationFailure("unable to find index for $geoNear query", code=291)
    store = _store(_FakeCollection(error=error))

    with pytest.raises(OperationFailure):
        store.count("alerts", RecordQuery())


@pytest.mark.parametrize(
    "error",
    [ServerSelectionTimeoutError("localhost:27017: connection refused"), ExecutionTimeout("time limit", code=50)],
)
def test_connection_and_timeout_errors_map_to_store_unavailable(error):
    store = _store(_FakeCollection(error=error))
    spatial = RecordQuery(spatial=SpatialClause(field="location.coordinates", origin=ORIGIN, radius_km=10))

    with pytest.raises(StoreUnavailable):
        store.find("alerts", spatial, sort=ALERT_SORT, skip=0, limit=10)


def test_max_time_ms_is_forwarded_to_queries():
    collection = _FakeCollection()
    store = _store(collection, max_time_ms=1500)

    store.count("alerts", RecordQuery())
    store.find("alerts", RecordQuery(), sort=ALERT_SORT, skip=0, limit=5)

    assert [c[2] for c in collection.calls] == [{"maxTimeMS": 1500}, {"maxTimeMS": 1500}]


def test_service_falls_back_when_mongo_lacks_a_geo_index():
    doc = {
        "_id": "abc",
        "type": "general",
        "title": "Vaccination drive",
        "description": "Free rabies shots on Saturday",
        "location": {"coordinates": [90.41, 23.81], "address": "Park", "city": "Dhaka", "state": "Dhaka"},
        "urgency": "low",
        "status": "active",
        "isActive": True,
    }
    collection = _FakeCollection([doc], error=OperationFailure("Can't extract geo keys", code=16755), only_geo=True)
    service = ProximityService.from_settings(get_settings(), _store(collection))

    result = service.find_near("alerts", origin=ORIGIN, radius_km=10)

    assert [r["_id"] for r in result.data] == ["abc"]
    assert result.degraded is True
    # count (geo, failed) -> count (plain) -> aggregate (plain)
    assert [c[0] for c in collection.calls] == ["count", "count", "aggregate"]
    assert "$geoWithin" not in str(collection.calls[-1][1])


def test_text_search_adds_text_operator_and_relevance_sort():
    query = RecordQuery(equals={"isActive": True}, text=TextClause(search="dental", fields=VET_TEXT_FIELDS))
    sort = (TEXT_RELEVANCE, *VET_DIRECTORY_SORT)

    pipeline = to_pipeline(query, sort=sort, skip=0, limit=20)

    assert pipeline[0] == {"$match": {"isActive": True, "$text": {"$search": "dental"}}}
    assert pipeline[1] == {"$addFields": {"_textScore": {"$meta": "textScore"}}}
    assert pipeline[2] == {"$sort": {"_textScore": -1, "rating": -1, "isEmergencyAvailable": -1, "_id": 1}}
    assert pipeline[-1] == {"$project": {"_textScore": 0}}


def test_vet_indexes_include_text_index_over_searchable_fields():
    text_index = next(spec for spec in VET_INDEXES if spec.keys[0][1] == "text")
    assert [field for field, _ in text_index.keys] == list(VET_TEXT_FIELDS)


def test_geo_word_in_message_alone_is_not_a_geo_index_error():
    error = OperationFailure("error processing query: geoip lookup failed", code=2)
    store = _store(_FakeCollection(error=error))
    spatial = RecordQuery(spatial=SpatialClause(field="location.coordinates", origin=ORIGIN, radius_km=10))

    assert is_geo_index_error(error) is False
    with pytest.raises(OperationFailure):
        store.count("alerts", spatial)


def test_2dsphere_message_without_known_code_is_a_geo_index_error():
    assert is_geo_index_error(OperationFailure("planner returned error :: caused by :: no 2dsphere index"))
