"""
Collection summaries for operators and the admin dashboard.

- `build_alert_counts`: totals by status and by type
- `build_vet_stats`: directory-wide counters and the average rating

Both only read through the `RecordStore` interface, so they work against Mongo and
the in-memory store alike.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, get_args

from safetails.domain.models import AlertType
from safetails.store.base import RecordQuery, RecordStore


def build_alert_counts(store: RecordStore) -> dict[str, Any]:
    by_type = []
    for alert_type in get_args(AlertType):
        count = store.count("alerts", RecordQuery(equals={"type": alert_type}))
        if count:
            by_type.append({"type": alert_type, "count": count})
    by_type.sort(key=lambda row: (-row["count"], row["type"]))

    return {
        "total": store.count("alerts", RecordQuery()),
        "byStatus": {
            "active": store.count("alerts", RecordQuery(equals={"status": "active", "isActive": True})),
            "resolved": store.count("alerts", RecordQuery(equals={"status": "resolved"})),
            "expired": store.count("alerts", RecordQuery(equals={"status": "expired"})),
        },
        "byType": by_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def build_vet_stats(store: RecordStore) -> dict[str, Any]:
    active = {"isActive": True}
    avg = store.average("vets", RecordQuery(equals=active), "rating")
    return {
        "totalVets": store.count("vets", RecordQuery(equals=active)),
        "emergencyVets": store.count("vets", RecordQuery(equals={**active, "isEmergencyAvailable": True})),
        "twentyFourHourVets": store.count("vets", RecordQuery(equals={**active, "is24Hours": True})),
        "verifiedVets": store.count("vets", RecordQuery(equals={**active, "isVerified": True})),
        "avgRating": round(avg, 2) if avg is not None else 0,
    }
