"""
SafeTails CLI entrypoint.

This CLI is intended for operators and quick local checks without the web client:
- `nearby`: run a proximity query and print the same payload the API returns
- `seed`: validate a JSON seed file and insert it into a collection
- `ensure-indexes`: create the 2dsphere + secondary indexes for every collection
- `stats`: alert counts and vet directory counters

All query logic is delegated to `safetails.proximity.service.ProximityService`.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from safetails.config.settings import get_settings
from safetails.core.errors import InputError, SafeTailsError
from safetails.core.geo import origin_from_params
from safetails.core.logging import configure_logging
from safetails.catalog.loader import seed_collection
from safetails.proximity.profiles import build_profiles
from safetails.proximity.service import ProximityService
from safetails.quality.report import build_alert_counts, build_vet_stats
from safetails.store.base import COLLECTION_KINDS
from safetails.store.factory import build_store


def _coerce(value: str) -> Any:
    lowered = value.strip().lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if "," in value:
        return [v.strip() for v in value.split(",") if v.strip()]
    return value.strip()


def _parse_filter_pairs(pairs: list[str]) -> dict[str, Any]:
    """Parse `NAME=VALUE` CLI arguments (`true`/`false` -> bool, `a,b` -> list)."""
    out: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise InputError(f"Invalid --filter '{pair}', expected NAME=VALUE")
        name, value = pair.split("=", 1)
        out[name.strip()] = _coerce(value)
    return out


def _cmd_nearby(args: argparse.Namespace) -> int:
    settings = get_settings()
    service = ProximityService.from_settings(settings, build_store(settings))

    result = service.find_near(
        args.collection.replace("-", "_"),
        origin=origin_from_params(args.lon, args.lat),
        radius_km=args.radius,
        filters=_parse_filter_pairs(args.filter),
        search=args.search,
        page=args.page,
        limit=args.limit,
    )
    payload = {
        "success": True,
        "data": result.data,
        "pagination": result.pagination.model_dump(mode="json", by_alias=True),
    }

    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    p = result.pagination
    print(f"{args.collection}: page {p.current_page}/{p.total_pages} ({p.total} total)")
    for i, record in enumerate(result.data, start=1):
        title = record.get("title") or record.get("clinicName") or record.get("petName") or record.get("_id")
        lon, lat = record.get("location", {}).get("coordinates", [None, None])
        print(f"{i:>2}. {title}  [{lon}, {lat}]")
    return 0


def _cmd_seed(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = build_store(settings)
    inserted = seed_collection(store, args.kind, args.path)
    print(f"{args.kind}: inserted {inserted} record(s)")
    return 0


def _cmd_ensure_indexes(_: argparse.Namespace) -> int:
    settings = get_settings()
    store = build_store(settings)
    for profile in build_profiles(settings).values():
        if not profile.indexes:
            continue
        names = store.ensure_indexes(profile.kind, profile.indexes)
        print(f"{profile.kind}: {', '.join(names)}")
    return 0


def _cmd_stats(_: argparse.Namespace) -> int:
    settings = get_settings()
    store = build_store(settings)
    report = {"alerts": build_alert_counts(store), "vets": build_vet_stats(store)}
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the SafeTails CLI."""
    parser = argparse.ArgumentParser(prog="safetails")
    sub = parser.add_subparsers(dest="command", required=True)

    near = sub.add_parser("nearby", help="Run a proximity query against one collection.")
    near.add_argument("collection", choices=["alerts", "posts", "vets", "emergency-vets"])
    near.add_argument("--lon", type=float, default=None)
    near.add_argument("--lat", type=float, default=None)
    near.add_argument("--radius", type=float, default=None, help="Kilometers; collection default when omitted.")
    near.add_argument(
        "--filter",
        action="append",
        default=[],
        help="Repeatable NAME=VALUE (e.g. urgency=high, postType=missing,wounded, is24Hours=true).",
    )
    near.add_argument("--search", default=None, help="Free-text search (vet directory only).")
    near.add_argument("--page", type=int, default=1)
    near.add_argument("--limit", type=int, default=None)
    near.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    near.set_defaults(func=_cmd_nearby)

    seed = sub.add_parser("seed", help="Validate a JSON seed file and insert its records.")
    seed.add_argument("kind", choices=list(COLLECTION_KINDS))
    seed.add_argument("path")
    seed.set_defaults(func=_cmd_seed)

    idx = sub.add_parser("ensure-indexes", help="Create geospatial and secondary indexes.")
    idx.set_defaults(func=_cmd_ensure_indexes)

    stats = sub.add_parser("stats", help="Alert counts and vet directory counters.")
    stats.set_defaults(func=_cmd_stats)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m safetails.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except ValueError as e:
        # InputError and pydantic's ValidationError (seed files) both land here.
        print(f"error: {e}", file=sys.stderr)
        return 2
    except SafeTailsError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
