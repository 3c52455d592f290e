"""
Seed-file loader.

Seed files are local JSON arrays of alerts / posts / vet entries (camelCase, as stored).
We validate them into typed Pydantic models (coordinates included) before anything
reaches the store, so query code can assume a consistent document shape.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from safetails.core.env import resolve_project_path
from safetails.domain.models import Alert, PetPost, VetEntry
from safetails.store.base import CollectionKind, RecordStore

logger = logging.getLogger(__name__)

_ADAPTERS: dict[str, TypeAdapter] = {
    "alerts": TypeAdapter(list[Alert]),
    "posts": TypeAdapter(list[PetPost]),
    "vets": TypeAdapter(list[VetEntry]),
}


def load_records(path: str | Path, kind: CollectionKind) -> list[dict[str, Any]]:
    """Load and validate a seed file; returns store-ready documents."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    records = _ADAPTERS[kind].validate_python(payload)
    return [r.model_dump(mode="python", by_alias=True, exclude_none=True) for r in records]


def seed_collection(store: RecordStore, kind: CollectionKind, path: str | Path) -> int:
    """Validate every record first, then insert them in one batch."""
    documents = load_records(path, kind)
    inserted = store.insert_many(kind, documents)
    logger.info("Seeded %d %s record(s) from %s", inserted, kind, path)
    return inserted
