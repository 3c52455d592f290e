"""Build the configured `RecordStore` (`store.backend` in settings)."""

from __future__ import annotations

import logging

from safetails.catalog.loader import seed_collection
from safetails.config.settings import Settings
from safetails.store.base import RecordStore
from safetails.store.memory import MemoryRecordStore
from safetails.store.mongo import MongoRecordStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> RecordStore:
    if settings.store.backend == "memory":
        store = MemoryRecordStore(earth_radius_km=settings.proximity.earth_radius_km)
        for kind, path in settings.store.seed_paths.items():
            seed_collection(store, kind, path)
        logger.info("Using in-memory record store")
        return store
    return MongoRecordStore.from_settings(settings)
