# src/safetails/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/safetails/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `SAFETAILS_MONGO_URI`, `SAFETAILS_LOG_LEVEL`)
- an external YAML file via `SAFETAILS_CONFIG_PATH`

Design rule:
- Default radii, bounds and page sizes live in YAML (one block per collection),
  not as literals repeated at each call site.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from safetails.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `safetails.config`."""
    text = resources.files("safetails.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "SafeTails"
    log_level: str = "INFO"


class CollectionNames(BaseModel):
    alerts: str = "alerts"
    posts: str = "petposts"
    vets: str = "vetdirectories"


class StoreSettings(BaseModel):
    backend: Literal["mongo", "memory"] = "mongo"
    mongo_uri: str = "mongodb://localhost:27017"
    database: str = "safetails"
    server_selection_timeout_ms: int = Field(2000, ge=1)
    # Per-query server-side limit; None leaves queries unbounded.
    max_time_ms: int | None = Field(default=None, ge=1)
    collections: CollectionNames = Field(default_factory=CollectionNames)
    # Optional JSON seed file per collection for the memory backend.
    seed_paths: dict[Literal["alerts", "posts", "vets"], str] = Field(default_factory=dict)


class RadiusSettings(BaseModel):
    """Search radius policy for one collection (kilometers)."""

    default_km: float = Field(10, gt=0)
    min_km: float = Field(1, gt=0)
    max_km: float = Field(100, gt=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "RadiusSettings":
        if self.min_km > self.max_km:
            raise ValueError("radius min_km must be <= max_km")
        if not (self.min_km <= self.default_km <= self.max_km):
            raise ValueError("radius default_km must lie within [min_km, max_km]")
        return self


class PaginationSettings(BaseModel):
    default_limit: int = Field(20, ge=1)
    max_limit: int = Field(100, ge=1)


class AlertQuerySettings(BaseModel):
    radius: RadiusSettings = Field(default_factory=RadiusSettings)
    default_status: str = "active"


class PostQuerySettings(BaseModel):
    radius: RadiusSettings = Field(default_factory=RadiusSettings)
    status: str = "active"


class VetQuerySettings(BaseModel):
    radius: RadiusSettings = Field(
        default_factory=lambda: RadiusSettings(default_km=50, min_km=1, max_km=500)
    )
    emergency_radius: RadiusSettings = Field(
        default_factory=lambda: RadiusSettings(default_km=100, min_km=1, max_km=500)
    )


class ProximitySettings(BaseModel):
    earth_radius_km: float = Field(6371.0, gt=0)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)
    alerts: AlertQuerySettings = Field(default_factory=AlertQuerySettings)
    posts: PostQuerySettings = Field(default_factory=PostQuerySettings)
    vets: VetQuerySettings = Field(default_factory=VetQuerySettings)


class ApiSettings(BaseModel):
    cors_origins: list[str] = Field(default_factory=list)
    cors_allow_local: bool = True


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    api: ApiSettings = Field(default_factory=ApiSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small; everything else belongs in YAML.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("SAFETAILS_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    backend = os.getenv("SAFETAILS_STORE_BACKEND")
    if backend:
        data.setdefault("store", {})["backend"] = backend.strip().lower()

    mongo_uri = os.getenv("SAFETAILS_MONGO_URI") or os.getenv("MONGODB_URI")
    if mongo_uri:
        data.setdefault("store", {})["mongo_uri"] = mongo_uri

    database = os.getenv("SAFETAILS_MONGO_DB")
    if database:
        data.setdefault("store", {})["database"] = database

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("SAFETAILS_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
