"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- stored records (`Alert`, `PetPost`, `VetEntry`): validated when written (seed import);
  unknown fields are kept. Query results are returned as stored, not re-validated.
- query output (`ProximityResult`, `PaginationMeta`)

JSON field names keep the camelCase used by the stored documents and the web
client (`createdAt`, `isActive`, `location.coordinates`); Python attributes are
snake_case. Always dump with `by_alias=True` when producing JSON.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from safetails.core.geo import validate_point

AlertType = Literal["lost_pet", "found_pet", "foster_request", "emergency", "adoption", "general"]
Urgency = Literal["low", "medium", "high", "critical"]
AlertStatus = Literal["active", "resolved", "expired"]
PostType = Literal["missing", "emergency", "wounded"]
PostStatus = Literal["active", "resolved", "closed"]
Specialization = Literal[
    "emergency",
    "surgery",
    "vaccination",
    "checkup",
    "dental",
    "orthopedic",
    "dermatology",
    "cardiology",
    "other",
]

# Highest first; used by the alert ranker.
URGENCY_LEVELS: tuple[Urgency, ...] = ("critical", "high", "medium", "low")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # Seed files may carry naive timestamps; treat them as UTC so sorting never mixes kinds.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _Record(_Document):
    # Stored documents carry more than these models declare; seeding keeps every field.
    model_config = ConfigDict(extra="allow")

    id: str | None = Field(default=None, alias="_id")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # Mongo hands back ObjectId instances.
        return None if value is None else str(value)


class Coordinates(_Document):
    """Shared base for locations carrying a `[lng, lat]` pair."""

    model_config = ConfigDict(extra="allow")

    coordinates: list[float]

    @field_validator("coordinates")
    @classmethod
    def _validate_coordinates(cls, value: list[float]) -> list[float]:
        if len(value) != 2:
            raise ValueError("coordinates must be [longitude, latitude]")
        point = validate_point(value[0], value[1])
        return [point.lon, point.lat]


class AlertLocation(Coordinates):
    address: str
    city: str
    state: str
    zip_code: str | None = None
    radius: float = Field(10, ge=1, le=100)


class PetDetails(_Document):
    pet_type: str
    pet_breed: str | None = None
    pet_color: str | None = None
    pet_age: str | None = None
    pet_gender: str | None = None


class Alert(_Record):
    type: AlertType
    title: str
    description: str
    location: AlertLocation
    pet_details: PetDetails | None = None
    urgency: Urgency = "medium"
    status: AlertStatus = "active"
    created_by: str | None = None
    target_audience: Literal["all", "nearby", "specific_area"] = "nearby"
    expires_at: datetime | None = None
    is_active: bool = True
    notification_sent: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("title", "description")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("created_by", mode="before")
    @classmethod
    def _stringify_owner(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator("created_at", "updated_at", "expires_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class PostLocation(Coordinates):
    address: str | None = None
    city: str | None = None


class PetPost(_Record):
    post_type: PostType
    status: PostStatus = "active"
    location: PostLocation
    title: str | None = None
    pet_name: str | None = None
    pet_type: str | None = None
    pet_breed: str | None = None
    pet_age: str | None = None
    pet_gender: Literal["male", "female", "unknown"] = "unknown"
    pet_color: str | None = None
    description: str | None = None
    images: list[str] = Field(default_factory=list)
    last_seen_date: datetime | None = None
    is_emergency: bool | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    views: int = Field(0, ge=0)
    user_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("user_id", mode="before")
    @classmethod
    def _stringify_owner(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator("created_at", "updated_at", "last_seen_date")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @model_validator(mode="after")
    def _default_emergency_flag(self) -> "PetPost":
        if self.is_emergency is None:
            self.is_emergency = self.post_type == "emergency"
        return self


class VetLocation(Coordinates):
    type: Literal["Point"] = "Point"
    address: str | None = None
    city: str
    state: str
    zip_code: str | None = None


Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class ContactInfo(_Document):
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    emergency_phone: str | None = None


class OpeningHours(_Document):
    open: str | None = None
    close: str | None = None


class VetEntry(_Record):
    clinic_name: str
    vet_name: str | None = None
    vet_id: str | None = None
    specialization: list[Specialization] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)
    location: VetLocation
    contact_info: ContactInfo | None = None
    operating_hours: dict[Weekday, OpeningHours] | None = None
    is_emergency_available: bool = False
    is_24_hours: bool = Field(False, alias="is24Hours")
    rating: float = Field(0, ge=0, le=5)
    total_reviews: int = Field(0, ge=0)
    is_verified: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("vet_id", mode="before")
    @classmethod
    def _stringify_vet(cls, value: Any) -> Any:
        return None if value is None else str(value)


class PaginationMeta(_Document):
    current_page: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit) if total else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ProximityResult(_Document):
    """Ordered page of records plus pagination metadata."""

    data: list[dict[str, Any]]
    pagination: PaginationMeta
    # Server-side only; never serialized into API responses.
    degraded: bool = Field(default=False, exclude=True)
