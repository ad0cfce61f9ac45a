from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AudienceProfile(str, Enum):
    INFANT = "infant"
    CHILD = "child"
    FAMILY = "family"

    @property
    def target_age(self) -> Optional[int]:
        return _TARGET_AGES[self]


_TARGET_AGES: dict[AudienceProfile, Optional[int]] = {
    AudienceProfile.INFANT: 2,
    AudienceProfile.CHILD: 8,
    AudienceProfile.FAMILY: None,
}


class RawRecord(BaseModel):
    """
    One event as extracted from one source.

    Immutable once built. Every scraper payload goes through this model
    exactly once (sources.ingest.coerce_raw_record); later stages rely on
    the invariants checked here.
    """
    model_config = ConfigDict(frozen=True)

    external_id: str
    source: str
    title: str
    description: Optional[str] = None

    start_datetime: datetime
    end_datetime: Optional[datetime] = None

    location_name: Optional[str] = None
    address: Optional[str] = None
    category: Optional[str] = None

    age_min: Optional[int] = Field(default=None, ge=0)
    age_max: Optional[int] = Field(default=None, ge=0)

    adult_price: Optional[float] = Field(default=None, ge=0)
    child_price: Optional[float] = Field(default=None, ge=0)
    family_price: Optional[float] = Field(default=None, ge=0)

    is_outdoor: Optional[bool] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    image_url: Optional[str] = None
    booking_url: Optional[str] = None

    @field_validator("external_id", "source", "title")
    @classmethod
    def _required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator(
        "description", "location_name", "address", "category", "image_url", "booking_url",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def _age_range_ordered(self):
        if self.age_min is not None and self.age_max is not None and self.age_min > self.age_max:
            raise ValueError(f"age_min ({self.age_min}) > age_max ({self.age_max})")
        return self

    @property
    def location_text(self) -> Optional[str]:
        """Location string used for matching and geocoding: address first."""
        return self.address or self.location_name

    @property
    def has_any_price(self) -> bool:
        return (
            self.adult_price is not None
            or self.child_price is not None
            or self.family_price is not None
        )


class GeoRecord(RawRecord):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_from_origin: Optional[float] = Field(default=None, ge=0)

    @classmethod
    def from_raw(
        cls,
        raw: RawRecord,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        distance_from_origin: Optional[float] = None,
    ) -> "GeoRecord":
        return cls(
            **raw.model_dump(exclude={"latitude", "longitude", "distance_from_origin"}),
            latitude=latitude,
            longitude=longitude,
            distance_from_origin=distance_from_origin,
        )


class ScoredRecord(GeoRecord):
    score_infant: int = Field(ge=0, le=100)
    score_child: int = Field(ge=0, le=100)
    score_family: int = Field(ge=0, le=100)

    def score_for(self, profile: AudienceProfile) -> int:
        return {
            AudienceProfile.INFANT: self.score_infant,
            AudienceProfile.CHILD: self.score_child,
            AudienceProfile.FAMILY: self.score_family,
        }[profile]


@dataclass(frozen=True)
class DayWeather:
    """One forecast day, as returned by the weather collaborator."""
    date: str  # local date, YYYY-MM-DD
    temperature: float
    condition: str
    is_good_for_outdoor: bool
