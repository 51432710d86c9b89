"""Pydantic schemas for tours.

Learn: The API speaks GeoJSON for locations ({"type": "Point",
"coordinates": [lng, lat]}) while the tables store flat lat/lng columns.
tour_to_read() does that translation on the way out and TourService does
it on the way in.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from natours.db.models import Difficulty, Tour


# ─── Locations ──────────────────────────────────────────


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: list[float] = Field(..., min_length=2, max_length=2, description="[lng, lat]")
    address: Optional[str] = None
    description: Optional[str] = None

    @field_validator("coordinates")
    @classmethod
    def validate_coordinates(cls, v: list[float]) -> list[float]:
        lng, lat = v
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            raise ValueError("coordinates must be [lng, lat] within valid ranges")
        return v


class TourStop(GeoPoint):
    day: Optional[int] = Field(None, ge=0)


# ─── Write schemas ──────────────────────────────────────


class TourCreate(BaseModel):
    name: str = Field(..., min_length=10, max_length=40)
    duration: int = Field(..., gt=0)
    max_group_size: int = Field(..., gt=0)
    difficulty: Difficulty
    ratings_average: float = Field(4.5, ge=1, le=5)
    ratings_quantity: int = Field(0, ge=0)
    price: float = Field(..., gt=0)
    price_discount: Optional[float] = Field(None, ge=0)
    summary: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_cover: str = Field(..., min_length=1)
    images: list[str] = Field(default_factory=list)
    start_dates: list[datetime] = Field(default_factory=list)
    secret_tour: bool = False
    start_location: Optional[GeoPoint] = None
    locations: list[TourStop] = Field(default_factory=list)
    guides: list[uuid.UUID] = Field(default_factory=list)

    @field_validator("name", "summary", "description")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def validate_discount(self):
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError(
                f"Discount price ({self.price_discount}) should be below regular price"
            )
        return self


class TourUpdate(BaseModel):
    """Partial update. The discount/price check runs in the service,
    against the stored price when only one of the two is sent."""

    name: Optional[str] = Field(None, min_length=10, max_length=40)
    duration: Optional[int] = Field(None, gt=0)
    max_group_size: Optional[int] = Field(None, gt=0)
    difficulty: Optional[Difficulty] = None
    price: Optional[float] = Field(None, gt=0)
    price_discount: Optional[float] = Field(None, ge=0)
    summary: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_cover: Optional[str] = None
    images: Optional[list[str]] = None
    start_dates: Optional[list[datetime]] = None
    secret_tour: Optional[bool] = None
    start_location: Optional[GeoPoint] = None
    locations: Optional[list[TourStop]] = None
    guides: Optional[list[uuid.UUID]] = None


# ─── Read schemas ───────────────────────────────────────


class GuideRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    photo: Optional[str] = None
    role: str

    model_config = {"from_attributes": True}


class TourRead(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    duration: int
    duration_weeks: int
    max_group_size: int
    difficulty: Difficulty
    ratings_average: float
    ratings_quantity: int
    price: float
    price_discount: Optional[float] = None
    summary: str
    description: Optional[str] = None
    image_cover: str
    images: list[str] = []
    start_dates: list[datetime] = []
    start_location: Optional[GeoPoint] = None
    locations: list[TourStop] = []
    guides: list[GuideRead] = []
    created_at: datetime


def tour_to_read(tour: Tour) -> TourRead:
    start_location = None
    if tour.start_lat is not None and tour.start_lng is not None:
        start_location = GeoPoint(
            coordinates=[tour.start_lng, tour.start_lat],
            address=tour.start_address,
            description=tour.start_description,
        )
    return TourRead(
        id=tour.id,
        name=tour.name,
        slug=tour.slug,
        duration=tour.duration,
        duration_weeks=tour.duration_weeks,
        max_group_size=tour.max_group_size,
        difficulty=tour.difficulty,
        ratings_average=tour.ratings_average,
        ratings_quantity=tour.ratings_quantity,
        price=tour.price,
        price_discount=tour.price_discount,
        summary=tour.summary,
        description=tour.description,
        image_cover=tour.image_cover,
        images=list(tour.images or []),
        start_dates=[d.starts_at for d in tour.start_dates],
        start_location=start_location,
        locations=[
            TourStop(
                coordinates=[loc.lng, loc.lat],
                address=loc.address,
                description=loc.description,
                day=loc.day,
            )
            for loc in tour.locations
        ],
        guides=[GuideRead.model_validate(g) for g in tour.guides],
        created_at=tour.created_at,
    )


# ─── Aggregates ─────────────────────────────────────────


class TourStats(BaseModel):
    difficulty: str
    num_tours: int
    num_ratings: int
    avg_rating: float
    avg_price: float
    min_price: float
    max_price: float


class MonthlyPlanEntry(BaseModel):
    month: int
    num_tour_starts: int
    tours: list[str]


class TourDistance(BaseModel):
    id: uuid.UUID
    name: str
    distance: float
