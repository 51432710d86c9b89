"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys via the portable Uuid type (native uuid on PostgreSQL)
- JSON for small list-valued fields (tour image names)
- Start dates and locations as child tables so they can be grouped in SQL
- No schema-attached hooks: slugs, password hashing and rating aggregates
  are computed by the service layer where the write happens
"""

import enum
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_micros(value: datetime) -> int:
    """Whole microseconds since the Unix epoch (naive values are UTC)."""
    return (as_utc(value) - EPOCH) // timedelta(microseconds=1)


class Role(str, enum.Enum):
    """Closed set of user roles."""

    USER = "user"
    GUIDE = "guide"
    LEAD_GUIDE = "lead-guide"
    ADMIN = "admin"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    DIFFICULT = "difficult"


DEFAULT_RATINGS_AVERAGE = 4.5


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person with an account. Guides and admins are users with a role.

    Learn: password_hash is the only password column; plaintext never
    reaches this table. The reset columns are populated only between a
    forgot-password request and its consumption or expiry, and hold the
    sha256 of the emailed token, never the token itself.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    photo: Mapped[str] = mapped_column(String(255), default="default.jpg")
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.USER.value)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    password_reset_token: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def changed_password_after(self, issued_at: int) -> bool:
        """True if the password changed after a token issued at `issued_at`.

        `issued_at` is in epoch microseconds; whole seconds are too coarse to
        order a login and a password change made moments apart.
        """
        if self.password_changed_at is None:
            return False
        return issued_at < epoch_micros(self.password_changed_at)


# ══════════════════════════════════════════════════════════════
# Tours
# ══════════════════════════════════════════════════════════════


tour_guides = Table(
    "tour_guides",
    Base.metadata,
    Column("tour_id", Uuid, ForeignKey("tours.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Tour(Base):
    """A bookable tour.

    Learn: ratings_average / ratings_quantity are denormalized aggregates
    of the reviews table, refreshed by ReviewService after every review
    write. secret_tour rows are filtered out of every read path.
    """

    __tablename__ = "tours"
    __table_args__ = (
        Index("ix_tours_price_ratings", "price", "ratings_average"),
        CheckConstraint("ratings_average >= 1 AND ratings_average <= 5", name="ck_tours_rating_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(60), nullable=False, index=True)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    max_group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    ratings_average: Mapped[float] = mapped_column(
        Float, nullable=False, default=DEFAULT_RATINGS_AVERAGE
    )
    ratings_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    price_discount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_cover: Mapped[str] = mapped_column(String(255), nullable=False)
    images: Mapped[list] = mapped_column(JSON, default=list)
    secret_tour: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Start location (GeoJSON Point in the API, flattened here)
    start_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    start_description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    start_dates: Mapped[list["TourStartDate"]] = relationship(
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourStartDate.starts_at",
        lazy="selectin",
    )
    locations: Mapped[list["TourLocation"]] = relationship(
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourLocation.day",
        lazy="selectin",
    )
    guides: Mapped[list["User"]] = relationship(secondary=tour_guides, lazy="selectin")

    @property
    def duration_weeks(self) -> int:
        return math.ceil(self.duration / 7)


class TourStartDate(Base):
    __tablename__ = "tour_start_dates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tour: Mapped["Tour"] = relationship(back_populates="start_dates")


class TourLocation(Base):
    """A stop on the tour itinerary."""

    __tablename__ = "tour_locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tour: Mapped["Tour"] = relationship(back_populates="locations")


# ══════════════════════════════════════════════════════════════
# Reviews
# ══════════════════════════════════════════════════════════════


class Review(Base):
    """A user's rating of a tour. One review per (tour, user)."""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("tour_id", "user_id", name="uq_reviews_tour_user"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    review: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    tour_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tours.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    tour: Mapped["Tour"] = relationship()
    user: Mapped["User"] = relationship(lazy="selectin")
