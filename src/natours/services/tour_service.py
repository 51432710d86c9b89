"""Tour service — tour CRUD, statistics and geo queries.

Learn: Secret tours are a read-side concern: every query built here
starts from _visible(), which filters them out. Writes (admin and
lead-guide only) can still target them by id.

Aggregations:
- stats(): per-difficulty counts and price/rating figures, in SQL
- monthly_plan(year): start dates of the year bucketed by month
- within()/distances(): great-circle distance from a point to each
  tour's start location (haversine), computed in Python so the same
  code runs on PostgreSQL and SQLite
"""

import math
import re
import unicodedata
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Mapping

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from natours.db.models import (
    Review,
    Role,
    Tour,
    TourLocation,
    TourStartDate,
    User,
    as_utc,
)
from natours.errors import DuplicateFieldError, NotFoundError, ValidationFailedError
from natours.services.query import QueryBuilder

logger = structlog.get_logger()

TOUR_FILTER_COLUMNS = {
    "name": str,
    "slug": str,
    "duration": int,
    "max_group_size": int,
    "difficulty": str,
    "ratings_average": float,
    "ratings_quantity": int,
    "price": float,
}

# equality filters that may repeat: ?difficulty=easy&difficulty=medium
TOUR_MULTI_VALUE_FILTERS = frozenset({
    "duration",
    "ratings_quantity",
    "ratings_average",
    "max_group_size",
    "difficulty",
    "price",
})

TOP_CHEAP_PARAMS = {
    "limit": "5",
    "sort": "-ratings_average,price",
    "fields": "name,price,ratings_average,summary,difficulty",
}

EARTH_RADIUS = {"mi": 3963.2, "km": 6378.1}
STATS_MIN_RATING = 4.5
# the plan window runs to January 1st of the following year
MIN_PLAN_YEAR, MAX_PLAN_YEAR = 1, 9998
GUIDE_ROLES = {Role.GUIDE.value, Role.LEAD_GUIDE.value}


def slugify(value: str) -> str:
    """'The Forest Hiker' → 'the-forest-hiker'."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "", value.lower())
    return re.sub(r"[-\s_]+", "-", value).strip("-")


def parse_latlng(latlng: str) -> tuple[float, float]:
    try:
        lat_s, lng_s = latlng.split(",")
        lat, lng = float(lat_s), float(lng_s)
    except ValueError:
        raise ValidationFailedError("Please provide latitude and longitude in the format lat,lng")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationFailedError("Latitude or longitude out of range")
    return lat, lng


def haversine(lat1: float, lng1: float, lat2: float, lng2: float, unit: str = "km") -> float:
    """Great-circle distance between two points, in `unit` (mi or km)."""
    _check_unit(unit)
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS[unit] * math.asin(min(1.0, math.sqrt(a)))


def _utc(value: datetime) -> datetime:
    return as_utc(value).astimezone(timezone.utc)


class TourService:
    """Business logic for tours."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _visible():
        return select(Tour).where(Tour.secret_tour.is_(False))

    # ─── Reads ──────────────────────────────────────────

    async def list_tours(self, params: Mapping[str, str] | None = None) -> list[Tour]:
        qb = QueryBuilder(
            Tour, params or {}, TOUR_FILTER_COLUMNS, multi_valued=TOUR_MULTI_VALUE_FILTERS
        )
        result = await self.db.execute(qb.apply(self._visible()))
        return list(result.scalars().all())

    async def get_tour(self, tour_id: uuid.UUID) -> Tour:
        result = await self.db.execute(
            self._visible()
            .where(Tour.id == tour_id)
            .execution_options(populate_existing=True)
        )
        tour = result.scalars().first()
        if not tour:
            raise NotFoundError("No tour found with that ID")
        return tour

    async def get_by_slug(self, slug: str) -> Tour:
        result = await self.db.execute(self._visible().where(Tour.slug == slug))
        tour = result.scalars().first()
        if not tour:
            raise NotFoundError("There is no tour with that name")
        return tour

    async def _get_any(self, tour_id: uuid.UUID) -> Tour:
        """Lookup for writes: secret tours included."""
        tour = await self.db.get(Tour, tour_id)
        if not tour:
            raise NotFoundError("No tour found with that ID")
        return tour

    # ─── Writes ─────────────────────────────────────────

    async def create_tour(self, data: Mapping[str, Any]) -> Tour:
        data = dict(data)
        tour = Tour(
            name=data["name"],
            slug=slugify(data["name"]),
            duration=data["duration"],
            max_group_size=data["max_group_size"],
            difficulty=_enum_value(data["difficulty"]),
            ratings_average=data.get("ratings_average", 4.5),
            ratings_quantity=data.get("ratings_quantity", 0),
            price=data["price"],
            price_discount=data.get("price_discount"),
            summary=data["summary"],
            description=data.get("description"),
            image_cover=data["image_cover"],
            images=list(data.get("images") or []),
            secret_tour=data.get("secret_tour", False),
            start_dates=[],
            locations=[],
            guides=[],
        )
        await self._apply_relations(tour, data)
        self.db.add(tour)
        await self._commit_unique_name()
        logger.info("tour.created", tour_id=str(tour.id), name=tour.name)
        return await self._reload(tour.id)

    async def update_tour(self, tour_id: uuid.UUID, data: Mapping[str, Any]) -> Tour:
        tour = await self._get_any(tour_id)
        data = {k: v for k, v in data.items() if v is not None}

        price = data.get("price", tour.price)
        discount = data.get("price_discount", tour.price_discount)
        if discount is not None and discount >= price:
            raise ValidationFailedError(
                f"Discount price ({discount}) should be below regular price"
            )

        for field in (
            "duration", "max_group_size", "price", "price_discount", "summary",
            "description", "image_cover", "secret_tour",
        ):
            if field in data:
                setattr(tour, field, data[field])
        if "difficulty" in data:
            tour.difficulty = _enum_value(data["difficulty"])
        if "images" in data:
            tour.images = list(data["images"])
        if "name" in data:
            tour.name = data["name"].strip()
            tour.slug = slugify(tour.name)

        await self._apply_relations(tour, data)
        await self._commit_unique_name()
        return await self._reload(tour.id)

    async def delete_tour(self, tour_id: uuid.UUID) -> None:
        tour = await self._get_any(tour_id)
        await self.db.execute(delete(Review).where(Review.tour_id == tour.id))
        await self.db.delete(tour)
        await self.db.commit()
        logger.info("tour.deleted", tour_id=str(tour_id))

    async def _apply_relations(self, tour: Tour, data: Mapping[str, Any]) -> None:
        if data.get("start_location") is not None:
            loc = _as_dict(data["start_location"])
            tour.start_lng, tour.start_lat = loc["coordinates"]
            tour.start_address = loc.get("address")
            tour.start_description = loc.get("description")
        if "start_dates" in data:
            tour.start_dates = [TourStartDate(starts_at=_utc(d)) for d in data["start_dates"]]
        if "locations" in data:
            stops = []
            for raw in data["locations"]:
                loc = _as_dict(raw)
                lng, lat = loc["coordinates"]
                stops.append(
                    TourLocation(
                        lat=lat,
                        lng=lng,
                        address=loc.get("address"),
                        description=loc.get("description"),
                        day=loc.get("day"),
                    )
                )
            tour.locations = stops
        if "guides" in data:
            tour.guides = await self._load_guides(data["guides"])

    async def _load_guides(self, guide_ids: list[uuid.UUID]) -> list[User]:
        if not guide_ids:
            return []
        ids = list(dict.fromkeys(guide_ids))
        result = await self.db.execute(
            select(User).where(User.id.in_(ids), User.active.is_(True))
        )
        guides = list(result.scalars().all())
        if len(guides) != len(ids) or any(g.role not in GUIDE_ROLES for g in guides):
            raise ValidationFailedError("Guides must be existing users with role guide or lead-guide")
        return guides

    async def _commit_unique_name(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateFieldError("A tour with that name already exists")

    async def _reload(self, tour_id: uuid.UUID) -> Tour:
        result = await self.db.execute(
            select(Tour)
            .where(Tour.id == tour_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    # ─── Aggregates ─────────────────────────────────────

    async def stats(self) -> list[dict]:
        difficulty = func.upper(Tour.difficulty)
        avg_price = func.avg(Tour.price)
        result = await self.db.execute(
            select(
                difficulty.label("difficulty"),
                func.count(Tour.id).label("num_tours"),
                func.sum(Tour.ratings_quantity).label("num_ratings"),
                func.avg(Tour.ratings_average).label("avg_rating"),
                avg_price.label("avg_price"),
                func.min(Tour.price).label("min_price"),
                func.max(Tour.price).label("max_price"),
            )
            .where(Tour.secret_tour.is_(False), Tour.ratings_average >= STATS_MIN_RATING)
            .group_by(difficulty)
            .order_by(avg_price)
        )
        return [
            {
                "difficulty": row.difficulty,
                "num_tours": row.num_tours,
                "num_ratings": int(row.num_ratings or 0),
                "avg_rating": round(float(row.avg_rating), 2),
                "avg_price": round(float(row.avg_price), 2),
                "min_price": float(row.min_price),
                "max_price": float(row.max_price),
            }
            for row in result
        ]

    async def monthly_plan(self, year: int) -> list[dict]:
        if not MIN_PLAN_YEAR <= year <= MAX_PLAN_YEAR:
            raise ValidationFailedError(
                f"Year must be between {MIN_PLAN_YEAR} and {MAX_PLAN_YEAR}"
            )
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
        result = await self.db.execute(
            select(TourStartDate.starts_at, Tour.name)
            .join(Tour, Tour.id == TourStartDate.tour_id)
            .where(
                Tour.secret_tour.is_(False),
                TourStartDate.starts_at >= start,
                TourStartDate.starts_at < end,
            )
            .order_by(TourStartDate.starts_at)
        )
        months: dict[int, list[str]] = defaultdict(list)
        for starts_at, name in result:
            months[_utc(starts_at).month].append(name)

        plan = [
            {"month": month, "num_tour_starts": len(names), "tours": names}
            for month, names in months.items()
        ]
        plan.sort(key=lambda p: (-p["num_tour_starts"], p["month"]))
        return plan[:12]

    async def _located_tours(self) -> list[Tour]:
        result = await self.db.execute(
            self._visible().where(Tour.start_lat.is_not(None), Tour.start_lng.is_not(None))
        )
        return list(result.scalars().all())

    async def within(self, distance: float, latlng: str, unit: str) -> list[Tour]:
        """Tours whose start location lies within `distance` of the point."""
        if distance <= 0:
            raise ValidationFailedError("Distance must be positive")
        _check_unit(unit)
        lat, lng = parse_latlng(latlng)
        return [
            t for t in await self._located_tours()
            if haversine(lat, lng, t.start_lat, t.start_lng, unit) <= distance
        ]

    async def distances(self, latlng: str, unit: str) -> list[dict]:
        """Every located tour with its distance from the point, nearest first."""
        _check_unit(unit)
        lat, lng = parse_latlng(latlng)
        rows = [
            {
                "id": t.id,
                "name": t.name,
                "distance": round(haversine(lat, lng, t.start_lat, t.start_lng, unit), 2),
            }
            for t in await self._located_tours()
        ]
        rows.sort(key=lambda r: r["distance"])
        return rows


def _check_unit(unit: str) -> None:
    if unit not in EARTH_RADIUS:
        raise ValidationFailedError("Unit must be mi or km")


def _as_dict(value: Any) -> dict:
    return value.model_dump() if hasattr(value, "model_dump") else dict(value)


def _enum_value(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)
