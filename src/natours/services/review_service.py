"""Review service — tour reviews and the tour rating aggregate.

Learn: Tour.ratings_average / ratings_quantity are denormalized. Instead
of ORM hooks firing behind the scenes, every write method here ends by
calling recompute_ratings(tour_id) explicitly, so the side effect is
visible at the call site and testable on its own.
"""

import uuid
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from natours.db.models import DEFAULT_RATINGS_AVERAGE, Review, Role, Tour, User
from natours.errors import DuplicateFieldError, ForbiddenError, NotFoundError
from natours.services.query import QueryBuilder

logger = structlog.get_logger()

REVIEW_FILTER_COLUMNS = {
    "rating": float,
    "tour_id": uuid.UUID,
    "user_id": uuid.UUID,
}


class ReviewService:
    """CRUD for reviews plus rating recomputation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Reads ──────────────────────────────────────────

    async def list_reviews(
        self,
        params: Mapping[str, str] | None = None,
        tour_id: Optional[uuid.UUID] = None,
    ) -> list[Review]:
        qb = QueryBuilder(Review, params or {}, REVIEW_FILTER_COLUMNS)
        query = select(Review)
        if tour_id is not None:
            query = query.where(Review.tour_id == tour_id)
        result = await self.db.execute(qb.apply(query))
        return list(result.scalars().all())

    async def get_review(self, review_id: uuid.UUID) -> Review:
        review = await self.db.get(Review, review_id)
        if not review:
            raise NotFoundError("No review found with that ID")
        return review

    # ─── Writes ─────────────────────────────────────────

    async def create_review(
        self, user: User, tour_id: uuid.UUID, review: str, rating: float
    ) -> Review:
        tour = await self.db.get(Tour, tour_id)
        if not tour or tour.secret_tour:
            raise NotFoundError("No tour found with that ID")

        obj = Review(review=review, rating=rating, tour_id=tour_id, user_id=user.id)
        self.db.add(obj)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateFieldError("You have already reviewed this tour")

        await self.recompute_ratings(tour_id)
        await self.db.commit()
        return await self._reload(obj.id)

    async def update_review(
        self, review_id: uuid.UUID, actor: User, data: Mapping[str, Any]
    ) -> Review:
        review = await self.get_review(review_id)
        self._check_owner(review, actor)
        for field in ("review", "rating"):
            if data.get(field) is not None:
                setattr(review, field, data[field])
        await self.db.flush()
        await self.recompute_ratings(review.tour_id)
        await self.db.commit()
        return await self._reload(review.id)

    async def delete_review(self, review_id: uuid.UUID, actor: User) -> None:
        review = await self.get_review(review_id)
        self._check_owner(review, actor)
        tour_id = review.tour_id
        await self.db.delete(review)
        await self.db.flush()
        await self.recompute_ratings(tour_id)
        await self.db.commit()

    # ─── Aggregates ─────────────────────────────────────

    async def recompute_ratings(self, tour_id: uuid.UUID) -> tuple[int, float]:
        """Refresh a tour's rating count and average from its reviews.

        With no reviews left the tour goes back to the defaults (0 / 4.5).
        Does not commit; the caller owns the transaction.
        """
        result = await self.db.execute(
            select(func.count(Review.id), func.avg(Review.rating)).where(
                Review.tour_id == tour_id
            )
        )
        count, avg = result.one()
        if count:
            quantity, average = int(count), round(float(avg), 1)
        else:
            quantity, average = 0, DEFAULT_RATINGS_AVERAGE

        await self.db.execute(
            update(Tour)
            .where(Tour.id == tour_id)
            .values(ratings_quantity=quantity, ratings_average=average)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(
            "review.ratings_recomputed",
            tour_id=str(tour_id),
            ratings_quantity=quantity,
            ratings_average=average,
        )
        return quantity, average

    # ─── Helpers ────────────────────────────────────────

    @staticmethod
    def _check_owner(review: Review, actor: User) -> None:
        if actor.role != Role.ADMIN.value and review.user_id != actor.id:
            raise ForbiddenError("You can only change your own reviews")

    async def _reload(self, review_id: uuid.UUID) -> Review:
        result = await self.db.execute(
            select(Review)
            .where(Review.id == review_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()
