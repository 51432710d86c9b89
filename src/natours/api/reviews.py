"""Reviews API — all routes require a logged-in user.

- GET    /reviews                   → list (filterable: rating, tour_id, user_id)
- POST   /reviews                   → role user; tour_id in the body
- GET    /reviews/{id}
- PATCH  /reviews/{id}              → admin or the author
- DELETE /reviews/{id}              → admin or the author
- GET    /tours/{tour_id}/reviews   → reviews of one tour
- POST   /tours/{tour_id}/reviews   → role user; tour_id from the path
"""

import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from natours.auth.dependencies import restrict_to
from natours.db.engine import get_db
from natours.db.models import Review, Role, User
from natours.errors import ValidationFailedError
from natours.schemas.review import ReviewCreate, ReviewRead, ReviewUpdate
from natours.services.query import last_values
from natours.services.review_service import ReviewService

router = APIRouter(prefix="/reviews")
nested_router = APIRouter(prefix="/tours/{tour_id}/reviews")

reviewers = restrict_to({Role.USER})
review_editors = restrict_to({Role.ADMIN, Role.USER})


def _svc(db: AsyncSession = Depends(get_db)) -> ReviewService:
    return ReviewService(db)


def _review_out(review: Review) -> dict:
    return ReviewRead.model_validate(review).model_dump(mode="json")


def _many(reviews: list[Review]) -> dict:
    return {
        "status": "success",
        "results": len(reviews),
        "data": {"reviews": [_review_out(r) for r in reviews]},
    }


# ─── /reviews ───────────────────────────────────────────


@router.get("")
async def list_reviews(request: Request, svc: ReviewService = Depends(_svc)):
    return _many(await svc.list_reviews(last_values(request.query_params)))


@router.post("", status_code=201)
async def create_review(
    body: ReviewCreate,
    user: User = Depends(reviewers),
    svc: ReviewService = Depends(_svc),
):
    if body.tour_id is None:
        raise ValidationFailedError("Review must belong to a tour")
    review = await svc.create_review(user, body.tour_id, body.review, body.rating)
    return {"status": "success", "data": {"review": _review_out(review)}}


@router.get("/{review_id}")
async def get_review(review_id: uuid.UUID, svc: ReviewService = Depends(_svc)):
    review = await svc.get_review(review_id)
    return {"status": "success", "data": {"review": _review_out(review)}}


@router.patch("/{review_id}")
async def update_review(
    review_id: uuid.UUID,
    body: ReviewUpdate,
    user: User = Depends(review_editors),
    svc: ReviewService = Depends(_svc),
):
    review = await svc.update_review(review_id, user, body.model_dump(exclude_unset=True))
    return {"status": "success", "data": {"review": _review_out(review)}}


@router.delete("/{review_id}", status_code=204)
async def delete_review(
    review_id: uuid.UUID,
    user: User = Depends(review_editors),
    svc: ReviewService = Depends(_svc),
):
    await svc.delete_review(review_id, user)
    return Response(status_code=204)


# ─── /tours/{tour_id}/reviews ───────────────────────────


@nested_router.get("")
async def list_tour_reviews(
    tour_id: uuid.UUID, request: Request, svc: ReviewService = Depends(_svc)
):
    return _many(await svc.list_reviews(last_values(request.query_params), tour_id=tour_id))


@nested_router.post("", status_code=201)
async def create_tour_review(
    tour_id: uuid.UUID,
    body: ReviewCreate,
    user: User = Depends(reviewers),
    svc: ReviewService = Depends(_svc),
):
    review = await svc.create_review(user, tour_id, body.review, body.rating)
    return {"status": "success", "data": {"review": _review_out(review)}}
