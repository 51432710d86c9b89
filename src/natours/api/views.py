"""View-context endpoints — what the server-rendered pages need.

Learn: These use get_current_user_optional, so a visitor with no token,
a bad token or a stale token still gets the page, just as anonymous
(user is null). Only /views/me insists on a valid identity.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from natours.auth.dependencies import get_current_user, get_current_user_optional
from natours.db.engine import get_db
from natours.db.models import User
from natours.schemas.review import ReviewRead
from natours.schemas.tour import tour_to_read
from natours.schemas.user import UserRead
from natours.services.review_service import ReviewService
from natours.services.tour_service import TourService

router = APIRouter(prefix="/views")


def _user_ctx(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return UserRead.model_validate(user).model_dump(mode="json")


@router.get("/overview")
async def overview(
    user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
):
    tours = await TourService(db).list_tours()
    return {
        "title": "All Tours",
        "user": _user_ctx(user),
        "tours": [tour_to_read(t).model_dump(mode="json") for t in tours],
    }


@router.get("/tour/{slug}")
async def tour_page(
    slug: str,
    user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
):
    tour = await TourService(db).get_by_slug(slug)
    reviews = await ReviewService(db).list_reviews(tour_id=tour.id)
    return {
        "title": f"{tour.name} Tour",
        "user": _user_ctx(user),
        "tour": tour_to_read(tour).model_dump(mode="json"),
        "reviews": [ReviewRead.model_validate(r).model_dump(mode="json") for r in reviews],
    }


@router.get("/me")
async def account(user: User = Depends(get_current_user)):
    return {"title": "Your account", "user": _user_ctx(user)}
