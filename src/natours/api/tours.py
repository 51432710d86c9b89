"""Tours API — listing, CRUD, statistics and geo search.

Learn: FastAPI matches routes in declaration order, so the fixed paths
(/top-5-cheap, /tour-stats, ...) must be registered before /{tour_id}
or they would be parsed as ids.

Access:
- reads, stats and geo search are public
- monthly-plan: admin, lead-guide, guide
- create / update / delete: admin, lead-guide
"""

import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from natours.auth.dependencies import restrict_to
from natours.db.engine import get_db
from natours.db.models import Role
from natours.schemas.review import ReviewRead
from natours.schemas.tour import (
    MonthlyPlanEntry,
    TourCreate,
    TourDistance,
    TourStats,
    TourUpdate,
    tour_to_read,
)
from natours.services.query import last_values, project, requested_fields
from natours.services.review_service import ReviewService
from natours.services.tour_service import (
    TOP_CHEAP_PARAMS,
    TOUR_MULTI_VALUE_FILTERS,
    TourService,
)

router = APIRouter(prefix="/tours")

tour_editors = restrict_to({Role.ADMIN, Role.LEAD_GUIDE})
tour_staff = restrict_to({Role.ADMIN, Role.LEAD_GUIDE, Role.GUIDE})


def _svc(db: AsyncSession = Depends(get_db)) -> TourService:
    return TourService(db)


def _tour_out(tour, fields=None) -> dict:
    return project(tour_to_read(tour).model_dump(mode="json"), fields)


def _params(request: Request) -> dict:
    return last_values(request.query_params, keep_all=TOUR_MULTI_VALUE_FILTERS)


async def _list(svc: TourService, params: dict) -> dict:
    tours = await svc.list_tours(params)
    fields = requested_fields(params)
    return {
        "status": "success",
        "results": len(tours),
        "data": {"tours": [_tour_out(t, fields) for t in tours]},
    }


# ─── Listing ────────────────────────────────────────────


@router.get("")
async def list_tours(request: Request, svc: TourService = Depends(_svc)):
    return await _list(svc, _params(request))


@router.get("/top-5-cheap")
async def top_five_cheap(request: Request, svc: TourService = Depends(_svc)):
    params = {**_params(request), **TOP_CHEAP_PARAMS}
    return await _list(svc, params)


# ─── Aggregates ─────────────────────────────────────────


@router.get("/tour-stats")
async def tour_stats(svc: TourService = Depends(_svc)):
    stats = [TourStats(**row).model_dump() for row in await svc.stats()]
    return {"status": "success", "data": {"stats": stats}}


@router.get("/monthly-plan/{year}", dependencies=[Depends(tour_staff)])
async def monthly_plan(year: int, svc: TourService = Depends(_svc)):
    plan = [MonthlyPlanEntry(**row).model_dump() for row in await svc.monthly_plan(year)]
    return {"status": "success", "data": {"plan": plan}}


# ─── Geo ────────────────────────────────────────────────


@router.get("/tours-within/{distance}/center/{latlng}/unit/{unit}")
async def tours_within(
    distance: float, latlng: str, unit: str, svc: TourService = Depends(_svc)
):
    tours = await svc.within(distance, latlng, unit)
    return {
        "status": "success",
        "results": len(tours),
        "data": {"tours": [_tour_out(t) for t in tours]},
    }


@router.get("/distances/{latlng}/unit/{unit}")
async def tour_distances(latlng: str, unit: str, svc: TourService = Depends(_svc)):
    rows = await svc.distances(latlng, unit)
    return {
        "status": "success",
        "data": {
            "distances": [TourDistance(**r).model_dump(mode="json") for r in rows]
        },
    }


# ─── CRUD ───────────────────────────────────────────────


@router.post("", status_code=201, dependencies=[Depends(tour_editors)])
async def create_tour(body: TourCreate, svc: TourService = Depends(_svc)):
    tour = await svc.create_tour(body.model_dump())
    return {"status": "success", "data": {"tour": _tour_out(tour)}}


@router.get("/{tour_id}")
async def get_tour(
    tour_id: uuid.UUID,
    svc: TourService = Depends(_svc),
    db: AsyncSession = Depends(get_db),
):
    tour = await svc.get_tour(tour_id)
    reviews = await ReviewService(db).list_reviews(tour_id=tour.id)
    doc = _tour_out(tour)
    doc["reviews"] = [ReviewRead.model_validate(r).model_dump(mode="json") for r in reviews]
    return {"status": "success", "data": {"tour": doc}}


@router.patch("/{tour_id}", dependencies=[Depends(tour_editors)])
async def update_tour(
    tour_id: uuid.UUID, body: TourUpdate, svc: TourService = Depends(_svc)
):
    tour = await svc.update_tour(tour_id, body.model_dump(exclude_unset=True))
    return {"status": "success", "data": {"tour": _tour_out(tour)}}


@router.delete("/{tour_id}", status_code=204, dependencies=[Depends(tour_editors)])
async def delete_tour(tour_id: uuid.UUID, svc: TourService = Depends(_svc)):
    await svc.delete_tour(tour_id)
    return Response(status_code=204)
