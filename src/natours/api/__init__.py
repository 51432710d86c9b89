"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter where a whole router is protected (reviews).
Users, tours and views mix public and protected routes, so they
declare their own per-route dependencies.
"""

from fastapi import APIRouter, Depends

from natours.api.health import router as health_router
from natours.api.reviews import nested_router as tour_reviews_router
from natours.api.reviews import router as reviews_router
from natours.api.tours import router as tours_router
from natours.api.users import router as users_router
from natours.api.views import router as views_router
from natours.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Mixed public / protected routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(tours_router, tags=["tours"])
api_router.include_router(views_router, tags=["views"])

# Protected routes: require a valid JWT (header or cookie)
api_router.include_router(tour_reviews_router, tags=["reviews"], dependencies=_auth)
api_router.include_router(reviews_router, tags=["reviews"], dependencies=_auth)
