"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to resolve the
current user from the request. The chain for a protected route:

1. extract token — Authorization: Bearer header first, jwt cookie second
2. verify signature and expiry (TokenService)
3. load the active user the token names
4. reject tokens issued before the user's last password change
5. attach the user to request.state.user and return it

Every failure raises an AppError, so FastAPI stops resolving the
dependency graph and the route body never runs. restrict_to() depends
on get_current_user and therefore always runs after identity resolution.
"""

from typing import Callable, Iterable, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from natours.auth.jwt import TokenService, get_token_service
from natours.db.engine import get_db
from natours.db.models import Role, User
from natours.errors import (
    AppError,
    ForbiddenError,
    MissingTokenError,
    StaleIdentityError,
)
from natours.services.user_service import UserStore

logger = structlog.get_logger()

TOKEN_COOKIE = "jwt"
LOGGED_OUT_SENTINEL = "loggedout"


def extract_token(request: Request) -> Optional[str]:
    """Return the raw token from the Authorization header or the jwt cookie."""
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    cookie = request.cookies.get(TOKEN_COOKIE)
    if cookie:
        return cookie
    return None


async def resolve_identity(token: str, tokens: TokenService, store: UserStore) -> User:
    """Verify a token and load its still-valid user. Raises on any failure."""
    claims = tokens.verify(token)

    user = await store.find_by_id(claims.user_id)
    if user is None:
        raise StaleIdentityError("The user belonging to this token no longer exists")

    if user.changed_password_after(claims.issued_at):
        raise StaleIdentityError("Password changed recently. Please log in again")

    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> User:
    """Resolve the current user (required — 401 if absent or invalid)."""
    token = extract_token(request)
    if not token:
        raise MissingTokenError()

    user = await resolve_identity(token, tokens, UserStore(db))
    request.state.user = user
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[User]:
    """Resolve the current user if there is one (views only).

    Learn: This is the "soft" variant. Any failure — no token, bad token,
    deleted user, stale token — yields an anonymous request (None)
    instead of an error, so pages can render for logged-out visitors.
    """
    request.state.user = None
    token = extract_token(request)
    if not token:
        return None
    try:
        user = await resolve_identity(token, tokens, UserStore(db))
    except AppError as e:
        logger.debug("auth.optional_identity_rejected", reason=e.__class__.__name__)
        return None
    request.state.user = user
    return user


def restrict_to(roles: Iterable[Role | str]) -> Callable:
    """Build a dependency that only lets users with one of `roles` through.

    Usage:
        @router.post("/tours", dependencies=[Depends(restrict_to({Role.ADMIN}))])
    or, when the handler needs the user:
        user: User = Depends(restrict_to({Role.ADMIN, Role.LEAD_GUIDE}))
    """
    allowed = frozenset(Role(r).value for r in roles)

    async def check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ForbiddenError()
        return user

    return check_role
