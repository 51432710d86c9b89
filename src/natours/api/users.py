"""Users API — signup, login, password flows, profile and admin CRUD.

Learn: Routes handle HTTP concerns (cookies, status codes, envelopes),
services handle business logic. Errors are raised as AppError
subclasses and turned into responses by natours.errors.

- POST   /users/signup                → create account, log in
- POST   /users/login                 → email/password → token + cookie
- GET    /users/logout                → overwrite the jwt cookie
- POST   /users/forgotPassword        → email a reset link
- PATCH  /users/resetPassword/{token} → consume reset token, log in
- PATCH  /users/updateMyPassword      → change password (authenticated)
- GET    /users/me, PATCH /users/updateMe, DELETE /users/deleteMe
- GET/POST /users, GET/PATCH/DELETE /users/{id} → admin only
"""

import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from natours.auth.dependencies import (
    LOGGED_OUT_SENTINEL,
    TOKEN_COOKIE,
    get_current_user,
    restrict_to,
)
from natours.auth.jwt import TokenService, get_token_service
from natours.config import Settings, get_settings
from natours.db.engine import get_db
from natours.db.models import Role, User
from natours.schemas.user import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdateMeRequest,
    UpdatePasswordRequest,
    UserCreate,
    UserRead,
    UserUpdate,
)
from natours.services.auth_service import AuthResult, AuthService
from natours.services.email_service import EmailSender, get_email_sender
from natours.services.user_service import UserService, UserStore

router = APIRouter(prefix="/users")

admin_only = restrict_to({Role.ADMIN})


def _auth_svc(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    email: EmailSender = Depends(get_email_sender),
    config: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(
        store=UserStore(db),
        tokens=tokens,
        email=email,
        reset_ttl=timedelta(minutes=config.password_reset_ttl_minutes),
    )


def _user_svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def send_token(result: AuthResult, response: Response, config: Settings) -> dict:
    """Set the jwt cookie and build the token envelope."""
    response.set_cookie(
        TOKEN_COOKIE,
        result.token,
        max_age=config.jwt_cookie_expires_days * 24 * 60 * 60,
        httponly=True,
        secure=config.is_production,
        samesite="lax",
    )
    return {
        "status": "success",
        "token": result.token,
        "data": {"user": _user_out(result.user)},
    }


def _user_out(user: User) -> dict:
    return UserRead.model_validate(user).model_dump(mode="json")


# ─── Authentication ─────────────────────────────────────


@router.post("/signup", status_code=201)
async def signup(
    body: SignupRequest,
    request: Request,
    response: Response,
    svc: AuthService = Depends(_auth_svc),
    config: Settings = Depends(get_settings),
):
    base = config.public_base_url or str(request.base_url)
    result = await svc.signup(
        name=body.name,
        email=body.email,
        password=body.password,
        password_confirm=body.password_confirm,
        account_url=f"{base.rstrip('/')}/api/v1/views/me",
    )
    return send_token(result, response, config)


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    svc: AuthService = Depends(_auth_svc),
    config: Settings = Depends(get_settings),
):
    result = await svc.login(body.email, body.password)
    return send_token(result, response, config)


@router.get("/logout")
async def logout(response: Response, config: Settings = Depends(get_settings)):
    """Replace the cookie with a short-lived sentinel the auth chain rejects."""
    response.set_cookie(
        TOKEN_COOKIE,
        LOGGED_OUT_SENTINEL,
        max_age=10,
        httponly=True,
        secure=config.is_production,
        samesite="lax",
    )
    return {"status": "success"}


# ─── Password reset ─────────────────────────────────────


@router.post("/forgotPassword")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    svc: AuthService = Depends(_auth_svc),
    config: Settings = Depends(get_settings),
):
    base = config.public_base_url or str(request.base_url)
    await svc.request_reset(body.email, reset_url_base=base)
    return {"status": "success", "message": "Token sent to email"}


@router.patch("/resetPassword/{token}")
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    response: Response,
    svc: AuthService = Depends(_auth_svc),
    config: Settings = Depends(get_settings),
):
    result = await svc.consume_reset(token, body.password, body.password_confirm)
    return send_token(result, response, config)


@router.patch("/updateMyPassword")
async def update_my_password(
    body: UpdatePasswordRequest,
    response: Response,
    user: User = Depends(get_current_user),
    svc: AuthService = Depends(_auth_svc),
    config: Settings = Depends(get_settings),
):
    result = await svc.update_password(
        user, body.password_current, body.password, body.password_confirm
    )
    return send_token(result, response, config)


# ─── Current user ───────────────────────────────────────


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    return {"status": "success", "data": {"user": _user_out(user)}}


@router.patch("/updateMe")
async def update_me(
    body: UpdateMeRequest,
    user: User = Depends(get_current_user),
    svc: UserService = Depends(_user_svc),
):
    updated = await svc.update_me(user, body.model_dump(exclude_unset=True))
    return {"status": "success", "data": {"user": _user_out(updated)}}


@router.delete("/deleteMe", status_code=204)
async def delete_me(
    user: User = Depends(get_current_user),
    svc: UserService = Depends(_user_svc),
):
    await svc.deactivate(user)
    return Response(status_code=204)


# ─── Admin ──────────────────────────────────────────────


@router.get("", dependencies=[Depends(admin_only)])
async def list_users(
    page: int = 1,
    limit: int = 100,
    svc: UserService = Depends(_user_svc),
):
    users = await svc.list_users(page=max(page, 1), limit=min(max(limit, 1), 100))
    return {
        "status": "success",
        "results": len(users),
        "data": {"users": [_user_out(u) for u in users]},
    }


@router.post("", status_code=201, dependencies=[Depends(admin_only)])
async def create_user(body: UserCreate, svc: UserService = Depends(_user_svc)):
    user = await svc.create_user(
        name=body.name, email=body.email, password=body.password, role=body.role
    )
    return {"status": "success", "data": {"user": _user_out(user)}}


@router.get("/{user_id}", dependencies=[Depends(admin_only)])
async def get_user(user_id: uuid.UUID, svc: UserService = Depends(_user_svc)):
    user = await svc.get_user(user_id)
    return {"status": "success", "data": {"user": _user_out(user)}}


@router.patch("/{user_id}", dependencies=[Depends(admin_only)])
async def update_user(
    user_id: uuid.UUID, body: UserUpdate, svc: UserService = Depends(_user_svc)
):
    user = await svc.update_user(user_id, body.model_dump(exclude_unset=True))
    return {"status": "success", "data": {"user": _user_out(user)}}


@router.delete("/{user_id}", status_code=204, dependencies=[Depends(admin_only)])
async def delete_user(user_id: uuid.UUID, svc: UserService = Depends(_user_svc)):
    await svc.delete_user(user_id)
    return Response(status_code=204)
