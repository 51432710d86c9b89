"""Operational errors and the single exception boundary.

Learn: Two kinds of failures exist:
1. Operational errors (AppError subclasses) — expected, client-facing.
   They carry an HTTP status and a message that is safe to show.
2. Everything else — programming errors, driver errors, bugs. These are
   logged with the traceback and answered with a generic 500. The
   exception text is only echoed back in development.

Services raise AppError subclasses; routes never build error responses
by hand. register_exception_handlers() wires the boundary in main.py.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from natours.config import settings

logger = structlog.get_logger()


class AppError(Exception):
    """Base class for operational (client-facing) errors."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if self.status_code < 500 else "error"


# ─── Authentication ───────────────────────────────────────


class MissingTokenError(AppError):
    status_code = 401
    default_message = "You are not logged in. Please log in to get access"


class InvalidTokenError(AppError):
    status_code = 401
    default_message = "Invalid token. Please log in again"


class ExpiredTokenError(AppError):
    status_code = 401
    default_message = "Your session has expired. Please log in again"


class StaleIdentityError(AppError):
    status_code = 401
    default_message = "The user belonging to this token no longer exists"


class InvalidCredentialError(AppError):
    status_code = 401
    default_message = "Incorrect email or password"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


# ─── Password reset ───────────────────────────────────────


class UserNotFoundError(AppError):
    status_code = 404
    default_message = "There is no user with that email address"


class InvalidOrExpiredTokenError(AppError):
    status_code = 400
    default_message = "Token is invalid or has expired"


class DeliveryError(AppError):
    status_code = 500
    default_message = "There was an error sending the email. Try again later"


# ─── Resources ────────────────────────────────────────────


class NotFoundError(AppError):
    status_code = 404
    default_message = "No document found with that ID"


class DuplicateFieldError(AppError):
    status_code = 409
    default_message = "Duplicate field value. Please use another value"


class ValidationFailedError(AppError):
    status_code = 400
    default_message = "Invalid input data"


# ─── Boundary ─────────────────────────────────────────────


def _error_body(status: str, message: str, **extra) -> dict:
    return {"status": status, "message": message, **extra}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    if exc.status_code >= 500:
        logger.error(
            "request.operational_error",
            path=request.url.path,
            error=exc.__class__.__name__,
            message=exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status, exc.message),
        headers=headers,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.info("request.integrity_error", path=request.url.path, error=str(exc.orig))
    err = DuplicateFieldError()
    return JSONResponse(status_code=err.status_code, content=_error_body(err.status, err.message))


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unmatched routes and bare HTTPExceptions share the error body shape."""
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Can't find {request.url.path} on this server"
    else:
        message = str(exc.detail)
    status = "fail" if exc.status_code < 500 else "error"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(status, message),
        headers=getattr(exc, "headers", None),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Programming or unknown errors: log everything, leak nothing."""
    logger.exception("request.unhandled_error", path=request.url.path)
    extra = {}
    if settings.is_development:
        extra["detail"] = f"{exc.__class__.__name__}: {exc}"
    return JSONResponse(
        status_code=500,
        content=_error_body("error", "Something went wrong", **extra),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
