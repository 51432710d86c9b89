"""Request body size guard.

Learn: JSON bodies above the configured size (10 kB by default) are
refused with 413 before any route parses them. The declared
Content-Length is checked first; bodies without one are read and
measured.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies larger than max_bytes."""

    def __init__(self, app, max_bytes: int = 10 * 1024):
        super().__init__(app)
        self.max_bytes = max_bytes

    def _too_large(self) -> Response:
        return JSONResponse(
            status_code=413,
            content={"status": "fail", "message": "Request body too large"},
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in ("POST", "PUT", "PATCH"):
            declared = request.headers.get("content-length")
            if declared is not None:
                if declared.isdigit() and int(declared) > self.max_bytes:
                    return self._too_large()
            elif len(await request.body()) > self.max_bytes:
                return self._too_large()
        return await call_next(request)
