"""JWT identity token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication. The token
carries the user id (sub) and the issued-at time; the server keeps no
session. The standard iat claim only has whole seconds, so the token also
carries iat_us (epoch microseconds), which is what lets us reject tokens
minted before the user's last password change even moments earlier
(see User.changed_password_after).

The signing secret, algorithm and lifetime are passed in once, at
construction, from the frozen Settings object.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from natours.config import Settings, settings
from natours.db.models import epoch_micros
from natours.errors import ExpiredTokenError, InvalidTokenError


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of an identity token."""

    user_id: uuid.UUID
    issued_at: int  # epoch microseconds


class TokenService:
    """Issues and verifies signed, time-limited identity tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expires_minutes: int = 60):
        self._secret = secret
        self._algorithm = algorithm
        self.expires_in = timedelta(minutes=expires_minutes)

    @classmethod
    def from_settings(cls, config: Settings) -> "TokenService":
        return cls(
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            expires_minutes=config.jwt_expires_minutes,
        )

    def issue(self, user_id: uuid.UUID | str, now: datetime | None = None) -> str:
        """Create a signed token for a user."""
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": issued,
            "iat_us": epoch_micros(issued),
            "exp": issued + self.expires_in,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        """Verify and decode a token.

        Raises ExpiredTokenError past expiry, InvalidTokenError for anything
        else (bad signature, malformed, missing or unparseable claims).
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenError()
        except jwt.InvalidTokenError:
            raise InvalidTokenError()

        try:
            user_id = uuid.UUID(payload["sub"])
            # tokens without iat_us count from the start of their iat second
            issued_at = int(payload.get("iat_us", int(payload["iat"]) * 1_000_000))
        except (TypeError, ValueError):
            raise InvalidTokenError()
        return TokenClaims(user_id=user_id, issued_at=issued_at)


_token_service = TokenService.from_settings(settings)


def get_token_service() -> TokenService:
    """FastAPI dependency for the process-wide token service."""
    return _token_service
