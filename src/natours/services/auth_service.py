"""Auth service — signup, login, password reset and password update.

Learn: Every successful credential operation ends the same way: the
caller receives the user plus a freshly issued identity token
("login-on-success"). Routes turn that pair into the token response and
the jwt cookie (natours.api.users.send_token).

Password reset lifecycle:
1. request_reset → random token, sha256 stored with a 5-minute expiry,
   raw token emailed. If the email cannot be sent the stored fields are
   cleared again and DeliveryError is raised.
2. consume_reset → hash the presented token, match it against an
   unexpired stored hash, set the new password, clear the fields.
   Clearing is what makes the token single-use.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from natours.auth.jwt import TokenService
from natours.auth.password import (
    generate_reset_token,
    hash_reset_token,
    verify_password,
)
from natours.db.models import Role, User
from natours.errors import (
    DeliveryError,
    InvalidCredentialError,
    InvalidOrExpiredTokenError,
    UserNotFoundError,
    ValidationFailedError,
)
from natours.services.email_service import EmailSender, render
from natours.services.user_service import UserStore

logger = structlog.get_logger()


@dataclass
class AuthResult:
    user: User
    token: str


class AuthService:
    """Credential workflows over the user store and token service."""

    def __init__(
        self,
        store: UserStore,
        tokens: TokenService,
        email: EmailSender,
        reset_ttl: timedelta = timedelta(minutes=5),
    ):
        self.store = store
        self.tokens = tokens
        self.email = email
        self.reset_ttl = reset_ttl

    def _result(self, user: User) -> AuthResult:
        return AuthResult(user=user, token=self.tokens.issue(user.id))

    # ─── Signup / login ─────────────────────────────────

    async def signup(
        self,
        name: str,
        email: str,
        password: str,
        password_confirm: str,
        account_url: Optional[str] = None,
    ) -> AuthResult:
        """Create a regular user and log them in. Roles are never self-assigned.

        The welcome email is best effort: the account already exists, so a
        delivery failure is logged and signup still succeeds.
        """
        if password != password_confirm:
            raise ValidationFailedError("Passwords are not the same")
        user = await self.store.create(
            name=name, email=email, password=password, role=Role.USER
        )
        logger.info("auth.signup", user_id=str(user.id))
        if account_url:
            subject, body = render("welcome", name=user.name.split(" ")[0], url=account_url)
            try:
                await self.email.send(user.email, subject, body)
            except DeliveryError:
                logger.warning("auth.welcome_delivery_failed", user_id=str(user.id))
        return self._result(user)

    async def login(self, email: str, password: str) -> AuthResult:
        user = await self.store.find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.info("auth.login_failed", email=email)
            raise InvalidCredentialError("Incorrect email or password")
        logger.info("auth.login", user_id=str(user.id))
        return self._result(user)

    # ─── Password reset ─────────────────────────────────

    async def request_reset(
        self, email: str, reset_url_base: str, now: Optional[datetime] = None
    ) -> None:
        user = await self.store.find_by_email(email)
        if not user:
            raise UserNotFoundError()

        raw_token = generate_reset_token()
        now = now or datetime.now(timezone.utc)
        user.password_reset_token = hash_reset_token(raw_token)
        user.password_reset_expires = now + self.reset_ttl
        await self.store.save(user, validate=False)

        url = f"{reset_url_base.rstrip('/')}/api/v1/users/resetPassword/{raw_token}"
        ttl_minutes = int(self.reset_ttl.total_seconds() // 60)
        subject, body = render("password_reset", url=url, ttl=ttl_minutes)
        try:
            await self.email.send(user.email, subject, body)
        except Exception as e:
            user.password_reset_token = None
            user.password_reset_expires = None
            await self.store.save(user, validate=False)
            logger.warning("auth.reset_delivery_failed", user_id=str(user.id), error=str(e))
            raise DeliveryError() from e
        logger.info("auth.reset_requested", user_id=str(user.id))

    async def consume_reset(
        self,
        raw_token: str,
        password: str,
        password_confirm: str,
        now: Optional[datetime] = None,
    ) -> AuthResult:
        user = await self.store.find_by_reset_token(hash_reset_token(raw_token), now=now)
        if not user:
            raise InvalidOrExpiredTokenError()
        if password != password_confirm:
            raise ValidationFailedError("Passwords are not the same")

        self.store.set_password(user, password, now=now)
        user.password_reset_token = None
        user.password_reset_expires = None
        await self.store.save(user)
        logger.info("auth.reset_consumed", user_id=str(user.id))
        return self._result(user)

    # ─── Password update ────────────────────────────────

    async def update_password(
        self,
        user: User,
        current_password: str,
        password: str,
        password_confirm: str,
    ) -> AuthResult:
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialError("Your current password is wrong")
        if password != password_confirm:
            raise ValidationFailedError("Passwords are not the same")
        self.store.set_password(user, password)
        await self.store.save(user)
        logger.info("auth.password_updated", user_id=str(user.id))
        return self._result(user)
