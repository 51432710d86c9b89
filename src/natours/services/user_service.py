"""User service — the credential store plus profile and admin operations.

Learn: Every lookup here filters on active == True. Soft-deleted users
(DELETE /users/deleteMe) keep their row but vanish from identity
resolution, login and password reset, exactly as if they were gone.

Password writes go through set_password(), which is the single place
that hashes and stamps password_changed_at. There are no ORM event
hooks; callers invoke it explicitly.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from natours.auth.password import hash_password
from natours.config import settings
from natours.db.models import Review, Role, User, tour_guides
from natours.errors import (
    DuplicateFieldError,
    NotFoundError,
    ValidationFailedError,
)
from natours.services.review_service import ReviewService

logger = structlog.get_logger()

PASSWORD_MIN_LEN = 8
NAME_MAX_LEN = 30

# Fields a user may change about themselves through PATCH /users/updateMe
SELF_EDITABLE_FIELDS = ("name", "email", "photo")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Persistence for users: lookups, saves and password writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Lookups ────────────────────────────────────────

    async def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id, User.active.is_(True))
        )
        return result.scalars().first()

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(
                User.email == normalize_email(email), User.active.is_(True)
            )
        )
        return result.scalars().first()

    async def find_by_reset_token(
        self, token_hash: str, now: Optional[datetime] = None
    ) -> Optional[User]:
        """Active user holding this reset hash whose expiry is still in the future."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(User).where(
                User.password_reset_token == token_hash,
                User.password_reset_expires > now,
                User.active.is_(True),
            )
        )
        return result.scalars().first()

    # ─── Writes ─────────────────────────────────────────

    def set_password(self, user: User, password: str, now: Optional[datetime] = None) -> None:
        """Hash and assign a new password.

        For existing users password_changed_at is stamped with the exact
        change time; tokens carry microsecond issue times, so one issued
        after this call is fresh and any issued before it is stale.
        """
        if len(password) < PASSWORD_MIN_LEN:
            raise ValidationFailedError(
                f"Password must be at least {PASSWORD_MIN_LEN} characters"
            )
        replacing = user.password_hash is not None
        user.password_hash = hash_password(password, rounds=settings.bcrypt_rounds)
        if replacing:
            user.password_changed_at = now or datetime.now(timezone.utc)

    def validate(self, user: User) -> None:
        """Document-level checks run by a full save."""
        if not user.name or not user.name.strip():
            raise ValidationFailedError("Please tell us your name")
        if len(user.name) > NAME_MAX_LEN:
            raise ValidationFailedError(f"Name must be at most {NAME_MAX_LEN} characters")
        try:
            validate_email(user.email, check_deliverability=False)
        except EmailNotValidError:
            raise ValidationFailedError("Please provide a valid email")
        if user.role not in {r.value for r in Role}:
            raise ValidationFailedError(
                "Role must be one of: user, guide, lead-guide, admin"
            )
        if not user.password_hash:
            raise ValidationFailedError("A password must be provided")

    async def save(self, user: User, validate: bool = True) -> User:
        """Persist a user. validate=False skips validate() (reset-token writes)."""
        if user.email:
            user.email = normalize_email(user.email)
        if validate:
            self.validate(user)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateFieldError("Email already in use. Please use another email")
        return user

    async def create(
        self, name: str, email: str, password: str, role: Role | str = Role.USER
    ) -> User:
        user = User(
            name=name.strip(),
            email=normalize_email(email),
            role=Role(role).value,
            active=True,
        )
        self.set_password(user, password)
        return await self.save(user)


class UserService:
    """Profile and admin operations on top of the store."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = UserStore(db)

    async def update_me(self, user: User, data: dict[str, Any]) -> User:
        if "password" in data or "password_confirm" in data:
            raise ValidationFailedError(
                "This route is not for password updates. Please use /updateMyPassword"
            )
        for field in SELF_EDITABLE_FIELDS:
            if data.get(field) is not None:
                setattr(user, field, data[field])
        return await self.store.save(user)

    async def deactivate(self, user: User) -> None:
        user.active = False
        await self.store.save(user, validate=False)
        logger.info("user.deactivated", user_id=str(user.id))

    # ─── Admin ──────────────────────────────────────────

    async def list_users(self, page: int = 1, limit: int = 100) -> list[User]:
        result = await self.db.execute(
            select(User)
            .where(User.active.is_(True))
            .order_by(User.created_at, User.email)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.store.find_by_id(user_id)
        if not user:
            raise NotFoundError("No user found with that ID")
        return user

    async def create_user(self, name: str, email: str, password: str, role: Role) -> User:
        return await self.store.create(name=name, email=email, password=password, role=role)

    async def update_user(self, user_id: uuid.UUID, data: dict[str, Any]) -> User:
        """Admin update. Passwords are never changed through this path."""
        user = await self.get_user(user_id)
        for field in ("name", "email", "photo", "role"):
            value = data.get(field)
            if value is not None:
                setattr(user, field, value.value if isinstance(value, Role) else value)
        return await self.store.save(user)

    async def delete_user(self, user_id: uuid.UUID) -> None:
        """Hard delete: the user, their reviews and guide assignments."""
        user = await self.get_user(user_id)
        result = await self.db.execute(
            select(Review.tour_id).where(Review.user_id == user.id).distinct()
        )
        reviewed_tours = list(result.scalars().all())
        await self.db.execute(delete(Review).where(Review.user_id == user.id))
        await self.db.execute(delete(tour_guides).where(tour_guides.c.user_id == user.id))
        await self.db.delete(user)
        await self.db.flush()

        ratings = ReviewService(self.db)
        for tour_id in reviewed_tours:
            await ratings.recompute_ratings(tour_id)
        await self.db.commit()
        logger.info("user.deleted", user_id=str(user_id))
