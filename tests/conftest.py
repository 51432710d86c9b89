"""Test fixtures — a throwaway SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Environment variables are set before natours is imported, because
   Settings, the engine and the token service are built at import time.
2. Each test gets its own SQLite file (tmp_path) with the schema created
   from Base.metadata. NullPool gives every session its own connection,
   just like the pooled PostgreSQL engine in production.
3. get_db is overridden so each request opens a session on that
   database; get_email_sender is overridden with a recording fake.

No Redis is running, so the rate limiter is inactive unless a test
plugs in a fake client.
"""

import os

os.environ.setdefault("NATOURS_ENVIRONMENT", "test")
os.environ.setdefault("NATOURS_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("NATOURS_JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("NATOURS_PUBLIC_BASE_URL", "http://test")
os.environ.setdefault("NATOURS_BCRYPT_ROUNDS", "4")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from natours.auth.jwt import get_token_service  # noqa: E402
from natours.db.engine import get_db  # noqa: E402
from natours.db.models import Base, Role, Tour, TourStartDate  # noqa: E402
from natours.main import app  # noqa: E402
from natours.errors import DeliveryError  # noqa: E402
from natours.services.email_service import get_email_sender  # noqa: E402
from natours.services.user_service import UserStore  # noqa: E402
from natours.services.tour_service import slugify  # noqa: E402

PASSWORD = "pass1234"


class RecordingEmailSender:
    """Stands in for the email transport; remembers what was sent."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError()
        self.sent.append({"to": to, "subject": subject, "body": body})

    def last_to(self, to: str) -> dict:
        return [m for m in self.sent if m["to"] == to][-1]


@pytest_asyncio.fixture()
async def db_factory(tmp_path):
    """Session factory bound to a fresh, fully migrated SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'natours.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_factory):
    """A session for arranging and inspecting data directly."""
    async with db_factory() as session:
        yield session


@pytest.fixture()
def outbox():
    return RecordingEmailSender()


@pytest_asyncio.fixture()
async def client(db_factory, outbox):
    """HTTP client with get_db and the email sender overridden for testing."""

    async def override_get_db():
        async with db_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: outbox

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Data helpers ─────────────────────────────────────────


@pytest.fixture()
def make_user(db_factory):
    """Create an active user directly in the store; returns the User."""

    async def _make(email: str, role: Role = Role.USER, name: str = "Test User",
                    password: str = PASSWORD):
        async with db_factory() as session:
            return await UserStore(session).create(
                name=name, email=email, password=password, role=role
            )

    return _make


@pytest.fixture()
def token_for():
    """Issue a valid identity token for a user id."""
    tokens = get_token_service()
    return lambda user: tokens.issue(user.id)


@pytest.fixture()
def auth():
    """Authorization header for a token."""
    return lambda token: {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_tour(db_factory):
    """Insert a tour directly (bypasses the API and its role checks)."""

    async def _make(name: str, price: float = 497, difficulty: str = "easy",
                    duration: int = 5, ratings_average: float = 4.7,
                    ratings_quantity: int = 0, secret: bool = False,
                    start: tuple[float, float] | None = None,
                    start_dates: list[datetime] | None = None):
        tour = Tour(
            name=name,
            slug=slugify(name),
            duration=duration,
            max_group_size=10,
            difficulty=difficulty,
            ratings_average=ratings_average,
            ratings_quantity=ratings_quantity,
            price=price,
            summary=f"Summary of {name}",
            image_cover="cover.jpg",
            images=[],
            secret_tour=secret,
            start_dates=[
                TourStartDate(starts_at=d.astimezone(timezone.utc))
                for d in (start_dates or [])
            ],
            locations=[],
            guides=[],
        )
        if start:
            tour.start_lat, tour.start_lng = start
        async with db_factory() as session:
            session.add(tour)
            await session.commit()
            return tour

    return _make
