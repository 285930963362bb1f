"""Shared test fixtures.

Every test gets its own SQLite database file built from the ORM metadata, so
no Postgres or Redis server is needed. Redis is left uninitialised: rate
limiting fails open and the readiness check reports it as degraded.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def _ensure_test_keys() -> None:
    """Generate an RSA key pair for JWT signing and point the settings at it."""
    if os.environ.get("SW_JWT_PRIVATE_KEY_PATH") and os.path.exists(os.environ["SW_JWT_PRIVATE_KEY_PATH"]):
        return

    tmpdir = tempfile.mkdtemp(prefix="sw_test_keys_")
    private_path = os.path.join(tmpdir, "jwt_private.pem")
    public_path = os.path.join(tmpdir, "jwt_public.pem")

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with open(private_path, "wb") as f:
        f.write(
            key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
    with open(public_path, "wb") as f:
        f.write(
            key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )

    os.environ["SW_JWT_PRIVATE_KEY_PATH"] = private_path
    os.environ["SW_JWT_PUBLIC_KEY_PATH"] = public_path


# Settings are read at import time by the app factory, so configure first.
_ensure_test_keys()
os.environ.setdefault("SW_LOG_FORMAT", "console")
os.environ.setdefault("SW_ENVIRONMENT", "test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from shiftwatch.auth.jwt import create_access_token, reset_keys  # noqa: E402
from shiftwatch.config import get_settings  # noqa: E402
from shiftwatch.database import close_db, get_engine, get_session_factory, init_db  # noqa: E402
from shiftwatch.db import models  # noqa: E402, F401
from shiftwatch.db.base import Base  # noqa: E402
from shiftwatch.db.models import Schedule, User  # noqa: E402
from shiftwatch.gamification.seed import seed_achievements  # noqa: E402
from shiftwatch.main import create_app  # noqa: E402

get_settings.cache_clear()
reset_keys()


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh schema and achievement catalogue in a throwaway SQLite file."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'shiftwatch.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with get_session_factory()() as session:
        await seed_achievements(session)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async with get_session_factory()() as session:
        yield session


@pytest_asyncio.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app; shares the test database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory: ``await make_user("+27820000001", "Thandi", role="admin")``."""

    async def _make(phone: str, name: str = "Volunteer", role: str = "volunteer") -> User:
        user = User(phone=phone, name=name, role=role)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_schedule(db_session: AsyncSession) -> Callable[..., Awaitable[Schedule]]:
    """Factory for schedules inserted directly, bypassing validation."""

    async def _make(
        cron_expr: str = "0 18 * * *",
        timezone: str = "UTC",
        name: str = "Evening patrol",
        duration_minutes: int = 120,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Schedule:
        schedule = Schedule(
            name=name,
            cron_expr=cron_expr,
            timezone=timezone,
            duration_minutes=duration_minutes,
            start_date=start_date,
            end_date=end_date,
        )
        db_session.add(schedule)
        await db_session.commit()
        return schedule

    return _make


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest_asyncio.fixture
async def volunteer(make_user) -> User:
    return await make_user("+27820000001", "Thandi")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user("+27820000099", "Coordinator", role="admin")


@pytest_asyncio.fixture
async def volunteer_client(client: AsyncClient, volunteer: User) -> AsyncClient:
    client.headers.update(auth_header(volunteer))
    return client


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return auth_header(admin)


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    """Bearer headers for any user: ``headers_for(user)``."""
    return auth_header
