"""
Shared fixtures: in-memory SQLite per test, the app wired to it, and Redis
stubbed out.
"""

from __future__ import annotations

import os

# Settings are read at import time; point them at test values first.
os.environ.setdefault("ASKBOX_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ASKBOX_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("ASKBOX_LOG_FORMAT", "text")

from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from app.core.auth import Principal  # noqa: E402
from app.core.database import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User  # noqa: E402


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def redis_stub():
    """No Redis in tests: nothing is revoked unless a test says so."""
    with patch(
        "app.core.auth.is_token_id_revoked", AsyncMock(return_value=False)
    ) as is_revoked, patch("app.services.users.revoke_token_id", AsyncMock()) as revoke:
        yield SimpleNamespace(is_revoked=is_revoked, revoke=revoke)


@pytest.fixture
async def client(session_factory):
    async def _get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

async def make_principal(
    session: AsyncSession,
    username: str,
    *,
    is_creator: bool = False,
) -> Principal:
    """Persist a user directly (no bcrypt round) and wrap it as a Principal."""
    user = User(
        username=username,
        email=f"{username}@acme.io",
        password_hash="not-a-real-hash",
        is_creator=is_creator,
    )
    session.add(user)
    await session.flush()
    return Principal(user=user)


async def register(
    client: AsyncClient,
    username: str,
    *,
    is_creator: bool = False,
    organization_url: str | None = None,
) -> dict:
    """Register through the API and return the auth payload."""
    body = {
        "username": username,
        "email": f"{username}@acme.io",
        "password": "s3cret-pass",
        "isCreator": is_creator,
    }
    if organization_url is not None:
        body["organizationUrl"] = organization_url
    resp = await client.post("/api/auth/register", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def auth(payload: dict) -> dict[str, str]:
    return {"x-auth-token": payload["token"]}
