import os
import uuid
from contextlib import contextmanager
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.config import build_engine, build_session_factory
from libs.db.session import get_async_db
from sqlalchemy.ext.asyncio import AsyncSession

# Import all models so metadata includes every table
from services.market_service import models as _market_models  # noqa: F401

settings = get_settings()

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def make_member_user(
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    role: str = "authenticated",
) -> AuthUser:
    user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
    return AuthUser(user_id=user_id, email=email or f"{user_id}@test.com", role=role)


def make_admin_user(user_id: str = "admin-1") -> AuthUser:
    return make_member_user(user_id=user_id, role=settings.ADMIN_ROLE)


@contextmanager
def override_auth(app: FastAPI, user: Optional[AuthUser]):
    """Temporarily act as ``user`` (``None`` for an anonymous caller)."""
    previous = {
        dep: app.dependency_overrides.get(dep)
        for dep in (get_current_user, get_optional_user)
    }
    app.dependency_overrides[get_optional_user] = lambda: user
    if user is not None:
        app.dependency_overrides[get_current_user] = lambda: user
    else:
        app.dependency_overrides.pop(get_current_user, None)
    try:
        yield user
    finally:
        for dep, override in previous.items():
            if override is None:
                app.dependency_overrides.pop(dep, None)
            else:
                app.dependency_overrides[dep] = override


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh database per test: a SQLite file under tmp_path, or the database
    named by TEST_DATABASE_URL (tables are dropped and recreated).
    """
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'market.db'}"
    engine = build_engine(url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session on the per-test database. Code under test commits for
    real, so concurrent sessions see each other's writes.
    """
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


@pytest.fixture
def buyer() -> AuthUser:
    return make_member_user(user_id="buyer-1")


@pytest.fixture
def market_app(session_factory):
    from services.market_service.app.main import app

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def market_client(market_app, buyer) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as ``buyer``; use override_auth to switch users."""
    market_app.dependency_overrides[get_current_user] = lambda: buyer
    market_app.dependency_overrides[get_optional_user] = lambda: buyer

    async with AsyncClient(
        transport=ASGITransport(app=market_app), base_url="http://test"
    ) as ac:
        yield ac
