"""
Shared fixtures: a file-backed SQLite database per test, seeding helpers and
an API client wired to the same database.
"""

from __future__ import annotations

import os

os.environ.setdefault("TA_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TA_CREDENTIAL_SECRET", "test-credential-secret-0123456789abcdef")
os.environ.setdefault("TA_LOG_FORMAT", "text")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import app.models  # noqa: F401  (registers tables)
from app.core.config import get_settings
from app.core.database import get_session
from app.main import app as fastapi_app
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from app.models.user_session import UserSession


def make_token(
    subject: str,
    email: str,
    *,
    expires_in: timedelta = timedelta(hours=1),
    secret: Optional[str] = None,
) -> str:
    """Mint a credential the way the external provider does."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {"sub": subject, "email": email, "iat": now, "exp": now + expires_in}
    return jwt.encode(
        payload, secret or settings.credential_secret, algorithm=settings.credential_algorithm
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'access.db'}")

    # Emit BEGIN ourselves so SAVEPOINT works and writers serialize.
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

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


class Seeder:
    """Commits fixtures through short-lived sessions of their own."""

    def __init__(self, factory):
        self._factory = factory
        self._tick = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _next_time(self) -> datetime:
        self._tick += timedelta(minutes=1)
        return self._tick

    async def user(self, email: str, *, subject: Optional[str] = None) -> User:
        user = User(
            email=email.lower(),
            subject=subject or f"sub-{uuid.uuid4().hex}",
            first_authenticated_at=self._next_time(),
        )
        async with self._factory() as s:
            s.add(user)
            await s.commit()
        return user

    async def org(self, name: str = "Acme") -> Organization:
        org = Organization(name=name, slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}")
        async with self._factory() as s:
            s.add(org)
            await s.commit()
        return org

    async def member(self, user: User, org: Organization, role: str) -> Membership:
        membership = Membership(
            user_id=user.id, organization_id=org.id, role=role, created_at=self._next_time()
        )
        async with self._factory() as s:
            s.add(membership)
            await s.commit()
        return membership

    async def team(self, name: str = "Acme", **roles: User) -> Organization:
        """``team(owner=alice, admin=bob)``; keyword order is membership order."""
        org = await self.org(name)
        for role, user in roles.items():
            await self.member(user, org, role)
        return org

    async def active(self, user: User, org: Organization) -> UserSession:
        row = UserSession(
            user_id=user.id, active_organization_id=org.id, last_switched_at=self._next_time()
        )
        async with self._factory() as s:
            await s.merge(row)
            await s.commit()
        return row

    @staticmethod
    def token(user: User) -> str:
        return make_token(user.subject, user.email)

    @classmethod
    def headers(cls, user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {cls.token(user)}"}


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
async def client(session_factory):
    async def _session_override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _session_override
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()
