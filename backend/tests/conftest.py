"""Pytest configuration and fixtures."""

import os

# Settings are read once at import time, so the environment goes first
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite://"
os.environ["SITE_URL"] = "https://antimat.test"
os.environ["CHAT_POLL_TIMEOUT_MS"] = "2000"
os.environ["CHAT_POLL_INTERVAL_MS"] = "100"
os.environ["CHAT_POLL_BATCH"] = "50"

from collections.abc import AsyncGenerator
from datetime import timedelta
from itertools import count
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from antimat.db.base import Base
from antimat.db.models import User, utcnow
from antimat.db.session import get_db, get_session_factory
from antimat.main import app
from antimat.services import accounts
from antimat.services.push import PushResult, push_service
from antimat.services.s3 import CURRENT_RELEASE_KEY, s3_service

# Minimum bcrypt cost keeps registration fast in tests
accounts.pwd_context.update(bcrypt__rounds=4)

_emails = count(1)


@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'antimat.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for driving services directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    # Detached fan-out tasks must finish before the database goes away
    await push_service.drain()
    app.dependency_overrides.clear()


# =============================================================================
# FAKE INTEGRATIONS
# =============================================================================


@pytest.fixture
def push_calls(monkeypatch) -> list[dict]:
    """Enable push and record every send instead of calling Firebase."""
    calls: list[dict] = []

    async def fake_send(tokens, notification=None, data=None):
        tokens = [t for t in tokens if t]
        calls.append({"tokens": tokens, "notification": notification, "data": data})
        return PushResult(
            success_count=len(tokens),
            failure_count=0,
            responses=[{"success": True, "error": None} for _ in tokens],
        )

    monkeypatch.setattr(push_service, "is_ready", lambda: True)
    monkeypatch.setattr(push_service, "send_to_tokens", fake_send)
    return calls


class FakeStorage:
    """In-memory stand-in for the release bucket."""

    def __init__(self):
        self.objects: dict[str, int] = {}
        self.deleted: list[str] = []

    async def object_size(self, key: str) -> int | None:
        return self.objects.get(key)

    async def check_file_exists(self, key: str) -> bool:
        return key in self.objects

    async def promote_release(self, upload_key: str) -> str:
        self.objects[CURRENT_RELEASE_KEY] = self.objects.pop(upload_key)
        return CURRENT_RELEASE_KEY

    async def delete_file(self, key: str) -> None:
        self.objects.pop(key, None)
        self.deleted.append(key)

    async def generate_presigned_upload(self, key: str, expiration: int = 900) -> dict:
        return {"url": "https://storage.test/antimat-releases", "fields": {"key": key}}

    async def generate_download_url(self, key: str, expiration: int = 300) -> str:
        return f"https://storage.test/antimat-releases/{key}?signature=test"


@pytest.fixture
def storage(monkeypatch) -> FakeStorage:
    fake = FakeStorage()
    for name in (
        "object_size",
        "check_file_exists",
        "promote_release",
        "delete_file",
        "generate_presigned_upload",
        "generate_download_url",
    ):
        monkeypatch.setattr(s3_service, name, getattr(fake, name))
    return fake


# =============================================================================
# ACCOUNTS
# =============================================================================


@pytest.fixture
def register(client):
    """Register a user through the API; returns the auth payload plus headers."""

    async def _register(name: str = "Tester", email: str | None = None, password: str = "secret123") -> dict:
        email = email or f"user{next(_emails)}@example.com"
        response = await client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        data["headers"] = {"Authorization": f"Bearer {data['token']}"}
        data["id"] = data["user"]["id"]
        return data

    return _register


@pytest.fixture
async def admin_headers(client) -> dict:
    response = await client.post("/api/admin/login", json={"password": "admin-pass"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


@pytest.fixture
def backdate_fine_change(session_factory):
    """Move a user's last fine change past the weekly cooldown."""

    async def _backdate(user_id: str) -> None:
        async with session_factory() as session:
            user = await session.get(User, UUID(user_id))
            user.penalty_amount_updated_at = utcnow() - timedelta(days=8)
            await session.commit()

    return _backdate


@pytest.fixture
def make_group(client):
    """Create a group as `owner` and optionally have `members` join it."""

    async def _make_group(owner: dict, *members: dict, name: str = "Friends") -> dict:
        response = await client.post("/api/groups/create", json={"name": name}, headers=owner["headers"])
        assert response.status_code == 201, response.text
        group = response.json()["data"]["group"]
        for member in members:
            joined = await client.post(
                "/api/groups/join", json={"code": group["inviteCode"]}, headers=member["headers"]
            )
            assert joined.status_code == 200, joined.text
            group = joined.json()["data"]["group"]
        return group

    return _make_group
