"""Shared pytest fixtures for FlowOps tests.

Each test gets its own SQLite database file, a freshly built app wired to
it, and a publisher that records every live event instead of sending it.
"""

import os

# Settings are read once and cached; these must be in place before flowops is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import flowops.models  # noqa: F401  (registers every table on Base.metadata)
from flowops.config import get_settings
from flowops.db.base import Base
from flowops.db.session import create_engine, create_session_factory
from flowops.main import create_app
from flowops.middleware.rate_limit import ALL_LIMITERS
from flowops.models.user import User
from tests._factory import auth_headers
from tests._factory import make_user as _make_user


class RecordingPublisher:
    """Event publisher that keeps what it was asked to send."""

    def __init__(self):
        self.project_events: list[tuple[str, str, Any]] = []
        self.user_events: list[tuple[str, str, Any]] = []

    async def emit_to_project(self, project_id: UUID, event: str, payload: Any) -> None:
        self.project_events.append((str(project_id), event, payload))

    async def emit_to_user(self, user_id: UUID, event: str, payload: Any) -> None:
        self.user_events.append((str(user_id), event, payload))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.project_events]


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(get_settings(), "upload_dir", tmp_path / "uploads")
    for limiter in ALL_LIMITERS:
        limiter.reset()


@pytest.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a fresh on-disk SQLite database with every table."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'flowops.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def app(session_factory, publisher):
    app = create_app()
    app.state.session_factory = session_factory
    app.state.event_publisher = publisher
    return app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def make_user(session_factory):
    """Factory inserting users straight into the database."""

    async def _make(name: str = "Test User", **kwargs: Any) -> User:
        return await _make_user(session_factory, name, **kwargs)

    return _make


@pytest.fixture
async def owner(make_user) -> User:
    return await make_user("Olivia Owner", email="owner@example.com")


@pytest.fixture
async def member(make_user) -> User:
    return await make_user("Mason Member", email="member@example.com")


@pytest.fixture
async def outsider(make_user) -> User:
    return await make_user("Oscar Outsider", email="outsider@example.com")


@pytest.fixture
async def admin(make_user) -> User:
    return await make_user("Ada Admin", email="admin@example.com", role="admin")


@pytest.fixture
async def project(client: AsyncClient, owner: User, member: User) -> dict:
    """A project owned by ``owner`` with ``member`` as its only member."""
    resp = await client.post(
        "/api/projects",
        json={
            "name": "Flow Board",
            "description": "Main delivery board",
            "members": [str(member.id)],
        },
        headers=auth_headers(owner),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]
