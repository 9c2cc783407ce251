"""Shared pytest fixtures for backend tests."""

import os
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock
from uuid import uuid4

# Settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")
os.environ.setdefault("WS_ENFORCE_ROOM_ACCESS", "true")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.dialects import sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


# Store UUID columns as fixed-width text on SQLite
def visit_UUID(self, type_, **kw):
    """Compile UUID as CHAR(32) for SQLite."""
    return "CHAR(32)"


sqlite.base.SQLiteTypeCompiler.visit_UUID = visit_UUID

from devcollab.database import Base, get_db
from devcollab.main import app
from devcollab.models import (
    Project,
    Task,
    User,
    Workspace,
    WorkspaceMember,
    WorkspaceRole,
)
from devcollab.services.auth_service import create_access_token
from devcollab.websocket.manager import ConnectionManager, WebSocketConnection, manager
from devcollab.websocket.presence import ConnectionRegistry
from devcollab.websocket.room_auth import clear_auth_cache


def get_test_password_hash(password: str) -> str:
    """
    Generate a password hash for testing.

    Uses bcrypt directly to avoid passlib version detection issues.
    """
    import bcrypt

    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite://"


class SharedSession:
    """Session factory result that hands out the test session without closing it."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def __aenter__(self) -> AsyncSession:
        return self.session

    async def __aexit__(self, *exc_info) -> bool:
        return False


@pytest_asyncio.fixture
async def engine():
    """Create an in-memory async SQLite engine with all tables."""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    maker = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_factory(db_session: AsyncSession):
    """Session factory for code that opens its own sessions (handlers, room auth)."""
    return lambda: SharedSession(db_session)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client with database dependency override."""

    async def override_get_db():
        yield db_session
        await db_session.commit()

    app.dependency_overrides[get_db] = override_get_db
    original_factory = app.state.session_factory
    app.state.session_factory = session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.state.session_factory = original_factory
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_realtime_state():
    """Start every test with an empty global connection manager and auth cache."""

    def reset():
        manager.registry = ConnectionRegistry()
        manager._rooms = {}
        manager._connections = {}
        clear_auth_cache()

    reset()
    yield
    reset()


# ============================================================================
# Data fixtures
# ============================================================================


async def create_user(db: AsyncSession, name: str, email: str) -> User:
    """Insert and return a user."""
    user = User(
        id=uuid4(),
        email=email,
        password_hash=get_test_password_hash("TestPassword123!"),
        name=name,
        avatar=f"https://cdn.example.com/{name.lower()}.png",
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Workspace owner ("Ada")."""
    return await create_user(db_session, "Ada", "ada@example.com")


@pytest_asyncio.fixture
async def test_user_2(db_session: AsyncSession) -> User:
    """Plain workspace member ("Brian")."""
    return await create_user(db_session, "Brian", "brian@example.com")


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    """User with no workspace membership."""
    return await create_user(db_session, "Olga", "olga@example.com")


@pytest_asyncio.fixture
async def test_workspace(
    db_session: AsyncSession,
    test_user: User,
    test_user_2: User,
) -> Workspace:
    """Workspace owned by test_user with test_user_2 as member."""
    workspace = Workspace(id=uuid4(), name="Apollo Team", owner_id=test_user.id)
    db_session.add(workspace)
    await db_session.flush()
    db_session.add_all([
        WorkspaceMember(
            workspace_id=workspace.id,
            user_id=test_user.id,
            role=WorkspaceRole.OWNER.value,
        ),
        WorkspaceMember(
            workspace_id=workspace.id,
            user_id=test_user_2.id,
            role=WorkspaceRole.MEMBER.value,
        ),
    ])
    await db_session.commit()
    return workspace


@pytest_asyncio.fixture
async def test_project(db_session: AsyncSession, test_workspace: Workspace) -> Project:
    """Project inside test_workspace."""
    project = Project(id=uuid4(), workspace_id=test_workspace.id, name="Apollo")
    db_session.add(project)
    await db_session.commit()
    return project


@pytest_asyncio.fixture
async def test_task(db_session: AsyncSession, test_project: Project) -> Task:
    """Task on test_project's board."""
    task = Task(id=uuid4(), project_id=test_project.id, title="Write launch checklist")
    db_session.add(task)
    await db_session.commit()
    return task


@pytest.fixture
def auth_token(test_user: User) -> str:
    """Create an authentication token for the test user."""
    return create_access_token(data={"sub": str(test_user.id), "email": test_user.email})


@pytest.fixture
def auth_token_2(test_user_2: User) -> str:
    """Create an authentication token for the second test user."""
    return create_access_token(data={"sub": str(test_user_2.id), "email": test_user_2.email})


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Create authorization headers."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def auth_headers_2(auth_token_2: str) -> dict:
    """Create authorization headers for second user."""
    return {"Authorization": f"Bearer {auth_token_2}"}


@pytest.fixture
def outsider_headers(outsider: User) -> dict:
    """Authorization headers for the user outside the workspace."""
    token = create_access_token(data={"sub": str(outsider.id), "email": outsider.email})
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# WebSocket helpers
# ============================================================================


def make_websocket() -> AsyncMock:
    """Mock WebSocket that records outbound frames."""
    websocket = AsyncMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


def sent_frames(websocket: AsyncMock, event: str | None = None) -> list[dict[str, Any]]:
    """Frames sent to a mock websocket, optionally filtered by event type."""
    frames = [call.args[0] for call in websocket.send_json.call_args_list]
    if event is None:
        return frames
    return [frame for frame in frames if frame.get("type") == event]


async def open_connection(
    connection_manager: ConnectionManager,
    user: User,
) -> WebSocketConnection:
    """Connect a mock socket for ``user`` and forget the frames sent so far."""
    connection = await connection_manager.connect(make_websocket(), user.id, user.to_profile())
    assert connection is not None
    connection.websocket.send_json.reset_mock()
    return connection


def utc_minutes_ago(minutes: float) -> datetime:
    """Naive UTC timestamp ``minutes`` in the past."""
    return datetime.utcnow() - timedelta(minutes=minutes)
