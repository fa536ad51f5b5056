"""
Pytest configuration for taskboard tests.

Every test gets its own file-backed SQLite database under tmp_path. The
environment is set before taskboard is imported so Settings validates.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-taskboard-suite-0123456789")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"

from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest
from jose import jwt
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskboard.core.config import settings
from taskboard.core.transactions import LocalLockRegistry, TransactionCoordinator
from taskboard.models import Base, OrgMember, OrgRole, Organization, Task, TaskStatus, User
from taskboard.schemas.task import TaskCreateRequest
from taskboard.services.task_service import TaskService


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


# ---------------------------------------------------------------------------
# Audit doubles
# ---------------------------------------------------------------------------

class RecordingAudit:
    """Collects audit events in memory."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    async def record(self, action, resource, resource_id, actor_id, org_id, metadata=None):
        self.events.append(
            {
                "action": action,
                "resource": resource,
                "resource_id": resource_id,
                "actor_id": actor_id,
                "org_id": org_id,
                "metadata": metadata or {},
            }
        )

    def actions(self) -> list[str]:
        return [e["action"] for e in self.events]


class FailingAudit:
    """Audit sink that is always down."""

    def __init__(self) -> None:
        self.calls = 0

    async def record(self, *args, **kwargs):
        self.calls += 1
        raise ConnectionError("audit sink unavailable")


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path: Path):
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskboard_test.db'}")

    @event.listens_for(test_engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def locks() -> LocalLockRegistry:
    return LocalLockRegistry()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def make_service(audit, locks):
    def factory(session: AsyncSession, recorder=None) -> TaskService:
        return TaskService(
            db=session,
            audit=recorder if recorder is not None else audit,
            coordinator=TransactionCoordinator(session, registry=locks),
        )

    return factory


@pytest.fixture
def service(db, make_service) -> TaskService:
    return make_service(db)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

async def make_user(session: AsyncSession, name: str) -> User:
    user = User(email=f"{name}@example.com", display_name=name.title())
    session.add(user)
    await session.flush()
    return user


async def make_org(session: AsyncSession, slug: str, parent_id: UUID | None = None) -> Organization:
    org = Organization(name=slug.title(), slug=slug, parent_id=parent_id)
    session.add(org)
    await session.flush()
    return org


async def make_member(session: AsyncSession, org: Organization, user: User, role: OrgRole) -> OrgMember:
    member = OrgMember(org_id=org.id, user_id=user.id, role=role)
    session.add(member)
    await session.flush()
    return member


@dataclass
class Board:
    org: Organization
    other_org: Organization
    owner: User
    admin: User
    viewer: User
    viewer2: User
    outsider: User


@pytest.fixture
async def board(db) -> Board:
    """
    One organization with an owner, an admin and two viewers, plus a second
    organization the outsider owns.
    """
    org = await make_org(db, "acme")
    other = await make_org(db, "globex")
    owner = await make_user(db, "owner")
    admin = await make_user(db, "admin")
    viewer = await make_user(db, "viewer")
    viewer2 = await make_user(db, "viewer2")
    outsider = await make_user(db, "outsider")
    await make_member(db, org, owner, OrgRole.owner)
    await make_member(db, org, admin, OrgRole.admin)
    await make_member(db, org, viewer, OrgRole.viewer)
    await make_member(db, org, viewer2, OrgRole.viewer)
    await make_member(db, other, outsider, OrgRole.owner)
    await db.commit()
    return Board(org, other, owner, admin, viewer, viewer2, outsider)


async def seed_tasks(
    service: TaskService,
    org_id: UUID,
    actor: User,
    count: int,
    status: TaskStatus = TaskStatus.todo,
    **fields: Any,
) -> list[UUID]:
    ids = []
    for i in range(count):
        task = await service.create_task(
            org_id, TaskCreateRequest(title=f"{status.value} {i}", status=status, **fields), actor
        )
        ids.append(task.id)
    return ids


async def column(session: AsyncSession, org_id: UUID, status: TaskStatus) -> list[tuple[UUID, int]]:
    """(id, position) pairs of a column, read straight from the database."""
    result = await session.execute(
        select(Task.id, Task.position)
        .where(Task.org_id == org_id, Task.status == status)
        .order_by(Task.position)
    )
    return [(row.id, row.position) for row in result.all()]


async def positions(session: AsyncSession, org_id: UUID, status: TaskStatus) -> dict[UUID, int]:
    return dict(await column(session, org_id, status))


def access_token(user_id: UUID, token_type: str = "access") -> str:
    return jwt.encode(
        {"sub": str(user_id), "type": token_type},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth_header(user_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token(user_id)}"}
