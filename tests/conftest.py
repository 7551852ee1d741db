"""Shared test infrastructure for the maintenance dispatch test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- repository / dispatch: DispatchRepository and DispatchEngine over db_session
- make_user, make_technician, make_cleaner: staff factories
- make_asset, make_room, make_classroom: location factories
- make_complaint, make_task, make_emergency: work item factories
- notifications_for / audit_entries: read back what the engine produced
- fail_commit: make one repository commit raise
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from maintenance_dispatch.infra.database import Base

import maintenance_dispatch.domain.models  # noqa: F401

from maintenance_dispatch.domain.models import (
    Asset,
    AuditLog,
    Classroom,
    CleaningTask,
    Cleaner,
    Complaint,
    Emergency,
    Notification,
    Room,
    Technician,
    User,
)
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.dispatch_engine import DispatchEngine
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def repository(db_session):
    return DispatchRepository(db_session)


@pytest.fixture
def dispatch(repository):
    """DispatchEngine with the default sweep policy (24h SLA re-notify, 5 min response window)."""
    return DispatchEngine(repository, Notifier(repository), AuditLogger(repository))


@pytest.fixture
def fail_commit(repository, monkeypatch):
    """Make the repository's n-th commit from now raise SQLAlchemyError.

    Usage:
        fail_commit(2)  # first commit succeeds, second raises, later ones succeed
    """
    def _install(n: int) -> None:
        original = repository.commit
        calls = []

        async def _commit():
            calls.append(1)
            if len(calls) == n:
                raise SQLAlchemyError("database is locked")
            await original()

        monkeypatch.setattr(repository, "commit", _commit)

    return _install


# ---------------------------------------------------------------------------
# Staff factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory for User rows.

    Usage:
        admin = await make_user(role="admin")
    """
    async def _factory(
        role: str = "student",
        name: Optional[str] = None,
        user_id: Optional[str] = None,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
    ) -> User:
        user_id = user_id or str(uuid.uuid4())
        user = User(
            id=user_id,
            name=name or f"{role.title()} {user_id[:6]}",
            email=f"{user_id}@campus.test",
            role=role,
            is_active=is_active,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_technician(db_session, make_user):
    """Factory for Technician rows with their owning User.

    Usage:
        tech = await make_technician(skill="Electrician", area="A")
    """
    async def _factory(
        skill: str = "Electrician",
        area: Optional[str] = "A",
        is_available: bool = True,
        is_active: bool = True,
        last_availability_update: Optional[datetime] = None,
        user_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Technician:
        user = await make_user(role="technician", name=name, user_id=user_id, is_active=is_active)
        tech = Technician(
            id=str(uuid.uuid4()),
            user_id=user.id,
            user=user,
            skill_type=skill,
            assigned_area=area,
            is_available=is_available,
            last_availability_update=last_availability_update,
        )
        db_session.add(tech)
        await db_session.flush()
        return tech

    return _factory


@pytest.fixture
def make_cleaner(db_session, make_user):
    """Factory for Cleaner rows with their owning User."""
    async def _factory(
        area: Optional[str] = "Hostel-1",
        is_available: bool = True,
        is_active: bool = True,
        last_availability_update: Optional[datetime] = None,
        user_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Cleaner:
        user = await make_user(role="cleaner", name=name, user_id=user_id, is_active=is_active)
        cleaner = Cleaner(
            id=str(uuid.uuid4()),
            user_id=user.id,
            user=user,
            assigned_area=area,
            is_available=is_available,
            last_availability_update=last_availability_update,
        )
        db_session.add(cleaner)
        await db_session.flush()
        return cleaner

    return _factory


# ---------------------------------------------------------------------------
# Location factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_asset(db_session):
    async def _factory(type: str = "light", building: Optional[str] = "A", name: str = "Asset") -> Asset:
        asset = Asset(id=str(uuid.uuid4()), name=name, type=type, building=building, status="operational")
        db_session.add(asset)
        await db_session.flush()
        return asset

    return _factory


@pytest.fixture
def make_room(db_session):
    async def _factory(block: Optional[str] = "Hostel-1", room_number: str = "101", status: str = "operational") -> Room:
        room = Room(id=str(uuid.uuid4()), room_number=room_number, block=block, floor="1", status=status)
        db_session.add(room)
        await db_session.flush()
        return room

    return _factory


@pytest.fixture
def make_classroom(db_session):
    async def _factory(building: Optional[str] = "A", name: str = "CR-1", status: str = "operational") -> Classroom:
        classroom = Classroom(id=str(uuid.uuid4()), name=name, building=building, status=status)
        db_session.add(classroom)
        await db_session.flush()
        return classroom

    return _factory


# ---------------------------------------------------------------------------
# Work item factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_complaint(db_session, make_user, make_asset):
    """Factory for Complaint rows. Creates a student and an asset when not given.

    Usage:
        complaint = await make_complaint(category="Electrical", status="approved")
    """
    async def _factory(
        category: Optional[str] = "Electrical",
        status: str = "approved",
        severity: str = "medium",
        asset_id: Optional[str] = None,
        room_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
        building: Optional[str] = "A",
        technician_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        student_id: Optional[str] = None,
        title: str = "Light not working",
        otp: Optional[str] = None,
    ) -> Complaint:
        if student_id is None:
            student_id = (await make_user(role="student")).id
        if not (asset_id or room_id or classroom_id):
            asset_id = (await make_asset(building=building)).id
        complaint = Complaint(
            id=str(uuid.uuid4()),
            title=title,
            description="",
            category=category,
            severity=severity,
            status=status,
            student_id=student_id,
            technician_id=technician_id,
            asset_id=asset_id,
            room_id=room_id,
            classroom_id=classroom_id,
            otp=otp,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(complaint)
        await db_session.flush()
        return complaint

    return _factory


@pytest.fixture
def make_task(db_session):
    async def _factory(
        scheduled_date: date,
        classroom_id: Optional[str] = None,
        room_id: Optional[str] = None,
        cleaner_id: Optional[str] = None,
        status: str = "assigned",
        notes: Optional[str] = None,
    ) -> CleaningTask:
        task = CleaningTask(
            id=str(uuid.uuid4()),
            classroom_id=classroom_id,
            room_id=room_id,
            scheduled_date=scheduled_date,
            cleaner_id=cleaner_id,
            status=status,
            assigned_at=datetime.now(timezone.utc) if cleaner_id else None,
            notes=notes,
        )
        db_session.add(task)
        await db_session.flush()
        return task

    return _factory


@pytest.fixture
def make_emergency(db_session):
    async def _factory(
        reported_at: datetime,
        type: str = "Fire",
        status: str = "triggered",
        escalation_level: int = 0,
    ) -> Emergency:
        emergency = Emergency(
            id=str(uuid.uuid4()),
            type=type,
            location="Block A lobby",
            status=status,
            escalation_level=escalation_level,
            reported_at=reported_at,
        )
        db_session.add(emergency)
        await db_session.flush()
        return emergency

    return _factory


# ---------------------------------------------------------------------------
# Sink readers
# ---------------------------------------------------------------------------

@pytest.fixture
def notifications_for(db_session):
    """Return the notifications produced for one user, optionally filtered by type."""
    async def _read(user_id: str, type: Optional[str] = None) -> list[Notification]:
        query = select(Notification).where(Notification.user_id == user_id)
        if type is not None:
            query = query.where(Notification.type == type)
        result = await db_session.execute(query)
        return list(result.scalars().all())

    return _read


@pytest.fixture
def audit_entries(db_session):
    async def _read(action: Optional[str] = None) -> list[AuditLog]:
        query = select(AuditLog)
        if action is not None:
            query = query.where(AuditLog.action == action)
        result = await db_session.execute(query)
        return list(result.scalars().all())

    return _read
