"""Persistence interface consumed by the dispatch engine.

Wraps one ``AsyncSession``. Services never hold a global session: a
repository is built per request / per sweep iteration and passed into the
engine's constructor. Tests build it over an in-memory SQLite session.
"""

import uuid
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from maintenance_dispatch.domain.enums import CleaningTaskStatus, EmergencyStatus
from maintenance_dispatch.domain.models import (
    Asset,
    Classroom,
    CleaningTask,
    Cleaner,
    Complaint,
    Emergency,
    Room,
    StatusHistory,
    Technician,
    User,
)


class DispatchRepository:
    """Async CRUD and filtered queries over complaints, tasks, staff and emergencies."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def add(self, obj) -> None:
        self.db.add(obj)

    async def flush(self) -> None:
        await self.db.flush()

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    # ------------------------------------------------------------------
    # Complaints
    # ------------------------------------------------------------------

    async def get_complaint(self, complaint_id: str, refresh: bool = False) -> Optional[Complaint]:
        """Fetch a complaint by id. ``refresh`` reloads it after a rollback."""
        return await self.db.get(Complaint, complaint_id, populate_existing=refresh)

    async def find_active_complaint_for_location(
        self,
        terminal_statuses: Iterable[str],
        asset_id: Optional[str] = None,
        room_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
    ) -> Optional[Complaint]:
        """Return a non-terminal complaint already open against the same location."""
        if asset_id:
            location_clause = Complaint.asset_id == asset_id
        elif room_id:
            location_clause = Complaint.room_id == room_id
        elif classroom_id:
            location_clause = Complaint.classroom_id == classroom_id
        else:
            return None

        result = await self.db.execute(
            select(Complaint)
            .where(location_clause, Complaint.status.notin_(list(terminal_statuses)))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_complaints_by_status(
        self,
        statuses: Iterable[str],
        categories: Optional[Iterable[str]] = None,
    ) -> list[Complaint]:
        """Complaints in any of ``statuses``, oldest-created first.

        ``categories`` match ignoring case and the spacing around "/".
        """
        query = select(Complaint).where(Complaint.status.in_(list(statuses)))
        if categories is not None:
            stored = func.replace(func.lower(func.trim(Complaint.category)), " / ", "/")
            wanted = [c.replace(" / ", "/").strip().lower() for c in categories]
            query = query.where(stored.in_(wanted))
        result = await self.db.execute(query.order_by(Complaint.created_at.asc(), Complaint.id.asc()))
        return list(result.scalars().all())

    async def list_complaints_excluding(self, statuses: Iterable[str]) -> list[Complaint]:
        result = await self.db.execute(
            select(Complaint)
            .where(Complaint.status.notin_(list(statuses)))
            .order_by(Complaint.created_at.asc(), Complaint.id.asc())
        )
        return list(result.scalars().all())

    async def list_complaints_owned_by(self, user_id: str, statuses: Iterable[str]) -> list[Complaint]:
        result = await self.db.execute(
            select(Complaint)
            .where(Complaint.technician_id == user_id, Complaint.status.in_(list(statuses)))
            .order_by(Complaint.created_at.asc(), Complaint.id.asc())
        )
        return list(result.scalars().all())

    def add_status_history(self, complaint_id: str, status: str, message: Optional[str]) -> StatusHistory:
        entry = StatusHistory(
            id=str(uuid.uuid4()),
            complaint_id=complaint_id,
            status=status,
            message=message,
        )
        self.db.add(entry)
        return entry

    async def list_status_history(self, complaint_id: str) -> list[StatusHistory]:
        result = await self.db.execute(
            select(StatusHistory)
            .where(StatusHistory.complaint_id == complaint_id)
            .order_by(StatusHistory.timestamp.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    async def get_location(self, complaint_or_task):
        """Return the Asset, Room or Classroom row a complaint/task points at."""
        asset_id = getattr(complaint_or_task, "asset_id", None)
        if asset_id:
            return await self.db.get(Asset, asset_id)
        if complaint_or_task.room_id:
            return await self.db.get(Room, complaint_or_task.room_id)
        if complaint_or_task.classroom_id:
            return await self.db.get(Classroom, complaint_or_task.classroom_id)
        return None

    async def locality_for(self, complaint_or_task) -> Optional[str]:
        """Locality key: asset building, room block or classroom building."""
        location = await self.get_location(complaint_or_task)
        if location is None:
            return None
        if isinstance(location, Room):
            return location.block
        return location.building

    async def set_location_status(self, complaint_or_task, status: str) -> None:
        location = await self.get_location(complaint_or_task)
        if location is not None:
            location.status = status

    async def list_classrooms(self, status: str) -> list[Classroom]:
        result = await self.db.execute(
            select(Classroom).where(Classroom.status == status).order_by(Classroom.building, Classroom.name)
        )
        return list(result.scalars().all())

    async def list_rooms(self, status: str) -> list[Room]:
        result = await self.db.execute(
            select(Room).where(Room.status == status).order_by(Room.block, Room.floor, Room.room_number)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------

    async def list_technicians(
        self,
        skills: Optional[Iterable[str]] = None,
        available_only: bool = False,
        active_only: bool = True,
    ) -> list[Technician]:
        query = select(Technician).join(User, Technician.user_id == User.id)
        if skills is not None:
            query = query.where(Technician.skill_type.in_(list(skills)))
        if available_only:
            query = query.where(Technician.is_available.is_(True))
        if active_only:
            query = query.where(User.is_active.is_(True))
        result = await self.db.execute(query.order_by(Technician.created_at.asc()))
        return list(result.scalars().all())

    async def list_cleaners(self, available_only: bool = False, active_only: bool = True) -> list[Cleaner]:
        query = select(Cleaner).join(User, Cleaner.user_id == User.id)
        if available_only:
            query = query.where(Cleaner.is_available.is_(True))
        if active_only:
            query = query.where(User.is_active.is_(True))
        result = await self.db.execute(query.order_by(Cleaner.created_at.asc()))
        return list(result.scalars().all())

    async def get_technician_by_user(self, user_id: str) -> Optional[Technician]:
        result = await self.db.execute(select(Technician).where(Technician.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_cleaner_by_user(self, user_id: str) -> Optional[Cleaner]:
        result = await self.db.execute(select(Cleaner).where(Cleaner.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def list_users_by_roles(self, roles: Iterable[str], active_only: bool = True) -> list[User]:
        query = select(User).where(User.role.in_(list(roles)))
        if active_only:
            query = query.where(User.is_active.is_(True))
        result = await self.db.execute(query.order_by(User.created_at.asc(), User.id.asc()))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Cleaning tasks
    # ------------------------------------------------------------------

    async def get_cleaning_task(self, task_id: str, refresh: bool = False) -> Optional[CleaningTask]:
        return await self.db.get(CleaningTask, task_id, populate_existing=refresh)

    async def find_cleaning_task(
        self,
        scheduled_date: date,
        classroom_id: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> Optional[CleaningTask]:
        query = select(CleaningTask).where(CleaningTask.scheduled_date == scheduled_date)
        if classroom_id:
            query = query.where(CleaningTask.classroom_id == classroom_id)
        else:
            query = query.where(CleaningTask.room_id == room_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_unassigned_tasks_in_area(self, area: Optional[str]) -> list[CleaningTask]:
        """Pending/waiting tasks whose classroom building or room block equals ``area``."""
        if not area:
            return []
        result = await self.db.execute(
            select(CleaningTask)
            .outerjoin(Classroom, CleaningTask.classroom_id == Classroom.id)
            .outerjoin(Room, CleaningTask.room_id == Room.id)
            .where(
                CleaningTask.status.in_([
                    CleaningTaskStatus.PENDING_ASSIGNMENT.value,
                    CleaningTaskStatus.WAITING_FOR_AVAILABILITY.value,
                ]),
                or_(Classroom.building == area, Room.block == area),
            )
            .order_by(
                CleaningTask.scheduled_date.asc(),
                CleaningTask.created_at.asc(),
                CleaningTask.id.asc(),
            )
        )
        return list(result.scalars().all())

    async def list_tasks_owned_by(
        self,
        cleaner_id: str,
        statuses: Iterable[str],
        from_date: date,
    ) -> list[CleaningTask]:
        result = await self.db.execute(
            select(CleaningTask)
            .where(
                and_(
                    CleaningTask.cleaner_id == cleaner_id,
                    CleaningTask.status.in_(list(statuses)),
                    CleaningTask.scheduled_date >= from_date,
                )
            )
            .order_by(
                CleaningTask.scheduled_date.asc(),
                CleaningTask.created_at.asc(),
                CleaningTask.id.asc(),
            )
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Emergencies
    # ------------------------------------------------------------------

    async def get_emergency(self, emergency_id: str) -> Optional[Emergency]:
        return await self.db.get(Emergency, emergency_id)

    async def list_unescalated_emergencies(self, reported_before: datetime) -> list[Emergency]:
        """Triggered emergencies older than ``reported_before`` still at level 0."""
        result = await self.db.execute(
            select(Emergency)
            .where(
                Emergency.status == EmergencyStatus.TRIGGERED.value,
                Emergency.reported_at < reported_before,
                Emergency.escalation_level == 0,
            )
            .order_by(Emergency.reported_at.asc())
        )
        return list(result.scalars().all())
