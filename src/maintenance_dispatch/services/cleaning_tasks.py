"""Daily cleaning task generation and cleaner task updates.

One task per operational classroom and hostel room per day. New tasks are
dealt round-robin to the available cleaners of the location's area
(longest-available first); areas without a cleaner leave their tasks in
``waiting_for_availability`` until someone there comes back.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from maintenance_dispatch.domain.enums import (
    AuditAction,
    CleaningTaskStatus,
    LocationStatus,
    NotificationType,
    Skill,
    StaffRole,
)
from maintenance_dispatch.domain.models import CleaningTask
from maintenance_dispatch.domain.schemas import CleaningTaskResult, DailyTaskResult
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.availability_manager import append_note
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.staff_directory import StaffDirectory, StaffMember

logger = logging.getLogger(__name__)

T = CleaningTaskStatus

TASK_TRANSITIONS: dict[CleaningTaskStatus, set[CleaningTaskStatus]] = {
    T.ASSIGNED: {T.IN_PROGRESS, T.COMPLETED},
    T.IN_PROGRESS: {T.COMPLETED},
}


class CleaningTaskService:
    """Generates the daily cleaning roster and tracks task progress."""

    def __init__(
        self,
        repository: DispatchRepository,
        directory: StaffDirectory,
        notifier: Notifier,
        audit: AuditLogger,
    ):
        self.repository = repository
        self.directory = directory
        self.notifier = notifier
        self.audit = audit

    async def generate_daily_cleaning_tasks(
        self,
        scheduled_date: Optional[date] = None,
        actor_id: Optional[str] = None,
    ) -> DailyTaskResult:
        """Create missing tasks for ``scheduled_date``. Safe to re-run for the same day."""
        scheduled_date = scheduled_date or datetime.now(timezone.utc).date()
        result = DailyTaskResult(scheduled_date=scheduled_date)

        classrooms = await self.repository.list_classrooms(LocationStatus.OPERATIONAL.value)
        rooms = await self.repository.list_rooms(LocationStatus.OPERATIONAL.value)
        locations = [("classroom", c.id, c.building, c.name) for c in classrooms]
        locations += [("room", r.id, r.block, r.room_number) for r in rooms]

        cleaners = await self.directory.find_candidates(StaffRole.CLEANER, Skill.CLEANER)
        pools: dict[str, list[StaffMember]] = defaultdict(list)
        for cleaner in cleaners:
            if cleaner.assigned_area:
                pools[cleaner.assigned_area].append(cleaner)
        cursors: dict[str, int] = defaultdict(int)
        dealt: dict[str, int] = defaultdict(int)

        for kind, location_id, area, label in locations:
            classroom_id = location_id if kind == "classroom" else None
            room_id = location_id if kind == "room" else None

            try:
                existing = await self.repository.find_cleaning_task(
                    scheduled_date, classroom_id=classroom_id, room_id=room_id,
                )
                if existing is not None:
                    result.skipped += 1
                    continue

                task = CleaningTask(
                    id=str(uuid.uuid4()),
                    classroom_id=classroom_id,
                    room_id=room_id,
                    scheduled_date=scheduled_date,
                    status=T.PENDING_ASSIGNMENT.value,
                )
                pool = pools.get(area) if area else None
                if pool:
                    cleaner = pool[cursors[area] % len(pool)]
                    task.cleaner_id = cleaner.user_id
                    task.status = T.ASSIGNED.value
                    task.assigned_at = datetime.now(timezone.utc)
                else:
                    task.status = T.WAITING_FOR_AVAILABILITY.value

                self.repository.add(task)
                await self.repository.commit()
            except IntegrityError:
                # Another generator created the same (location, date) task first
                await self.repository.rollback()
                result.skipped += 1
                continue
            except SQLAlchemyError as e:
                await self.repository.rollback()
                logger.error("Failed to create cleaning task for %s %s: %s", kind, label, e)
                continue

            result.created += 1
            if pool:
                cursors[area] += 1
                dealt[cleaner.user_id] += 1
                result.assigned += 1
            else:
                result.waiting += 1
                logger.info("No cleaner available in %s; %s %s waiting", area or "unknown area", kind, label)

        if result.created:
            for cleaner_id, count in dealt.items():
                await self.notifier.notify(
                    cleaner_id,
                    NotificationType.TASK_REASSIGNED,
                    "Daily Cleaning Tasks",
                    f"{count} cleaning task(s) assigned to you for {scheduled_date.isoformat()}",
                    related_type="cleaning_task",
                )
            await self.audit.record(
                actor_id,
                AuditAction.CLEANING_TASKS_GENERATED,
                f"Generated {result.created} cleaning tasks for {scheduled_date.isoformat()} "
                f"({result.assigned} assigned, {result.waiting} waiting, {result.skipped} already existed)",
            )
            try:
                await self.repository.commit()
            except SQLAlchemyError as e:
                await self.repository.rollback()
                logger.error("Failed to record task generation summary: %s", e)

        logger.info(
            "Daily cleaning tasks for %s: created=%d skipped=%d assigned=%d waiting=%d",
            scheduled_date, result.created, result.skipped, result.assigned, result.waiting,
        )
        return result

    async def update_task_status(
        self,
        task_id: str,
        status: CleaningTaskStatus,
        cleaner_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CleaningTaskResult:
        """Move a task forward (assigned -> in_progress -> completed)."""
        try:
            task = await self.repository.get_cleaning_task(task_id)
            if task is None:
                return CleaningTaskResult(success=False, message="Cleaning task not found")

            if cleaner_id and task.cleaner_id != cleaner_id:
                return CleaningTaskResult(
                    success=False,
                    message="Task is not assigned to this cleaner",
                    task_id=task_id,
                    status=task.status,
                )

            current = CleaningTaskStatus(task.status)
            if status not in TASK_TRANSITIONS.get(current, set()):
                logger.warning("Refusing task %s transition %s -> %s", task_id, current.value, status.value)
                return CleaningTaskResult(
                    success=False,
                    message=f"Cannot move task from {current.value} to {status.value}",
                    task_id=task_id,
                    status=current.value,
                )

            task.status = status.value
            if status == T.COMPLETED:
                task.completed_at = datetime.now(timezone.utc)
            if notes:
                task.notes = append_note(task.notes, notes)
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Failed to update cleaning task %s: %s", task_id, e, exc_info=True)
            return CleaningTaskResult(success=False, message=f"Failed to update task: {e}")

        logger.info("Cleaning task %s: %s -> %s", task_id, current.value, status.value)
        return CleaningTaskResult(
            success=True, message=f"Task marked {status.value}", task_id=task_id, status=status.value,
        )
