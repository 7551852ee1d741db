"""Availability & redistribution manager.

Reacts to a staff member's ``is_available`` flip:

* available   -> backfill pending cleaning tasks in the cleaner's area and
                 retry complaints waiting for the staff member's skill
* unavailable -> hand the member's open work to same-area peers round-robin,
                 or release it to the pending pool when nobody is around

Every moved item is committed on its own; a failure on one item is logged
and the sweep carries on with the rest.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from maintenance_dispatch.domain.enums import (
    AuditAction,
    CleaningTaskStatus,
    ComplaintStatus,
    NotificationType,
    Skill,
    StaffRole,
)
from maintenance_dispatch.domain.schemas import AvailabilityChangeResult
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.assignment_engine import AssignmentEngine
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.staff_directory import StaffDirectory, StaffMember

logger = logging.getLogger(__name__)

AUTO_REASSIGN_MARKER = "[Auto-reassigned]"
AUTO_RELEASE_MARKER = "[Auto-released]"

# Task statuses a departing cleaner still "owns"
HELD_TASK_STATUSES = [
    CleaningTaskStatus.ASSIGNED.value,
    CleaningTaskStatus.WAITING_FOR_AVAILABILITY.value,
]

BACKFILL_TASK_STATUSES = {
    CleaningTaskStatus.PENDING_ASSIGNMENT.value,
    CleaningTaskStatus.WAITING_FOR_AVAILABILITY.value,
}


def append_note(existing: Optional[str], note: str) -> str:
    if existing:
        return f"{existing}\n{note}"
    return note


class AvailabilityManager:
    """Backfills and redistributes work when staff availability changes."""

    def __init__(
        self,
        repository: DispatchRepository,
        directory: StaffDirectory,
        engine: AssignmentEngine,
        notifier: Notifier,
        audit: AuditLogger,
    ):
        self.repository = repository
        self.directory = directory
        self.engine = engine
        self.notifier = notifier
        self.audit = audit

    async def on_staff_availability_changed(
        self,
        staff_id: str,
        role: StaffRole,
        new_availability: bool,
        actor_id: Optional[str] = None,
    ) -> AvailabilityChangeResult:
        """Record the flip, then backfill or redistribute."""
        try:
            if role == StaffRole.TECHNICIAN:
                record = await self.repository.get_technician_by_user(staff_id)
            else:
                record = await self.repository.get_cleaner_by_user(staff_id)
            if record is None:
                return AvailabilityChangeResult(success=False, message="Staff member not found")

            if bool(record.is_available) != new_availability:
                record.last_availability_update = datetime.now(timezone.utc)
            record.is_available = new_availability

            name = record.user.name if record.user else staff_id
            await self.audit.record(
                actor_id or staff_id,
                AuditAction.AVAILABILITY_UPDATED,
                f"{name} ({role.value}) availability set to "
                f"{'Available' if new_availability else 'Unavailable'}",
            )
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Failed to update availability for %s: %s", staff_id, e, exc_info=True)
            return AvailabilityChangeResult(success=False, message=f"Failed to update availability: {e}")

        member = await self.directory.get(staff_id, role)
        result = AvailabilityChangeResult(success=True, message="")

        if new_availability:
            await self._on_available(member, result)
            result.message = (
                f"{member.name} is available: {result.backfilled_tasks} task(s) backfilled, "
                f"{result.retried_complaints} waiting complaint(s) assigned"
            )
        else:
            await self._on_unavailable(member, result)
            result.message = (
                f"{member.name} is unavailable: {result.reassigned_tasks} task(s) reassigned, "
                f"{result.released_tasks} released; {result.reassigned_complaints} complaint(s) "
                f"reassigned, {result.released_complaints} released"
            )

        logger.info("Availability change for %s: %s", staff_id, result.message)
        return result

    # ------------------------------------------------------------------
    # Available
    # ------------------------------------------------------------------

    async def _on_available(self, member: StaffMember, result: AvailabilityChangeResult) -> None:
        if member.role == StaffRole.CLEANER:
            result.backfilled_tasks = await self.backfill_tasks(member)

        try:
            skill = Skill(member.skill)
        except ValueError:
            logger.warning("Staff %s has unknown skill %r; skipping waiting retry", member.user_id, member.skill)
            return
        result.retried_complaints = await self.engine.retry_waiting_assignments(skill)

    async def backfill_tasks(self, member: StaffMember) -> int:
        """Assign pending/waiting tasks in the cleaner's area, earliest-scheduled first."""
        pending = await self.repository.list_unassigned_tasks_in_area(member.assigned_area)
        task_ids = [t.id for t in pending]

        assigned = 0
        for task_id in task_ids:
            try:
                task = await self.repository.get_cleaning_task(task_id, refresh=True)
                if task is None or task.status not in BACKFILL_TASK_STATUSES:
                    continue
                task.cleaner_id = member.user_id
                task.status = CleaningTaskStatus.ASSIGNED.value
                task.assigned_at = datetime.now(timezone.utc)
                await self.repository.commit()
                assigned += 1
                logger.info("Backfilled task %s to cleaner %s", task_id, member.user_id)
            except SQLAlchemyError as e:
                await self.repository.rollback()
                logger.error("Backfill of task %s failed: %s", task_id, e)

        if assigned:
            await self.notifier.notify(
                member.user_id,
                NotificationType.TASK_REASSIGNED,
                "Cleaning Tasks Assigned",
                f"{assigned} pending cleaning task(s) in {member.assigned_area} have been assigned to you",
                related_type="cleaning_task",
            )
            try:
                await self.repository.commit()
            except SQLAlchemyError as e:
                await self.repository.rollback()
                logger.error("Backfill notification for %s failed: %s", member.user_id, e)
        return assigned

    # ------------------------------------------------------------------
    # Unavailable
    # ------------------------------------------------------------------

    async def _on_unavailable(self, member: StaffMember, result: AvailabilityChangeResult) -> None:
        alternates = await self.directory.find_alternates(member)
        reason = f"{member.name} marked unavailable"

        if member.role == StaffRole.CLEANER:
            await self.redistribute_tasks(member, alternates, reason, result)
        await self.redistribute_complaints(member, alternates, reason, result)

    async def redistribute_tasks(
        self,
        member: StaffMember,
        alternates: list[StaffMember],
        reason: str,
        result: AvailabilityChangeResult,
        today: Optional[date] = None,
    ) -> None:
        """Round-robin the member's held tasks (today onward) across ``alternates``."""
        today = today or datetime.now(timezone.utc).date()
        held = await self.repository.list_tasks_owned_by(member.user_id, HELD_TASK_STATUSES, today)
        task_ids = [t.id for t in held]
        cursor = 0

        for task_id in task_ids:
            try:
                task = await self.repository.get_cleaning_task(task_id, refresh=True)
                if task is None or task.cleaner_id != member.user_id:
                    continue

                if alternates:
                    target = alternates[cursor % len(alternates)]
                    task.cleaner_id = target.user_id
                    task.status = CleaningTaskStatus.ASSIGNED.value
                    task.assigned_at = datetime.now(timezone.utc)
                    task.notes = append_note(
                        task.notes,
                        f"{AUTO_REASSIGN_MARKER} System moved this task from {member.name} "
                        f"to {target.name}. Reason: {reason}",
                    )
                    await self.notifier.notify(
                        target.user_id,
                        NotificationType.TASK_REASSIGNED,
                        "Cleaning Task Reassigned",
                        f"A cleaning task for {task.scheduled_date} was reassigned to you ({reason})",
                        task.id,
                        related_type="cleaning_task",
                    )
                    await self.audit.record(
                        target.user_id,
                        AuditAction.CLEANING_TASK_REASSIGNED,
                        f"Task {task.id} moved from {member.user_id} to {target.user_id}: {reason}",
                    )
                    await self.repository.commit()
                    cursor += 1
                    result.reassigned_tasks += 1
                else:
                    task.cleaner_id = None
                    task.assigned_at = None
                    task.status = CleaningTaskStatus.PENDING_ASSIGNMENT.value
                    task.notes = append_note(
                        task.notes,
                        f"{AUTO_RELEASE_MARKER} Returned to the pending pool. Reason: {reason}",
                    )
                    await self.audit.record(
                        member.user_id,
                        AuditAction.CLEANING_TASK_RELEASED,
                        f"Task {task.id} released to pending: {reason}",
                    )
                    await self.repository.commit()
                    result.released_tasks += 1
            except SQLAlchemyError as e:
                await self.repository.rollback()
                result.failed_items += 1
                logger.error("Redistribution of task %s failed: %s", task_id, e)

    async def redistribute_complaints(
        self,
        member: StaffMember,
        alternates: list[StaffMember],
        reason: str,
        result: AvailabilityChangeResult,
    ) -> None:
        """Move not-yet-started complaints off ``member``; in-progress work stays put."""
        owned = await self.repository.list_complaints_owned_by(
            member.user_id, [ComplaintStatus.ASSIGNED.value],
        )
        complaint_ids = [c.id for c in owned]
        if not complaint_ids:
            return

        admin_ids = [] if alternates else await self.directory.admin_ids()
        cursor = 0

        for complaint_id in complaint_ids:
            try:
                complaint = await self.repository.get_complaint(complaint_id, refresh=True)
                if (
                    complaint is None
                    or complaint.technician_id != member.user_id
                    or complaint.status != ComplaintStatus.ASSIGNED.value
                ):
                    continue

                if alternates:
                    target = alternates[cursor % len(alternates)]
                    complaint.technician_id = target.user_id
                    complaint.assigned_at = datetime.now(timezone.utc)
                    self.repository.add_status_history(
                        complaint.id,
                        ComplaintStatus.ASSIGNED.value,
                        f"{AUTO_REASSIGN_MARKER} Moved from {member.name} to {target.name}. Reason: {reason}",
                    )
                    await self.notifier.notify(
                        target.user_id,
                        NotificationType.COMPLAINT_ASSIGNED,
                        "Complaint Reassigned",
                        f"Complaint \"{complaint.title}\" was reassigned to you ({reason})",
                        complaint.id,
                    )
                    await self.audit.record(
                        target.user_id,
                        AuditAction.COMPLAINT_REASSIGNED,
                        f"Complaint {complaint.id} moved from {member.user_id} to {target.user_id}: {reason}",
                    )
                    await self.repository.commit()
                    cursor += 1
                    result.reassigned_complaints += 1
                else:
                    complaint.technician_id = None
                    complaint.assigned_at = None
                    complaint.status = ComplaintStatus.WAITING_FOR_SKILLED_STAFF.value
                    self.repository.add_status_history(
                        complaint.id,
                        ComplaintStatus.WAITING_FOR_SKILLED_STAFF.value,
                        f"{AUTO_RELEASE_MARKER} {reason}; no alternate {member.skill} in "
                        f"{member.assigned_area or 'any area'}",
                    )
                    await self.notifier.notify_many(
                        admin_ids,
                        NotificationType.NO_STAFF_AVAILABLE,
                        "No Staff Available",
                        f"Complaint #{complaint.id[:8]} lost its assignee ({reason}) "
                        f"and is waiting for skilled staff",
                        complaint.id,
                    )
                    await self.audit.record(
                        member.user_id,
                        AuditAction.COMPLAINT_RELEASED,
                        f"Complaint {complaint.id} released to waiting: {reason}",
                    )
                    await self.repository.commit()
                    result.released_complaints += 1
            except SQLAlchemyError as e:
                await self.repository.rollback()
                result.failed_items += 1
                logger.error("Redistribution of complaint %s failed: %s", complaint_id, e)
