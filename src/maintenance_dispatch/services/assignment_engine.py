"""Assignment engine. Routes an approved complaint to skill-matched staff.

Selection policy:
    1. category -> (skill, role) via CATEGORY_ROUTING
    2. candidates: available + active staff of that role/skill,
       longest-available first
    3. first candidate whose area equals the complaint's locality key,
       else the first candidate overall
    4. nobody -> ``waiting_for_skilled_staff`` and admins are told once

All writes of one attempt (status, owner, history, notification, audit) are
committed together; a persistence failure rolls the whole attempt back.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from maintenance_dispatch.domain.enums import (
    AuditAction,
    ComplaintCategory,
    ComplaintStatus,
    LocationStatus,
    NotificationType,
    Skill,
    StaffRole,
)
from maintenance_dispatch.domain.schemas import AssignmentResult
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.complaint_state_machine import ASSIGNABLE_STATES, parse_status
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.staff_directory import StaffDirectory, StaffMember

logger = logging.getLogger(__name__)

C = ComplaintCategory

CATEGORY_ROUTING: dict[ComplaintCategory, tuple[Skill, StaffRole]] = {
    C.ELECTRICAL: (Skill.ELECTRICIAN, StaffRole.TECHNICIAN),
    C.PLUMBING: (Skill.PLUMBER, StaffRole.TECHNICIAN),
    C.FURNITURE: (Skill.MAINTENANCE_TECHNICIAN, StaffRole.TECHNICIAN),
    C.IT_NETWORK: (Skill.IT_TECHNICIAN, StaffRole.TECHNICIAN),
    C.WIFI: (Skill.IT_TECHNICIAN, StaffRole.TECHNICIAN),
    C.CLEANLINESS: (Skill.CLEANER, StaffRole.CLEANER),
    C.OTHER: (Skill.MAINTENANCE_TECHNICIAN, StaffRole.TECHNICIAN),
}

# Legacy spellings still present in stored rows
CATEGORY_ALIASES: dict[str, ComplaintCategory] = {
    "IT / Network": C.IT_NETWORK,
}


def categories_for_skill(skill: Skill) -> list[str]:
    """Every stored category label that routes to ``skill``."""
    labels = [category.value for category, (s, _) in CATEGORY_ROUTING.items() if s == skill]
    labels += [alias for alias, category in CATEGORY_ALIASES.items() if CATEGORY_ROUTING[category][0] == skill]
    return labels


def select_candidate(candidates: list[StaffMember], locality: Optional[str]) -> Optional[StaffMember]:
    """Locality match wins over recency; otherwise the longest-available candidate."""
    if not candidates:
        return None
    if locality:
        for member in candidates:
            if member.assigned_area == locality:
                return member
    return candidates[0]


class AssignmentEngine:
    """Matches complaints to staff and backfills the waiting pool."""

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

    async def assign_complaint(self, complaint_id: str) -> AssignmentResult:
        """Try to route one complaint. Never raises for expected failures."""
        try:
            complaint = await self.repository.get_complaint(complaint_id)
            if complaint is None:
                return AssignmentResult(success=False, assigned=False, message="Complaint not found")

            status = parse_status(complaint.status)
            if status not in ASSIGNABLE_STATES:
                logger.warning(
                    "Refusing to auto-assign complaint %s in status %s", complaint_id, status.value,
                )
                return AssignmentResult(
                    success=False,
                    assigned=False,
                    message=f"Complaint must be approved before assignment (status: {status.value})",
                )

            if not complaint.category:
                return AssignmentResult(success=False, assigned=False, message="Complaint has no category")

            category = ComplaintCategory.from_label(complaint.category)
            if category is None:
                logger.error("Complaint %s has unmapped category %r", complaint_id, complaint.category)
                return AssignmentResult(
                    success=False,
                    assigned=False,
                    message=f"No skill mapping found for category: {complaint.category}",
                )

            skill, role = CATEGORY_ROUTING[category]
            locality = await self.repository.locality_for(complaint)
            candidates = await self.directory.find_candidates(role, skill)
            selected = select_candidate(candidates, locality)

            if selected is None:
                return await self._mark_waiting(complaint, status, category, skill)

            complaint.technician_id = selected.user_id
            complaint.status = ComplaintStatus.ASSIGNED.value
            complaint.assigned_at = datetime.now(timezone.utc)
            await self.repository.set_location_status(complaint, LocationStatus.UNDER_MAINTENANCE.value)

            local = bool(locality) and selected.assigned_area == locality
            self.repository.add_status_history(
                complaint.id,
                ComplaintStatus.ASSIGNED.value,
                f"Auto-assigned to {selected.name} ({skill.value})",
            )
            await self.notifier.notify(
                selected.user_id,
                NotificationType.COMPLAINT_ASSIGNED,
                "New Complaint Assigned",
                f"You have been assigned a new {category.value} complaint: {complaint.title}",
                complaint.id,
            )
            await self.audit.record(
                selected.user_id,
                AuditAction.COMPLAINT_AUTO_ASSIGNED,
                f"Complaint {complaint.id} auto-assigned to {selected.name} "
                f"(Skill: {skill.value}, area: {selected.assigned_area or '-'}, local match: {local})",
            )
            await self.repository.commit()

            logger.info(
                "Auto-assigned complaint %s to %s (%s, local=%s)",
                complaint_id, selected.user_id, skill.value, local,
            )
            return AssignmentResult(
                success=True,
                assigned=True,
                message=f"Complaint assigned to {selected.name}",
                assigned_to=selected.user_id,
                staff_name=selected.name,
            )

        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Auto-assignment failed for complaint %s: %s", complaint_id, e, exc_info=True)
            return AssignmentResult(success=False, assigned=False, message=f"Auto-assignment failed: {e}")

    async def _mark_waiting(
        self,
        complaint,
        status: ComplaintStatus,
        category: ComplaintCategory,
        skill: Skill,
    ) -> AssignmentResult:
        """Park the complaint; admins hear about it only on entry into the waiting state."""
        if status != ComplaintStatus.WAITING_FOR_SKILLED_STAFF:
            complaint.status = ComplaintStatus.WAITING_FOR_SKILLED_STAFF.value
            self.repository.add_status_history(
                complaint.id,
                ComplaintStatus.WAITING_FOR_SKILLED_STAFF.value,
                f"No available {skill.value} staff",
            )
            admin_ids = await self.directory.admin_ids()
            await self.notifier.notify_many(
                admin_ids,
                NotificationType.NO_STAFF_AVAILABLE,
                "No Staff Available",
                f"Complaint #{complaint.id[:8]} ({category.value}) is waiting for skilled staff",
                complaint.id,
            )
            await self.repository.commit()
            logger.info("Complaint %s waiting for %s staff", complaint.id, skill.value)

        return AssignmentResult(
            success=True,
            assigned=False,
            message=f"No available {skill.value} staff found. Complaint marked as waiting.",
        )

    async def retry_waiting_assignments(self, skill: Skill) -> int:
        """Re-run assignment for waiting complaints of ``skill``, oldest first.

        Stops at the first complaint that still finds nobody. Returns the
        number of complaints assigned.
        """
        waiting = await self.repository.list_complaints_by_status(
            [ComplaintStatus.WAITING_FOR_SKILLED_STAFF.value],
            categories=categories_for_skill(skill),
        )
        complaint_ids = [c.id for c in waiting]

        assigned = 0
        for complaint_id in complaint_ids:
            result = await self.assign_complaint(complaint_id)
            if result.assigned:
                assigned += 1
            elif result.success:
                break
            else:
                logger.warning("Retry of complaint %s failed: %s", complaint_id, result.message)

        if complaint_ids:
            logger.info(
                "Retry assignment (%s): %d of %d waiting complaints assigned",
                skill.value, assigned, len(complaint_ids),
            )
        return assigned
