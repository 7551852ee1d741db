"""Complaint lifecycle service: intake, approval gate, status updates, OTP close.

Transitions are validated by ``ComplaintStateMachine``; an
``InvalidTransitionError`` never escapes this module, it becomes a failed
``LifecycleResult``.
"""

import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from maintenance_dispatch.domain.enums import (
    AuditAction,
    ComplaintActor,
    ComplaintCategory,
    ComplaintStatus,
    LocationStatus,
    NotificationType,
    Severity,
)
from maintenance_dispatch.domain.models import Asset, Complaint
from maintenance_dispatch.domain.schemas import LifecycleResult
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.assignment_engine import AssignmentEngine
from maintenance_dispatch.services.complaint_state_machine import (
    ASSIGNABLE_STATES,
    TERMINAL_STATES,
    ComplaintStateMachine,
    InvalidTransitionError,
    parse_status,
)
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.priority_classifier import classify_priority
from maintenance_dispatch.services.staff_directory import StaffDirectory

logger = logging.getLogger(__name__)

# Statuses whose notes/evidence are stored as the staff member's work report
WORK_REPORT_STATES = {ComplaintStatus.WORK_SUBMITTED, ComplaintStatus.RESOLVED}


def generate_otp() -> str:
    """Random 4-digit completion code (1000-9999)."""
    return str(secrets.randbelow(9000) + 1000)


class ComplaintLifecycleService:
    """Drives a complaint from intake to OTP-verified closure."""

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
        self.state_machine = ComplaintStateMachine()

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def submit_complaint(
        self,
        student_id: str,
        title: str,
        description: str,
        category: str,
        asset_id: Optional[str] = None,
        room_id: Optional[str] = None,
        classroom_id: Optional[str] = None,
        severity: Optional[Severity] = None,
    ) -> LifecycleResult:
        """Create a complaint against exactly one location.

        Hostel rooms go through the warden gate; everything else waits for an
        admin.
        """
        if sum(1 for ref in (asset_id, room_id, classroom_id) if ref) != 1:
            return LifecycleResult(
                success=False,
                message="Exactly one of asset, room or classroom must be given",
            )

        parsed_category = ComplaintCategory.from_label(category)
        if parsed_category is None:
            return LifecycleResult(success=False, message=f"Unknown category: {category}")

        try:
            existing = await self.repository.find_active_complaint_for_location(
                [s.value for s in TERMINAL_STATES],
                asset_id=asset_id,
                room_id=room_id,
                classroom_id=classroom_id,
            )
            if existing is not None:
                return LifecycleResult(
                    success=False,
                    message="An active complaint already exists for this location",
                    complaint_id=existing.id,
                    status=existing.status,
                )

            complaint = Complaint(
                id=str(uuid.uuid4()),
                title=title,
                description=description or "",
                category=parsed_category.value,
                student_id=student_id,
                asset_id=asset_id,
                room_id=room_id,
                classroom_id=classroom_id,
            )
            location = await self.repository.get_location(complaint)
            if location is None:
                return LifecycleResult(success=False, message="Location not found")

            asset_type = location.type if isinstance(location, Asset) else None
            complaint.severity = (severity or classify_priority(title, description, asset_type)).value

            if room_id:
                complaint.status = ComplaintStatus.WAITING_WARDEN_APPROVAL.value
                reviewers = await self.directory.warden_ids()
                gate = "warden"
            else:
                complaint.status = ComplaintStatus.REPORTED.value
                reviewers = await self.directory.admin_ids()
                gate = "admin"

            self.repository.add(complaint)
            self.repository.add_status_history(
                complaint.id, complaint.status, f"Complaint submitted (severity: {complaint.severity})",
            )
            await self.notifier.notify_many(
                reviewers,
                NotificationType.NEW_COMPLAINT,
                "New Complaint",
                f"New {parsed_category.value} complaint ({complaint.severity}): {title}",
                complaint.id,
            )
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Complaint intake failed for student %s: %s", student_id, e, exc_info=True)
            return LifecycleResult(success=False, message=f"Failed to submit complaint: {e}")

        logger.info(
            "Complaint %s submitted (%s, %s), awaiting %s approval",
            complaint.id, parsed_category.value, complaint.severity, gate,
        )
        return LifecycleResult(
            success=True,
            message=f"Complaint submitted and awaiting {gate} approval",
            complaint_id=complaint.id,
            status=complaint.status,
        )

    # ------------------------------------------------------------------
    # Approval gate
    # ------------------------------------------------------------------

    async def review_complaint(
        self,
        complaint_id: str,
        actor: ComplaintActor,
        accept: bool,
        reason: Optional[str] = None,
    ) -> LifecycleResult:
        """Approve (and immediately auto-assign) or reject a reported complaint."""
        target = ComplaintStatus.APPROVED if accept else ComplaintStatus.REJECTED
        try:
            complaint = await self.repository.get_complaint(complaint_id)
            if complaint is None:
                return LifecycleResult(success=False, message="Complaint not found")

            current = parse_status(complaint.status)
            try:
                self.state_machine.validate_transition(current, target, actor)
            except InvalidTransitionError as e:
                logger.warning("Review of complaint %s refused: %s", complaint_id, e)
                return LifecycleResult(
                    success=False, message=str(e), complaint_id=complaint_id, status=current.value,
                )

            complaint.status = target.value
            if accept:
                message = f"Complaint approved by {actor.value}"
            else:
                complaint.rejection_reason = reason
                message = f"Complaint rejected by {actor.value}: {reason or 'no reason given'}"

            self.repository.add_status_history(complaint.id, target.value, message)
            await self.notifier.notify(
                complaint.student_id,
                NotificationType.COMPLAINT_STATUS,
                "Complaint Approved" if accept else "Complaint Rejected",
                f"Your complaint \"{complaint.title}\" was {'approved' if accept else 'rejected'}"
                + ("" if accept or not reason else f": {reason}"),
                complaint.id,
            )
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Review of complaint %s failed: %s", complaint_id, e, exc_info=True)
            return LifecycleResult(success=False, message=f"Failed to review complaint: {e}")

        if not accept:
            return LifecycleResult(
                success=True, message=message, complaint_id=complaint_id, status=target.value,
            )

        assignment = await self.engine.assign_complaint(complaint_id)
        complaint = await self.repository.get_complaint(complaint_id, refresh=True)
        return LifecycleResult(
            success=True,
            message=f"{message}. {assignment.message}",
            complaint_id=complaint_id,
            status=complaint.status if complaint else None,
        )

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    async def update_status(
        self,
        complaint_id: str,
        target: ComplaintStatus,
        actor: ComplaintActor,
        notes: Optional[str] = None,
        evidence: Optional[list[str]] = None,
        staff_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> LifecycleResult:
        """Apply one validated transition.

        ``staff_id`` restricts staff-driven updates to the complaint's owner.
        ``assignee_id`` is the manual-assignment target for admin moves into
        ``assigned``; without it an assignable complaint is routed by the
        assignment engine.
        """
        try:
            complaint = await self.repository.get_complaint(complaint_id)
            if complaint is None:
                return LifecycleResult(success=False, message="Complaint not found")

            current = parse_status(complaint.status)
            try:
                self.state_machine.validate_transition(current, target, actor)
            except InvalidTransitionError as e:
                logger.warning("Status update on complaint %s refused: %s", complaint_id, e)
                return LifecycleResult(
                    success=False, message=str(e), complaint_id=complaint_id, status=current.value,
                )

            if actor == ComplaintActor.STAFF and staff_id and complaint.technician_id != staff_id:
                return LifecycleResult(
                    success=False,
                    message="Complaint is not assigned to this staff member",
                    complaint_id=complaint_id,
                    status=current.value,
                )

            if target == ComplaintStatus.ASSIGNED and not assignee_id:
                if current not in ASSIGNABLE_STATES:
                    return LifecycleResult(
                        success=False,
                        message="Reassignment requires an assignee",
                        complaint_id=complaint_id,
                        status=current.value,
                    )
                assignment = await self.engine.assign_complaint(complaint_id)
                complaint = await self.repository.get_complaint(complaint_id, refresh=True)
                return LifecycleResult(
                    success=assignment.success,
                    message=assignment.message,
                    complaint_id=complaint_id,
                    status=complaint.status if complaint else None,
                )

            if target == ComplaintStatus.ASSIGNED:
                assignee = await self.directory.find_staff(assignee_id)
                if assignee is None or not assignee.is_active:
                    logger.warning("Manual assignment of complaint %s to unknown staff %s", complaint_id, assignee_id)
                    return LifecycleResult(
                        success=False,
                        message="Assignee not found",
                        complaint_id=complaint_id,
                        status=current.value,
                    )

            now = datetime.now(timezone.utc)
            complaint.status = target.value

            if target == ComplaintStatus.ASSIGNED:
                previous_owner = complaint.technician_id
                complaint.technician_id = assignee_id
                complaint.assigned_at = now
                await self.repository.set_location_status(complaint, LocationStatus.UNDER_MAINTENANCE.value)
                await self.notifier.notify(
                    assignee_id,
                    NotificationType.COMPLAINT_ASSIGNED,
                    "New Complaint Assigned",
                    f"You have been assigned complaint: {complaint.title}",
                    complaint.id,
                )
                logger.info(
                    "Complaint %s manually assigned to %s (was %s)", complaint_id, assignee_id, previous_owner,
                )

            if target == ComplaintStatus.RESOLVED:
                if complaint.resolved_at is None:
                    complaint.resolved_at = now
                if not complaint.otp:
                    complaint.otp = generate_otp()

            if target in WORK_REPORT_STATES:
                if notes:
                    complaint.work_note = notes
                if evidence:
                    complaint.work_proof = list(complaint.work_proof or []) + list(evidence)

            self.repository.add_status_history(
                complaint.id, target.value, notes or f"Status changed to {target.value} by {actor.value}",
            )

            if target == ComplaintStatus.RESOLVED:
                student_message = (
                    f"Your complaint \"{complaint.title}\" has been resolved. "
                    f"Share OTP {complaint.otp} with the staff member to close it."
                )
            else:
                student_message = f"Your complaint \"{complaint.title}\" is now {target.value.replace('_', ' ')}"
            await self.notifier.notify(
                complaint.student_id,
                NotificationType.COMPLAINT_STATUS,
                "Complaint Update",
                student_message,
                complaint.id,
            )
            await self.audit.record(
                staff_id or complaint.technician_id,
                AuditAction.COMPLAINT_STATUS_UPDATED,
                f"Complaint {complaint.id}: {current.value} -> {target.value} ({actor.value})",
            )
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Status update on complaint %s failed: %s", complaint_id, e, exc_info=True)
            return LifecycleResult(success=False, message=f"Failed to update status: {e}")

        logger.info("Complaint %s: %s -> %s by %s", complaint_id, current.value, target.value, actor.value)
        return LifecycleResult(
            success=True,
            message=f"Status updated to {target.value}",
            complaint_id=complaint_id,
            status=target.value,
            otp=complaint.otp if target == ComplaintStatus.RESOLVED else None,
        )

    # ------------------------------------------------------------------
    # Closure
    # ------------------------------------------------------------------

    async def verify_otp(self, complaint_id: str, otp: str) -> LifecycleResult:
        """Close a resolved complaint when ``otp`` matches exactly."""
        try:
            complaint = await self.repository.get_complaint(complaint_id)
            if complaint is None:
                return LifecycleResult(success=False, message="Complaint not found")

            current = parse_status(complaint.status)
            if not self.state_machine.can_verify_otp(current):
                return LifecycleResult(
                    success=False,
                    message="Complaint must be resolved before OTP verification",
                    complaint_id=complaint_id,
                    status=current.value,
                )

            if not complaint.otp or otp != complaint.otp:
                logger.warning("OTP mismatch for complaint %s", complaint_id)
                return LifecycleResult(
                    success=False, message="Invalid OTP", complaint_id=complaint_id, status=current.value,
                )

            complaint.status = ComplaintStatus.CLOSED.value
            complaint.otp_verified = True
            await self.repository.set_location_status(complaint, LocationStatus.OPERATIONAL.value)
            self.repository.add_status_history(
                complaint.id, ComplaintStatus.CLOSED.value, "Closed after OTP verification",
            )
            if complaint.technician_id:
                await self.notifier.notify(
                    complaint.technician_id,
                    NotificationType.COMPLAINT_STATUS,
                    "Complaint Closed",
                    f"Complaint \"{complaint.title}\" was verified and closed",
                    complaint.id,
                )
            await self.audit.record(
                complaint.technician_id,
                AuditAction.COMPLAINT_CLOSED,
                f"Complaint {complaint.id} closed after OTP verification",
            )
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("OTP verification for complaint %s failed: %s", complaint_id, e, exc_info=True)
            return LifecycleResult(success=False, message=f"Failed to verify OTP: {e}")

        logger.info("Complaint %s closed", complaint_id)
        return LifecycleResult(
            success=True,
            message="Complaint closed",
            complaint_id=complaint_id,
            status=ComplaintStatus.CLOSED.value,
        )
