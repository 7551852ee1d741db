"""Emergency (SOS) reporting and response tracking."""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from maintenance_dispatch.domain.enums import (
    AuditAction,
    EmergencyStatus,
    NotificationType,
    Skill,
)
from maintenance_dispatch.domain.models import Emergency
from maintenance_dispatch.domain.schemas import EmergencyResult
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.staff_directory import StaffDirectory

logger = logging.getLogger(__name__)

MAX_RESPONDERS = 3
MAX_BROADCAST = 5

E = EmergencyStatus

# Forward-only: an answered emergency never goes back to triggered
EMERGENCY_TRANSITIONS: dict[EmergencyStatus, set[EmergencyStatus]] = {
    E.TRIGGERED: {E.RESPONDING, E.RESOLVED},
    E.RESPONDING: {E.RESOLVED},
}

ALL_TECHNICIAN_SKILLS = [
    Skill.ELECTRICIAN,
    Skill.PLUMBER,
    Skill.IT_TECHNICIAN,
    Skill.MAINTENANCE_TECHNICIAN,
]


def skills_for_emergency(emergency_type: str) -> list[Skill]:
    """Technician skills that should respond to an emergency of this type."""
    kind = (emergency_type or "").lower()
    if "fire" in kind:
        return [Skill.ELECTRICIAN, Skill.MAINTENANCE_TECHNICIAN]
    if "medical" in kind:
        return [Skill.MAINTENANCE_TECHNICIAN]
    if "electrical" in kind:
        return [Skill.ELECTRICIAN]
    if "lift" in kind or "elevator" in kind:
        return [Skill.ELECTRICIAN, Skill.MAINTENANCE_TECHNICIAN]
    return list(ALL_TECHNICIAN_SKILLS)


def location_text(location: Union[str, dict, None]) -> str:
    if isinstance(location, dict):
        return location.get("text") or ""
    return location or ""


class EmergencyService:
    """Dispatches responders for an SOS and records its progress."""

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

    async def report_emergency(
        self,
        type: str,
        location: Union[str, dict],
        description: Optional[str] = None,
        reporter_id: Optional[str] = None,
    ) -> EmergencyResult:
        """Record an emergency, page up to three matching technicians, alert admins.

        With nobody available the alert is broadcast to active technicians
        regardless of skill.
        """
        where = location_text(location)
        suffix = f" at {where}" if where else ""
        try:
            emergency = Emergency(
                id=str(uuid.uuid4()),
                type=type,
                location=json.dumps(location) if isinstance(location, dict) else location,
                description=description,
                status=EmergencyStatus.TRIGGERED.value,
                escalation_level=0,
                reporter_id=reporter_id,
            )
            self.repository.add(emergency)

            skills = skills_for_emergency(type)
            responders = await self.directory.find_responders(skills, MAX_RESPONDERS)

            for tech in responders:
                await self.notifier.notify(
                    tech.user_id,
                    NotificationType.EMERGENCY_ASSIGNED,
                    "EMERGENCY - IMMEDIATE RESPONSE REQUIRED",
                    f"{type} emergency{suffix}. Report immediately!",
                    emergency.id,
                    related_type="emergency",
                )

            if responders:
                names = ", ".join(t.name for t in responders)
                summary = f"Auto-assigned to: {names}"
                await self.audit.record(
                    responders[0].user_id,
                    AuditAction.EMERGENCY_AUTO_ASSIGNED,
                    f"Emergency {emergency.id} ({type}) auto-assigned to {names}",
                )
            else:
                summary = "NO AVAILABLE STAFF - manual intervention required"

            await self.notifier.notify_many(
                await self.directory.admin_ids(),
                NotificationType.EMERGENCY_ALERT,
                "EMERGENCY ALERT",
                f"{type} emergency{suffix}. {summary}",
                emergency.id,
                related_type="emergency",
            )

            if not responders:
                await self.notifier.notify_many(
                    await self.directory.active_technician_ids(MAX_BROADCAST),
                    NotificationType.EMERGENCY_BROADCAST,
                    "EMERGENCY ESCALATION - ALL STAFF ALERT",
                    f"{type} emergency{suffix}. No assigned staff available. Immediate assistance needed!",
                    emergency.id,
                    related_type="emergency",
                )

            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Failed to report %s emergency: %s", type, e, exc_info=True)
            return EmergencyResult(success=False, message=f"Failed to report emergency: {e}")

        logger.warning("Emergency %s (%s)%s reported: %s", emergency.id, type, suffix, summary)
        return EmergencyResult(
            success=True,
            message=summary,
            emergency_id=emergency.id,
            notified_technicians=len(responders),
        )

    async def update_status(
        self,
        emergency_id: str,
        status: EmergencyStatus,
        actor_id: Optional[str] = None,
    ) -> EmergencyResult:
        """Mark an emergency responding or resolved."""
        try:
            emergency = await self.repository.get_emergency(emergency_id)
            if emergency is None:
                return EmergencyResult(success=False, message="Emergency not found")

            if emergency.status == EmergencyStatus.RESOLVED.value:
                return EmergencyResult(
                    success=False, message="Emergency is already resolved", emergency_id=emergency_id,
                )

            current = EmergencyStatus(emergency.status)
            if status not in EMERGENCY_TRANSITIONS.get(current, set()):
                logger.warning("Refusing emergency %s transition %s -> %s", emergency_id, current.value, status.value)
                return EmergencyResult(
                    success=False,
                    message=f"Cannot move emergency from {current.value} to {status.value}",
                    emergency_id=emergency_id,
                )

            now = datetime.now(timezone.utc)
            emergency.status = status.value
            if status == EmergencyStatus.RESPONDING and emergency.responded_at is None:
                emergency.responded_at = now
            elif status == EmergencyStatus.RESOLVED:
                emergency.resolved_at = now

            if actor_id:
                await self.audit.record(
                    actor_id,
                    AuditAction.EMERGENCY_STATUS_UPDATED,
                    f"Emergency {emergency_id} status updated to {status.value}",
                )
            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("Failed to update emergency %s: %s", emergency_id, e, exc_info=True)
            return EmergencyResult(success=False, message=f"Failed to update emergency: {e}")

        logger.info("Emergency %s -> %s", emergency_id, status.value)
        return EmergencyResult(success=True, message=f"Emergency marked {status.value}", emergency_id=emergency_id)
