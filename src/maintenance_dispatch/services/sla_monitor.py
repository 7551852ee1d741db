"""Periodic SLA breach and emergency escalation sweeps."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from maintenance_dispatch.domain.enums import AuditAction, NotificationType
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.complaint_state_machine import SLA_STOPPED_STATES
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.priority_classifier import (
    hours_since,
    is_sla_breached,
    parse_severity,
    sla_hours_for,
)
from maintenance_dispatch.services.staff_directory import StaffDirectory

logger = logging.getLogger(__name__)

EMERGENCY_RESPONSE_WINDOW_MINUTES = 5


class SLAMonitor:
    """Raises breach notifications for slow complaints and escalates ignored emergencies."""

    def __init__(
        self,
        repository: DispatchRepository,
        directory: StaffDirectory,
        notifier: Notifier,
        audit: AuditLogger,
        renotify_hours: float = 24,
        response_window_minutes: int = EMERGENCY_RESPONSE_WINDOW_MINUTES,
    ):
        self.repository = repository
        self.directory = directory
        self.notifier = notifier
        self.audit = audit
        self.renotify_hours = renotify_hours
        self.response_window_minutes = response_window_minutes

    def _recently_notified(self, last_notified_at: Optional[datetime], now: datetime) -> bool:
        if not self.renotify_hours or last_notified_at is None:
            return False
        return hours_since(last_notified_at, now) < self.renotify_hours

    async def run_sla_sweep(self, now: Optional[datetime] = None) -> int:
        """Check every complaint whose SLA clock is still running.

        Breaches are recomputed on every run. Returns the number of breached
        complaints found; notifications go out at most once per
        ``renotify_hours`` per complaint (every run when it is 0).
        """
        now = now or datetime.now(timezone.utc)
        complaints = await self.repository.list_complaints_excluding([s.value for s in SLA_STOPPED_STATES])

        breached = 0
        notified = 0
        admin_ids: Optional[list[str]] = None

        try:
            for complaint in complaints:
                if complaint.created_at is None:
                    continue
                if not is_sla_breached(complaint.created_at, complaint.severity, now):
                    continue
                breached += 1

                if self._recently_notified(complaint.last_sla_notified_at, now):
                    continue

                if admin_ids is None:
                    admin_ids = await self.directory.admin_ids()

                severity = parse_severity(complaint.severity)
                elapsed = hours_since(complaint.created_at, now)
                message = (
                    f"Complaint \"{complaint.title}\" ({severity.value}) has been open for "
                    f"{elapsed:.1f}h, exceeding its {sla_hours_for(severity):g}h SLA "
                    f"(status: {complaint.status})"
                )
                recipients = list(admin_ids)
                if complaint.technician_id and complaint.technician_id not in recipients:
                    recipients.append(complaint.technician_id)

                await self.notifier.notify_many(
                    recipients, NotificationType.SLA_BREACH, "SLA Breach", message, complaint.id,
                )
                complaint.last_sla_notified_at = now
                notified += 1
                logger.info("SLA breach: complaint=%s, severity=%s, elapsed=%.1fh", complaint.id, severity.value, elapsed)

            await self.repository.commit()
        except SQLAlchemyError as e:
            await self.repository.rollback()
            logger.error("SLA sweep failed: %s", e, exc_info=True)

        if breached:
            logger.info("SLA sweep: %d breached, %d notified", breached, notified)
        return breached

    async def run_escalation_sweep(self, now: Optional[datetime] = None) -> int:
        """Escalate triggered emergencies nobody responded to within the window.

        Single level only: a level-1 emergency is never escalated again.
        Returns the number escalated.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=self.response_window_minutes)
        # SQLite hands back naive datetimes; compare in naive UTC
        pending = await self.repository.list_unescalated_emergencies(cutoff.replace(tzinfo=None))
        if not pending:
            return 0

        recipient_ids, system_actor = await self.directory.admin_and_warden_ids()
        emergency_ids = [e.id for e in pending]

        escalated = 0
        for emergency_id in emergency_ids:
            try:
                emergency = await self.repository.get_emergency(emergency_id)
                if emergency is None or emergency.escalation_level != 0:
                    continue

                emergency.escalation_level = 1
                minutes = hours_since(emergency.reported_at, now) * 60
                await self.notifier.notify_many(
                    recipient_ids,
                    NotificationType.EMERGENCY_ESCALATED,
                    "EMERGENCY ESCALATION",
                    f"{emergency.type} emergency at {emergency.location} unanswered for "
                    f"{minutes:.0f} minutes. Immediate attention required!",
                    emergency.id,
                    related_type="emergency",
                )
                await self.audit.record(
                    system_actor,
                    AuditAction.EMERGENCY_ESCALATED,
                    f"Emergency {emergency.id} escalated to level 1 (no response after "
                    f"{self.response_window_minutes} minutes)",
                )
                await self.repository.commit()
                escalated += 1
                logger.warning("Emergency %s escalated to level 1", emergency.id)
            except SQLAlchemyError as e:
                await self.repository.rollback()
                logger.error("Escalation of emergency %s failed: %s", emergency_id, e)

        return escalated
