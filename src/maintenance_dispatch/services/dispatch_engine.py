"""Dispatch engine facade.

Wires the services over one repository and exposes the operations request
handlers and the scheduler call. Build one per request / per sweep iteration:

    engine = DispatchEngine.from_session(db)
    result = await engine.assign_complaint(complaint_id)
"""

from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from maintenance_dispatch.app.config import get_settings
from maintenance_dispatch.domain.enums import Severity, StaffRole
from maintenance_dispatch.domain.schemas import (
    AssignmentResult,
    AvailabilityChangeResult,
    DailyTaskResult,
)
from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services import priority_classifier
from maintenance_dispatch.services.assignment_engine import AssignmentEngine
from maintenance_dispatch.services.availability_manager import AvailabilityManager
from maintenance_dispatch.services.cleaning_tasks import CleaningTaskService
from maintenance_dispatch.services.complaint_lifecycle import ComplaintLifecycleService
from maintenance_dispatch.services.emergency_service import EmergencyService
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.sla_monitor import SLAMonitor
from maintenance_dispatch.services.staff_directory import StaffDirectory


class DispatchEngine:
    """Staff assignment & escalation engine."""

    def __init__(
        self,
        repository: DispatchRepository,
        notifier: Notifier,
        audit: AuditLogger,
        sla_renotify_hours: float = 24,
        emergency_response_window_minutes: int = 5,
    ):
        self.repository = repository
        self.notifier = notifier
        self.audit = audit
        self.directory = StaffDirectory(repository)
        self.assignment = AssignmentEngine(repository, self.directory, notifier, audit)
        self.availability = AvailabilityManager(repository, self.directory, self.assignment, notifier, audit)
        self.lifecycle = ComplaintLifecycleService(repository, self.directory, self.assignment, notifier, audit)
        self.monitor = SLAMonitor(
            repository,
            self.directory,
            notifier,
            audit,
            renotify_hours=sla_renotify_hours,
            response_window_minutes=emergency_response_window_minutes,
        )
        self.cleaning = CleaningTaskService(repository, self.directory, notifier, audit)
        self.emergencies = EmergencyService(repository, self.directory, notifier, audit)

    @classmethod
    def from_session(cls, db: AsyncSession) -> "DispatchEngine":
        """Build an engine over ``db`` using the configured sweep policy."""
        settings = get_settings()
        repository = DispatchRepository(db)
        return cls(
            repository,
            Notifier(repository),
            AuditLogger(repository),
            sla_renotify_hours=settings.sla_renotify_hours,
            emergency_response_window_minutes=settings.emergency_response_window_minutes,
        )

    def classify_priority(
        self,
        title: Optional[str],
        description: Optional[str],
        asset_type: Optional[str] = None,
    ) -> Severity:
        return priority_classifier.classify_priority(title, description, asset_type)

    async def assign_complaint(self, complaint_id: str) -> AssignmentResult:
        return await self.assignment.assign_complaint(complaint_id)

    async def on_staff_availability_changed(
        self,
        staff_id: str,
        role: StaffRole,
        new_availability: bool,
        actor_id: Optional[str] = None,
    ) -> AvailabilityChangeResult:
        return await self.availability.on_staff_availability_changed(
            staff_id, role, new_availability, actor_id=actor_id,
        )

    async def run_sla_sweep(self) -> int:
        return await self.monitor.run_sla_sweep()

    async def run_escalation_sweep(self) -> int:
        return await self.monitor.run_escalation_sweep()

    async def generate_daily_cleaning_tasks(
        self,
        scheduled_date: Optional[date] = None,
        actor_id: Optional[str] = None,
    ) -> DailyTaskResult:
        return await self.cleaning.generate_daily_cleaning_tasks(scheduled_date, actor_id=actor_id)
