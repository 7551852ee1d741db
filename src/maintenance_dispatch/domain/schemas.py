"""Pydantic v2 schemas for engine results and internal API requests."""

from datetime import date

from pydantic import BaseModel, Field

from maintenance_dispatch.domain.enums import (
    CleaningTaskStatus,
    ComplaintActor,
    ComplaintStatus,
    EmergencyStatus,
    StaffRole,
)


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------


class AssignmentResult(BaseModel):
    """Outcome of one auto-assignment attempt.

    ``success`` is False only for NotFound / InvalidState / persistence
    failures; "no candidate" is a successful, unassigned outcome.
    """

    success: bool
    assigned: bool
    message: str
    assigned_to: str | None = None
    staff_name: str | None = None


class AvailabilityChangeResult(BaseModel):
    """Summary of the work moved by one availability flip."""

    success: bool
    message: str
    backfilled_tasks: int = 0
    retried_complaints: int = 0
    reassigned_tasks: int = 0
    released_tasks: int = 0
    reassigned_complaints: int = 0
    released_complaints: int = 0
    failed_items: int = 0


class DailyTaskResult(BaseModel):
    """Outcome of daily cleaning task generation."""

    scheduled_date: date
    created: int = 0
    skipped: int = 0
    assigned: int = 0
    waiting: int = 0


class CleaningTaskResult(BaseModel):
    """Outcome of a cleaning task status update."""

    success: bool
    message: str
    task_id: str | None = None
    status: str | None = None


class LifecycleResult(BaseModel):
    """Outcome of a complaint lifecycle operation."""

    success: bool
    message: str
    complaint_id: str | None = None
    status: str | None = None
    otp: str | None = None


class EmergencyResult(BaseModel):
    """Outcome of reporting or updating an emergency."""

    success: bool
    message: str
    emergency_id: str | None = None
    notified_technicians: int = 0


# ---------------------------------------------------------------------------
# Internal API requests
# ---------------------------------------------------------------------------


class AvailabilityUpdate(BaseModel):
    role: StaffRole
    is_available: bool
    actor_id: str | None = None


class DailyTaskRequest(BaseModel):
    scheduled_date: date | None = None


class CleaningTaskStatusUpdate(BaseModel):
    status: CleaningTaskStatus
    cleaner_id: str | None = None
    notes: str | None = None


class ComplaintStatusUpdate(BaseModel):
    status: ComplaintStatus
    actor: ComplaintActor
    notes: str | None = None
    evidence: list[str] = Field(default_factory=list)
    staff_id: str | None = None
    assignee_id: str | None = None


class OTPVerification(BaseModel):
    otp: str = Field(min_length=4, max_length=4)


class EmergencyStatusUpdate(BaseModel):
    status: EmergencyStatus
    actor_id: str | None = None
