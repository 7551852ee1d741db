"""Internal dispatch engine endpoints.

Thin wrappers over ``DispatchEngine`` for the request handlers of the
complaint portal. Guarded by the internal token; end-user authentication
happens upstream.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from maintenance_dispatch.app.routes.scheduler import verify_internal_token
from maintenance_dispatch.domain.enums import ComplaintActor, Severity
from maintenance_dispatch.domain.schemas import (
    AvailabilityUpdate,
    CleaningTaskStatusUpdate,
    ComplaintStatusUpdate,
    DailyTaskRequest,
    EmergencyStatusUpdate,
    OTPVerification,
)
from maintenance_dispatch.infra.database import get_db
from maintenance_dispatch.services.dispatch_engine import DispatchEngine

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/internal/dispatch",
    tags=["dispatch"],
    dependencies=[Depends(verify_internal_token)],
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ClassifyRequest(BaseModel):
    title: str
    description: str = ""
    asset_type: Optional[str] = None


class ComplaintCreateRequest(BaseModel):
    student_id: str
    title: str
    description: str = ""
    category: str
    asset_id: Optional[str] = None
    room_id: Optional[str] = None
    classroom_id: Optional[str] = None
    severity: Optional[Severity] = None


class ComplaintReviewRequest(BaseModel):
    actor: ComplaintActor
    accept: bool
    reason: Optional[str] = None


class EmergencyCreateRequest(BaseModel):
    type: str
    location: Union[str, dict]
    description: Optional[str] = None
    reporter_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _raise_on_failure(result):
    """Translate a failed engine result into an HTTP error."""
    if result.success:
        return result
    status_code = 404 if "not found" in result.message.lower() else 400
    raise HTTPException(status_code=status_code, detail=result.message)


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------


@router.post("/classify")
async def classify(body: ClassifyRequest, db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    severity = engine.classify_priority(body.title, body.description, body.asset_type)
    return {"severity": severity.value}


@router.post("/complaints", status_code=201)
async def submit_complaint(body: ComplaintCreateRequest, db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    result = await engine.lifecycle.submit_complaint(
        body.student_id,
        body.title,
        body.description,
        body.category,
        asset_id=body.asset_id,
        room_id=body.room_id,
        classroom_id=body.classroom_id,
        severity=body.severity,
    )
    if not result.success and result.complaint_id:
        # Duplicate for the same location
        raise HTTPException(status_code=409, detail=result.message)
    return _raise_on_failure(result)


@router.post("/complaints/{complaint_id}/review")
async def review_complaint(
    complaint_id: str,
    body: ComplaintReviewRequest,
    db: AsyncSession = Depends(get_db),
):
    engine = DispatchEngine.from_session(db)
    result = await engine.lifecycle.review_complaint(complaint_id, body.actor, body.accept, body.reason)
    return _raise_on_failure(result)


@router.post("/complaints/{complaint_id}/assign")
async def assign_complaint(complaint_id: str, db: AsyncSession = Depends(get_db)):
    """Run auto-assignment. "No staff available" is a 200 with ``assigned: false``."""
    engine = DispatchEngine.from_session(db)
    result = await engine.assign_complaint(complaint_id)
    return _raise_on_failure(result)


@router.post("/complaints/{complaint_id}/status")
async def update_complaint_status(
    complaint_id: str,
    body: ComplaintStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    engine = DispatchEngine.from_session(db)
    result = await engine.lifecycle.update_status(
        complaint_id,
        body.status,
        body.actor,
        notes=body.notes,
        evidence=body.evidence,
        staff_id=body.staff_id,
        assignee_id=body.assignee_id,
    )
    return _raise_on_failure(result)


@router.post("/complaints/{complaint_id}/verify-otp")
async def verify_otp(complaint_id: str, body: OTPVerification, db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    result = await engine.lifecycle.verify_otp(complaint_id, body.otp)
    return _raise_on_failure(result)


# ---------------------------------------------------------------------------
# Staff
# ---------------------------------------------------------------------------


@router.put("/staff/{staff_id}/availability")
async def update_availability(
    staff_id: str,
    body: AvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
):
    engine = DispatchEngine.from_session(db)
    result = await engine.on_staff_availability_changed(
        staff_id, body.role, body.is_available, actor_id=body.actor_id,
    )
    return _raise_on_failure(result)


# ---------------------------------------------------------------------------
# Cleaning tasks
# ---------------------------------------------------------------------------


@router.post("/cleaning-tasks/generate")
async def generate_cleaning_tasks(body: DailyTaskRequest, db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    return await engine.generate_daily_cleaning_tasks(body.scheduled_date)


@router.post("/cleaning-tasks/{task_id}/status")
async def update_cleaning_task_status(
    task_id: str,
    body: CleaningTaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    engine = DispatchEngine.from_session(db)
    result = await engine.cleaning.update_task_status(task_id, body.status, body.cleaner_id, body.notes)
    return _raise_on_failure(result)


# ---------------------------------------------------------------------------
# Emergencies
# ---------------------------------------------------------------------------


@router.post("/emergencies", status_code=201)
async def report_emergency(body: EmergencyCreateRequest, db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    result = await engine.emergencies.report_emergency(
        body.type, body.location, body.description, body.reporter_id,
    )
    return _raise_on_failure(result)


@router.post("/emergencies/{emergency_id}/status")
async def update_emergency_status(
    emergency_id: str,
    body: EmergencyStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    engine = DispatchEngine.from_session(db)
    result = await engine.emergencies.update_status(emergency_id, body.status, body.actor_id)
    return _raise_on_failure(result)


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------


@router.post("/sweeps/sla")
async def run_sla_sweep(db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    breached = await engine.run_sla_sweep()
    return {"ok": True, "breached": breached}


@router.post("/sweeps/escalation")
async def run_escalation_sweep(db: AsyncSession = Depends(get_db)):
    engine = DispatchEngine.from_session(db)
    escalated = await engine.run_escalation_sweep()
    return {"ok": True, "escalated": escalated}
