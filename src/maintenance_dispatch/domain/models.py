"""SQLAlchemy ORM models for maintenance dispatch.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)

Timestamps default on the Python side so that values are populated on the
instance at flush time (no refresh round-trip under AsyncSession).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from maintenance_dispatch.infra.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Users and staff
# ---------------------------------------------------------------------------


class User(Base):
    """Platform account. Staff records hang off a user row."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="student")  # student, admin, warden, technician, cleaner
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=_utcnow)


class Technician(Base):
    """Technician staff record: one skill, one home area."""

    __tablename__ = "technicians"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    skill_type = Column(String(50), nullable=False, index=True)
    assigned_area = Column(String(100), nullable=True)
    is_available = Column(Boolean, default=True)
    last_availability_update = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    user = relationship("User", lazy="selectin")


class Cleaner(Base):
    """Cleaner staff record. The skill is implicitly ``Cleaner``."""

    __tablename__ = "cleaners"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    assigned_area = Column(String(100), nullable=True)
    is_available = Column(Boolean, default=True)
    last_availability_update = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    user = relationship("User", lazy="selectin")


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


class Asset(Base):
    """Physical asset (projector, AC unit, water cooler...) tagged with a building."""

    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)
    building = Column(String(100), nullable=True)
    floor = Column(String(20), nullable=True)
    room = Column(String(50), nullable=True)
    status = Column(String(30), default="operational")
    created_at = Column(DateTime, default=_utcnow)


class Room(Base):
    """Hostel room, grouped by block."""

    __tablename__ = "rooms"

    id = Column(String(36), primary_key=True, default=_uuid)
    room_number = Column(String(20), nullable=False)
    block = Column(String(100), nullable=True)
    floor = Column(String(20), nullable=True)
    status = Column(String(30), default="operational")
    created_at = Column(DateTime, default=_utcnow)


class Classroom(Base):
    """Academic classroom, grouped by building."""

    __tablename__ = "classrooms"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False)
    building = Column(String(100), nullable=True)
    status = Column(String(30), default="operational")
    created_at = Column(DateTime, default=_utcnow)


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------


class Complaint(Base):
    """Maintenance complaint against exactly one asset, room or classroom."""

    __tablename__ = "complaints"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(50), nullable=True)
    severity = Column(String(20), default="medium")
    status = Column(String(40), default="reported", index=True)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    # Staff user id: technician or cleaner
    technician_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    asset_id = Column(String(36), ForeignKey("assets.id"), nullable=True)
    room_id = Column(String(36), ForeignKey("rooms.id"), nullable=True)
    classroom_id = Column(String(36), ForeignKey("classrooms.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    work_note = Column(Text, nullable=True)
    work_proof = Column(JSON, nullable=True)
    otp = Column(String(4), nullable=True)
    otp_verified = Column(Boolean, default=False)
    last_sla_notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    assigned_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class StatusHistory(Base):
    """One row per complaint status transition."""

    __tablename__ = "status_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    complaint_id = Column(String(36), ForeignKey("complaints.id"), nullable=False, index=True)
    status = Column(String(40), nullable=False)
    message = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=_utcnow)


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


class CleaningTask(Base):
    """Daily cleaning task for one classroom or hostel room."""

    __tablename__ = "cleaning_tasks"
    __table_args__ = (
        UniqueConstraint("classroom_id", "scheduled_date", name="uq_cleaning_task_classroom_date"),
        UniqueConstraint("room_id", "scheduled_date", name="uq_cleaning_task_room_date"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    classroom_id = Column(String(36), ForeignKey("classrooms.id"), nullable=True)
    room_id = Column(String(36), ForeignKey("rooms.id"), nullable=True)
    scheduled_date = Column(Date, nullable=False, index=True)
    # Cleaner's user id
    cleaner_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(40), default="pending_assignment", index=True)
    assigned_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)


# ---------------------------------------------------------------------------
# Emergencies
# ---------------------------------------------------------------------------


class Emergency(Base):
    """SOS event. escalation_level only ever increases."""

    __tablename__ = "emergencies"

    id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(String(50), nullable=False)
    location = Column(Text, nullable=False)  # plain text or JSON {"text": ..., "lat": ..., "lng": ...}
    description = Column(Text, nullable=True)
    status = Column(String(20), default="triggered", index=True)
    escalation_level = Column(Integer, default=0)
    reporter_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    reported_at = Column(DateTime, default=_utcnow)
    responded_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------------------------
# Notification / audit sink
# ---------------------------------------------------------------------------


class Notification(Base):
    """Append-only user notification."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(String(36), nullable=True)
    related_type = Column(String(20), default="complaint")  # complaint, cleaning_task, emergency
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=_utcnow)


class AuditLog(Base):
    """Append-only audit trail entry."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    action = Column(String(60), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=_utcnow)
