"""Domain enumerations for maintenance dispatch.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    """Account role of a platform user."""

    STUDENT = "student"
    ADMIN = "admin"
    WARDEN = "warden"
    TECHNICIAN = "technician"
    CLEANER = "cleaner"


class StaffRole(str, Enum):
    """Kind of staff record a complaint or task is routed to."""

    TECHNICIAN = "technician"
    CLEANER = "cleaner"


class Skill(str, Enum):
    """Staff capability tag derived from a complaint category."""

    ELECTRICIAN = "Electrician"
    PLUMBER = "Plumber"
    IT_TECHNICIAN = "IT Technician"
    MAINTENANCE_TECHNICIAN = "Maintenance Technician"
    CLEANER = "Cleaner"


class ComplaintCategory(str, Enum):
    """Issue category selected at intake."""

    ELECTRICAL = "Electrical"
    PLUMBING = "Plumbing"
    FURNITURE = "Furniture"
    IT_NETWORK = "IT/Network"
    WIFI = "Wifi"
    CLEANLINESS = "Cleanliness"
    OTHER = "Other"

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["ComplaintCategory"]:
        """Parse a stored category label, tolerating spacing variants like "IT / Network"."""
        if not label:
            return None
        normalized = label.replace(" / ", "/").strip().lower()
        for category in cls:
            if category.value.lower() == normalized:
                return category
        return None


class Severity(str, Enum):
    """Complaint urgency tier driving SLA thresholds."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComplaintStatus(str, Enum):
    """Complaint lifecycle states."""

    REPORTED = "reported"
    WAITING_WARDEN_APPROVAL = "waiting_warden_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    WAITING_FOR_SKILLED_STAFF = "waiting_for_skilled_staff"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    WORK_SUBMITTED = "work_submitted"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ComplaintActor(str, Enum):
    """Who is driving a complaint transition."""

    STUDENT = "student"
    ADMIN = "admin"
    WARDEN = "warden"
    STAFF = "staff"
    SYSTEM = "system"


class CleaningTaskStatus(str, Enum):
    """Cleaning task lifecycle states."""

    PENDING_ASSIGNMENT = "pending_assignment"
    WAITING_FOR_AVAILABILITY = "waiting_for_availability"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class EmergencyStatus(str, Enum):
    """Emergency lifecycle states."""

    TRIGGERED = "triggered"
    RESPONDING = "responding"
    RESOLVED = "resolved"


class LocationStatus(str, Enum):
    """Operational state of an asset, room or classroom."""

    OPERATIONAL = "operational"
    UNDER_MAINTENANCE = "under_maintenance"
    FAULTY = "faulty"
    DECOMMISSIONED = "decommissioned"


class NotificationType(str, Enum):
    """Type tag stored on outbound notifications."""

    NEW_COMPLAINT = "new_complaint"
    COMPLAINT_ASSIGNED = "assignment"
    COMPLAINT_STATUS = "complaint_status"
    NO_STAFF_AVAILABLE = "warning"
    SLA_BREACH = "sla_breach"
    TASK_REASSIGNED = "task_reassigned"
    EMERGENCY_ALERT = "emergency_alert"
    EMERGENCY_ASSIGNED = "emergency_assigned"
    EMERGENCY_BROADCAST = "emergency_escalation"
    EMERGENCY_ESCALATED = "emergency_escalated"


class AuditAction(str, Enum):
    """Action names written to the audit log."""

    COMPLAINT_AUTO_ASSIGNED = "COMPLAINT_AUTO_ASSIGNED"
    COMPLAINT_REASSIGNED = "COMPLAINT_REASSIGNED"
    COMPLAINT_RELEASED = "COMPLAINT_RELEASED"
    COMPLAINT_STATUS_UPDATED = "COMPLAINT_STATUS_UPDATED"
    COMPLAINT_CLOSED = "COMPLAINT_CLOSED"
    AVAILABILITY_UPDATED = "STAFF_AVAILABILITY_UPDATED"
    CLEANING_TASK_REASSIGNED = "CLEANING_TASK_REASSIGNED"
    CLEANING_TASK_RELEASED = "CLEANING_TASK_RELEASED"
    CLEANING_TASKS_GENERATED = "CLEANING_TASKS_GENERATED"
    EMERGENCY_AUTO_ASSIGNED = "EMERGENCY_AUTO_ASSIGNED"
    EMERGENCY_ESCALATED = "EMERGENCY_ESCALATED"
    EMERGENCY_STATUS_UPDATED = "EMERGENCY_STATUS_UPDATED"
