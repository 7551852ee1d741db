"""Complaint state machine: validates lifecycle transitions per actor.

``closed`` is absent from the transition map: the only way in
is OTP verification, handled by ``ComplaintLifecycleService.verify_otp``.
"""

from maintenance_dispatch.domain.enums import ComplaintActor, ComplaintStatus


class InvalidTransitionError(Exception):
    """Raised when a complaint state transition is not allowed."""

    def __init__(
        self,
        current_status: ComplaintStatus,
        target_status: ComplaintStatus,
        reason: str,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {current_status.value} to {target_status.value}: {reason}"
        )


# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_actors}
# ---------------------------------------------------------------------------

S = ComplaintStatus
A = ComplaintActor

TRANSITION_MAP: dict[ComplaintStatus, dict[ComplaintStatus, set[ComplaintActor]]] = {
    S.REPORTED: {
        S.APPROVED: {A.ADMIN},
        S.REJECTED: {A.ADMIN},
    },
    S.WAITING_WARDEN_APPROVAL: {
        S.APPROVED: {A.WARDEN, A.ADMIN},
        S.REJECTED: {A.WARDEN, A.ADMIN},
    },
    S.APPROVED: {
        S.ASSIGNED: {A.SYSTEM, A.ADMIN},
        S.WAITING_FOR_SKILLED_STAFF: {A.SYSTEM},
    },
    S.WAITING_FOR_SKILLED_STAFF: {
        S.ASSIGNED: {A.SYSTEM, A.ADMIN},
    },
    S.ASSIGNED: {
        S.IN_PROGRESS: {A.STAFF},
        S.ASSIGNED: {A.SYSTEM, A.ADMIN},  # reassignment to another staff member
        S.WAITING_FOR_SKILLED_STAFF: {A.SYSTEM},  # owner went unavailable, nobody to take over
    },
    S.IN_PROGRESS: {
        S.WORK_SUBMITTED: {A.STAFF},
        S.RESOLVED: {A.STAFF, A.ADMIN},
    },
    S.WORK_SUBMITTED: {
        S.RESOLVED: {A.ADMIN},
        S.IN_PROGRESS: {A.ADMIN},  # rework required
    },
    S.RESOLVED: {
        S.IN_PROGRESS: {A.ADMIN},  # reopened; the OTP survives
    },
}

TERMINAL_STATES: set[ComplaintStatus] = {S.REJECTED, S.CLOSED}

# Statuses from which the assignment engine may run
ASSIGNABLE_STATES: set[ComplaintStatus] = {S.APPROVED, S.WAITING_FOR_SKILLED_STAFF}

# SLA clock stops here
SLA_STOPPED_STATES: set[ComplaintStatus] = {S.RESOLVED, S.CLOSED}

# Statuses that count as "open" for the one-complaint-per-location rule
NON_TERMINAL_STATES: set[ComplaintStatus] = {s for s in ComplaintStatus if s not in TERMINAL_STATES}


def parse_status(value) -> ComplaintStatus:
    if isinstance(value, ComplaintStatus):
        return value
    return ComplaintStatus(value)


class ComplaintStateMachine:
    """Validates complaint state transitions."""

    def validate_transition(
        self,
        current_status: ComplaintStatus,
        target_status: ComplaintStatus,
        actor: ComplaintActor,
    ) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not."""
        if current_status in TERMINAL_STATES:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"{current_status.value} is terminal",
            )

        if target_status == S.CLOSED:
            raise InvalidTransitionError(
                current_status,
                target_status,
                "Complaints close only through OTP verification",
            )

        allowed_targets = TRANSITION_MAP.get(current_status)
        if allowed_targets is None or target_status not in allowed_targets:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Transition from {current_status.value} to {target_status.value} is not allowed",
            )

        allowed_actors = allowed_targets[target_status]
        if actor not in allowed_actors:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Actor {actor.value} is not permitted for this transition "
                f"(allowed: {', '.join(sorted(a.value for a in allowed_actors))})",
            )

        return True

    def get_allowed_transitions(
        self,
        current_status: ComplaintStatus,
        actor: ComplaintActor,
    ) -> list[ComplaintStatus]:
        """Return list of valid next states for the given actor from the current status."""
        allowed_targets = TRANSITION_MAP.get(current_status, {})
        return [
            target for target, actors in allowed_targets.items()
            if actor in actors
        ]

    def can_verify_otp(self, current_status: ComplaintStatus) -> bool:
        return current_status == S.RESOLVED
