"""Read-only view over technician and cleaner records.

ORM rows are flattened into plain ``StaffMember`` values so callers can keep
using them after a commit or rollback without touching the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from maintenance_dispatch.domain.enums import Skill, StaffRole, UserRole
from maintenance_dispatch.infra.repository import DispatchRepository

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class StaffMember:
    user_id: str
    name: str
    role: StaffRole
    skill: str
    assigned_area: Optional[str]
    is_available: bool
    is_active: bool
    last_availability_update: Optional[datetime]
    created_at: Optional[datetime]

    @property
    def available_since(self) -> datetime:
        """Ordering key for "longest available": the last flip, else record creation."""
        return _aware(self.last_availability_update) or _aware(self.created_at) or _EPOCH


def availability_order(members: list[StaffMember]) -> list[StaffMember]:
    """Sort longest-available first; ties broken by user id."""
    return sorted(members, key=lambda m: (m.available_since, m.user_id))


def _from_record(record, role: StaffRole) -> StaffMember:
    user = record.user
    skill = record.skill_type if role == StaffRole.TECHNICIAN else Skill.CLEANER.value
    return StaffMember(
        user_id=record.user_id,
        name=user.name if user else record.user_id,
        role=role,
        skill=skill,
        assigned_area=record.assigned_area,
        is_available=bool(record.is_available),
        is_active=bool(user.is_active) if user else False,
        last_availability_update=record.last_availability_update,
        created_at=record.created_at,
    )


class StaffDirectory:
    """Queries the staff pool for candidates, alternates and notification targets."""

    def __init__(self, repository: DispatchRepository):
        self.repository = repository

    async def get(self, staff_id: str, role: StaffRole) -> Optional[StaffMember]:
        if role == StaffRole.TECHNICIAN:
            record = await self.repository.get_technician_by_user(staff_id)
        else:
            record = await self.repository.get_cleaner_by_user(staff_id)
        if record is None:
            return None
        return _from_record(record, role)

    async def find_staff(self, staff_id: str) -> Optional[StaffMember]:
        """Look ``staff_id`` up as a technician, then as a cleaner."""
        for role in (StaffRole.TECHNICIAN, StaffRole.CLEANER):
            member = await self.get(staff_id, role)
            if member is not None:
                return member
        return None

    async def find_candidates(self, role: StaffRole, skill: Skill) -> list[StaffMember]:
        """Available, active staff of ``role`` with ``skill``, longest-available first."""
        if role == StaffRole.TECHNICIAN:
            records = await self.repository.list_technicians(
                skills=[skill.value], available_only=True, active_only=True,
            )
        else:
            records = await self.repository.list_cleaners(available_only=True, active_only=True)
        return availability_order([_from_record(r, role) for r in records])

    async def find_responders(self, skills: list[Skill], limit: int) -> list[StaffMember]:
        """Available, active technicians holding any of ``skills``, longest-available first."""
        records = await self.repository.list_technicians(
            skills=[s.value for s in skills], available_only=True, active_only=True,
        )
        return availability_order([_from_record(r, StaffRole.TECHNICIAN) for r in records])[:limit]

    async def active_technician_ids(self, limit: int) -> list[str]:
        records = await self.repository.list_technicians(active_only=True)
        return [r.user_id for r in records[:limit]]

    async def find_alternates(self, member: StaffMember) -> list[StaffMember]:
        """Peers who can absorb ``member``'s work: same role, skill and area, ordered by user id."""
        if member.role == StaffRole.TECHNICIAN:
            records = await self.repository.list_technicians(
                skills=[member.skill], available_only=True, active_only=True,
            )
        else:
            records = await self.repository.list_cleaners(available_only=True, active_only=True)

        alternates = [
            _from_record(r, member.role)
            for r in records
            if r.user_id != member.user_id and r.assigned_area == member.assigned_area
        ]
        return sorted(alternates, key=lambda m: m.user_id)

    async def admin_ids(self) -> list[str]:
        users = await self.repository.list_users_by_roles([UserRole.ADMIN.value])
        return [u.id for u in users]

    async def warden_ids(self) -> list[str]:
        users = await self.repository.list_users_by_roles([UserRole.WARDEN.value])
        return [u.id for u in users]

    async def admin_and_warden_ids(self) -> tuple[list[str], Optional[str]]:
        """All active admins and wardens, plus the admin acting as system actor."""
        users = await self.repository.list_users_by_roles([UserRole.ADMIN.value, UserRole.WARDEN.value])
        system_actor = next((u.id for u in users if u.role == UserRole.ADMIN.value), None)
        if system_actor is None and users:
            system_actor = users[0].id
        return [u.id for u in users], system_actor
