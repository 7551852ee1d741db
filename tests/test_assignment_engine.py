"""Tests for auto-assignment: skill routing, locality preference, waiting pool."""

from datetime import datetime, timedelta, timezone

import pytest

from maintenance_dispatch.domain.enums import ComplaintCategory, Skill, StaffRole
from maintenance_dispatch.domain.models import Notification
from maintenance_dispatch.services.assignment_engine import (
    CATEGORY_ROUTING,
    categories_for_skill,
)

NOW = datetime.now(timezone.utc)


class TestRoutingTable:
    def test_every_category_is_routed(self):
        assert set(CATEGORY_ROUTING) == set(ComplaintCategory)

    def test_cleanliness_goes_to_cleaners(self):
        assert CATEGORY_ROUTING[ComplaintCategory.CLEANLINESS] == (Skill.CLEANER, StaffRole.CLEANER)

    def test_it_skill_covers_legacy_label(self):
        labels = categories_for_skill(Skill.IT_TECHNICIAN)
        assert {"IT/Network", "Wifi", "IT / Network"} <= set(labels)


class TestSkillMatching:
    async def test_selects_only_matching_skill(self, dispatch, make_technician, make_complaint):
        await make_technician(skill="Plumber", area="A")
        electrician = await make_technician(skill="Electrician", area="B")
        complaint = await make_complaint(category="Electrical", building="A")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.success and result.assigned
        assert result.assigned_to == electrician.user_id

    async def test_cleanliness_routes_to_cleaner(self, dispatch, make_technician, make_cleaner, make_complaint):
        await make_technician(skill="Maintenance Technician", area="A")
        cleaner = await make_cleaner(area="A")
        complaint = await make_complaint(category="Cleanliness", building="A")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.assigned_to == cleaner.user_id

    async def test_inactive_and_unavailable_staff_skipped(self, dispatch, make_technician, make_complaint):
        await make_technician(skill="Electrician", area="A", is_active=False)
        await make_technician(skill="Electrician", area="A", is_available=False)
        fallback = await make_technician(skill="Electrician", area="C")
        complaint = await make_complaint(category="Electrical", building="A")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.assigned_to == fallback.user_id


class TestOrdering:
    async def test_longest_available_wins(self, dispatch, make_technician, make_complaint):
        await make_technician(skill="Electrician", area="X", last_availability_update=NOW - timedelta(hours=1))
        veteran = await make_technician(skill="Electrician", area="Y", last_availability_update=NOW - timedelta(hours=5))
        complaint = await make_complaint(category="Electrical", building="A")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.assigned_to == veteran.user_id

    async def test_locality_beats_recency(self, dispatch, make_technician, make_complaint):
        await make_technician(skill="Electrician", area="B", last_availability_update=NOW - timedelta(hours=10))
        local = await make_technician(skill="Electrician", area="A", last_availability_update=NOW - timedelta(minutes=5))
        complaint = await make_complaint(category="Electrical", building="A")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.assigned_to == local.user_id

    async def test_falls_back_to_other_building(self, dispatch, make_technician, make_complaint, repository):
        """No electrician in building A, one in building B: B gets it instead of waiting."""
        remote = await make_technician(skill="Electrician", area="B")
        complaint = await make_complaint(category="Electrical", building="A")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.assigned is True
        assert result.assigned_to == remote.user_id
        stored = await repository.get_complaint(complaint.id, refresh=True)
        assert stored.status == "assigned"

    async def test_room_locality_uses_block(self, dispatch, make_technician, make_room, make_complaint):
        await make_technician(skill="Plumber", area="A")
        hostel = await make_technician(skill="Plumber", area="Hostel-2")
        room = await make_room(block="Hostel-2")
        complaint = await make_complaint(category="Plumbing", room_id=room.id)

        result = await dispatch.assign_complaint(complaint.id)

        assert result.assigned_to == hostel.user_id


class TestAssignmentSideEffects:
    async def test_assignment_writes(
        self, dispatch, repository, make_technician, make_complaint, notifications_for, audit_entries,
    ):
        tech = await make_technician(skill="Electrician", area="A")
        complaint = await make_complaint(category="Electrical", building="A")

        await dispatch.assign_complaint(complaint.id)

        stored = await repository.get_complaint(complaint.id, refresh=True)
        assert stored.technician_id == tech.user_id
        assert stored.assigned_at is not None
        asset = await repository.get_location(stored)
        assert asset.status == "under_maintenance"
        assert len(await notifications_for(tech.user_id, "assignment")) == 1
        assert len(await audit_entries("COMPLAINT_AUTO_ASSIGNED")) == 1
        history = await repository.list_status_history(complaint.id)
        assert [h.status for h in history] == ["assigned"]


class TestNoCandidate:
    async def test_marks_waiting_and_notifies_each_admin_once(
        self, dispatch, repository, make_user, make_complaint, notifications_for,
    ):
        admins = [await make_user(role="admin"), await make_user(role="admin")]
        await make_user(role="admin", is_active=False)
        complaint = await make_complaint(category="Plumbing")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.success is True
        assert result.assigned is False
        stored = await repository.get_complaint(complaint.id, refresh=True)
        assert stored.status == "waiting_for_skilled_staff"
        assert stored.technician_id is None
        for admin in admins:
            assert len(await notifications_for(admin.id, "warning")) == 1

    async def test_retry_while_waiting_does_not_renotify(
        self, dispatch, make_user, make_complaint, notifications_for,
    ):
        admin = await make_user(role="admin")
        complaint = await make_complaint(category="Plumbing")

        await dispatch.assign_complaint(complaint.id)
        await dispatch.assign_complaint(complaint.id)

        assert len(await notifications_for(admin.id, "warning")) == 1


class TestPreconditions:
    async def test_not_found(self, dispatch):
        result = await dispatch.assign_complaint("missing")
        assert result.success is False
        assert "not found" in result.message.lower()

    @pytest.mark.parametrize("status", ["reported", "waiting_warden_approval", "in_progress", "closed"])
    async def test_requires_approved_path(self, dispatch, repository, make_technician, make_complaint, status):
        await make_technician(skill="Electrician")
        complaint = await make_complaint(category="Electrical", status=status)

        result = await dispatch.assign_complaint(complaint.id)

        assert result.success is False
        assert result.assigned is False
        stored = await repository.get_complaint(complaint.id, refresh=True)
        assert stored.status == status
        assert stored.technician_id is None

    async def test_missing_category(self, dispatch, make_complaint):
        complaint = await make_complaint(category=None)
        result = await dispatch.assign_complaint(complaint.id)
        assert result.success is False

    async def test_unmapped_category_is_failure(self, dispatch, repository, make_complaint):
        complaint = await make_complaint(category="Gardening")

        result = await dispatch.assign_complaint(complaint.id)

        assert result.success is False
        stored = await repository.get_complaint(complaint.id, refresh=True)
        assert stored.status == "approved"


class TestRetryWaiting:
    async def test_oldest_first_and_stops_when_exhausted(
        self, dispatch, repository, make_technician, make_complaint,
    ):
        older = await make_complaint(category="Wifi", status="waiting_for_skilled_staff", created_at=NOW - timedelta(hours=3))
        newer = await make_complaint(category="IT/Network", status="waiting_for_skilled_staff", created_at=NOW - timedelta(hours=1))
        other_skill = await make_complaint(category="Plumbing", status="waiting_for_skilled_staff")
        await make_technician(skill="IT Technician")

        assigned = await dispatch.assignment.retry_waiting_assignments(Skill.IT_TECHNICIAN)

        # One technician can take every complaint; the pool stays available
        assert assigned == 2
        assert (await repository.get_complaint(older.id, refresh=True)).status == "assigned"
        assert (await repository.get_complaint(newer.id, refresh=True)).status == "assigned"
        assert (await repository.get_complaint(other_skill.id, refresh=True)).status == "waiting_for_skilled_staff"

    async def test_category_casing_and_spacing_ignored(
        self, dispatch, repository, make_technician, make_complaint,
    ):
        lower = await make_complaint(category="electrical", status="waiting_for_skilled_staff")
        spaced = await make_complaint(category=" IT / Network ", status="waiting_for_skilled_staff")
        tech = await make_technician(skill="Electrician")
        await make_technician(skill="IT Technician")

        assert await dispatch.assignment.retry_waiting_assignments(Skill.ELECTRICIAN) == 1
        assert await dispatch.assignment.retry_waiting_assignments(Skill.IT_TECHNICIAN) == 1
        assert (await repository.get_complaint(lower.id, refresh=True)).technician_id == tech.user_id
        assert (await repository.get_complaint(spaced.id, refresh=True)).status == "assigned"


class TestFailureHandling:
    async def test_persistence_failure_rolls_back_whole_attempt(
        self, dispatch, db_session, repository, make_technician, make_complaint,
        notifications_for, audit_entries, fail_commit,
    ):
        tech = await make_technician(skill="Electrician", area="A")
        complaint = await make_complaint(category="Electrical", building="A")
        tech_id, complaint_id = tech.user_id, complaint.id
        await db_session.commit()
        fail_commit(1)

        result = await dispatch.assign_complaint(complaint_id)

        assert result.success is False
        assert result.assigned is False
        stored = await repository.get_complaint(complaint_id, refresh=True)
        assert stored.status == "approved"
        assert stored.technician_id is None
        assert stored.assigned_at is None
        assert (await repository.get_location(stored)).status == "operational"
        assert await repository.list_status_history(complaint_id) == []
        assert await notifications_for(tech_id) == []
        assert await audit_entries("COMPLAINT_AUTO_ASSIGNED") == []

    async def test_notification_failure_does_not_fail_assignment(
        self, dispatch, repository, monkeypatch, make_technician, make_complaint, notifications_for, audit_entries,
    ):
        tech = await make_technician(skill="Electrician", area="A")
        complaint = await make_complaint(category="Electrical", building="A")
        original_add = repository.add

        def _add(obj):
            if isinstance(obj, Notification):
                raise RuntimeError("notification sink unavailable")
            original_add(obj)

        monkeypatch.setattr(repository, "add", _add)

        result = await dispatch.assign_complaint(complaint.id)

        assert result.success is True
        assert result.assigned_to == tech.user_id
        stored = await repository.get_complaint(complaint.id, refresh=True)
        assert stored.status == "assigned"
        assert await notifications_for(tech.user_id) == []
        assert len(await audit_entries("COMPLAINT_AUTO_ASSIGNED")) == 1
