"""Tests for the SLA breach sweep and emergency escalation sweep."""

from datetime import datetime, timedelta, timezone

from maintenance_dispatch.infra.repository import DispatchRepository
from maintenance_dispatch.services.notification_service import AuditLogger, Notifier
from maintenance_dispatch.services.sla_monitor import SLAMonitor
from maintenance_dispatch.services.staff_directory import StaffDirectory

NOW = datetime.now(timezone.utc)


def _monitor(db_session, renotify_hours: float = 24) -> SLAMonitor:
    repository = DispatchRepository(db_session)
    return SLAMonitor(
        repository,
        StaffDirectory(repository),
        Notifier(repository),
        AuditLogger(repository),
        renotify_hours=renotify_hours,
    )


class TestSLASweep:
    async def test_high_complaint_five_hours_old_breaches(
        self, dispatch, make_user, make_technician, make_complaint, notifications_for,
    ):
        admin = await make_user(role="admin")
        tech = await make_technician()
        await make_complaint(
            status="assigned", severity="high", technician_id=tech.user_id, created_at=NOW - timedelta(hours=5),
        )

        breached = await dispatch.run_sla_sweep()

        assert breached == 1
        assert len(await notifications_for(admin.id, "sla_breach")) == 1
        assert len(await notifications_for(tech.user_id, "sla_breach")) == 1

    async def test_high_complaint_three_hours_old_is_fine(self, dispatch, make_user, make_complaint, notifications_for):
        admin = await make_user(role="admin")
        await make_complaint(status="assigned", severity="high", created_at=NOW - timedelta(hours=3))

        assert await dispatch.run_sla_sweep() == 0
        assert await notifications_for(admin.id) == []

    async def test_resolved_and_closed_are_skipped(self, dispatch, make_complaint):
        for status in ("resolved", "closed"):
            await make_complaint(status=status, severity="critical", created_at=NOW - timedelta(days=3))

        assert await dispatch.run_sla_sweep() == 0

    async def test_unassigned_breach_notifies_admins_only(self, dispatch, make_user, make_complaint, notifications_for):
        admin = await make_user(role="admin")
        await make_complaint(status="waiting_for_skilled_staff", severity="low", created_at=NOW - timedelta(hours=49))

        assert await dispatch.run_sla_sweep() == 1
        assert len(await notifications_for(admin.id, "sla_breach")) == 1

    async def test_breach_recomputed_but_renotify_deduplicated(
        self, dispatch, make_user, make_complaint, notifications_for,
    ):
        admin = await make_user(role="admin")
        await make_complaint(status="assigned", severity="critical", created_at=NOW - timedelta(hours=3))

        assert await dispatch.run_sla_sweep() == 1
        assert await dispatch.run_sla_sweep() == 1

        assert len(await notifications_for(admin.id, "sla_breach")) == 1

    async def test_zero_renotify_interval_notifies_every_sweep(
        self, db_session, make_user, make_complaint, notifications_for,
    ):
        admin = await make_user(role="admin")
        await make_complaint(status="assigned", severity="critical", created_at=NOW - timedelta(hours=3))
        monitor = _monitor(db_session, renotify_hours=0)

        await monitor.run_sla_sweep()
        await monitor.run_sla_sweep()

        assert len(await notifications_for(admin.id, "sla_breach")) == 2

    async def test_renotify_after_interval(self, db_session, make_user, make_complaint, notifications_for):
        admin = await make_user(role="admin")
        await make_complaint(status="assigned", severity="critical", created_at=NOW - timedelta(hours=3))
        monitor = _monitor(db_session, renotify_hours=24)

        await monitor.run_sla_sweep(now=NOW)
        await monitor.run_sla_sweep(now=NOW + timedelta(hours=1))
        await monitor.run_sla_sweep(now=NOW + timedelta(hours=25))

        assert len(await notifications_for(admin.id, "sla_breach")) == 2


class TestEscalationSweep:
    async def test_escalates_stale_triggered_emergency_once(
        self, dispatch, repository, make_user, make_emergency, notifications_for, audit_entries,
    ):
        admin = await make_user(role="admin")
        warden = await make_user(role="warden")
        emergency = await make_emergency(reported_at=NOW - timedelta(minutes=6))

        assert await dispatch.run_escalation_sweep() == 1
        assert await dispatch.run_escalation_sweep() == 0

        stored = await repository.get_emergency(emergency.id)
        assert stored.escalation_level == 1
        assert len(await notifications_for(admin.id, "emergency_escalated")) == 1
        assert len(await notifications_for(warden.id, "emergency_escalated")) == 1
        entries = await audit_entries("EMERGENCY_ESCALATED")
        assert len(entries) == 1
        assert entries[0].user_id == admin.id

    async def test_recent_or_answered_emergencies_left_alone(self, dispatch, make_user, make_emergency):
        await make_user(role="admin")
        await make_emergency(reported_at=NOW - timedelta(minutes=2))
        await make_emergency(reported_at=NOW - timedelta(minutes=30), status="responding")
        await make_emergency(reported_at=NOW - timedelta(minutes=30), escalation_level=1)

        assert await dispatch.run_escalation_sweep() == 0
