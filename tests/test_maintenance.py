"""
Daily maintenance: rent sweep, overdue marking, expiry and repair of stalled leases.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from rentflow.db.repositories import LeaseRepository, UserRepository
from rentflow.models import LeaseState, ObligationStatus, ObligationType, UserRole
from rentflow.tasks import maintenance


async def _activate(lease_engine, lease, sign_both):
    result = await sign_both(lease_engine, lease)
    for obligation in result.obligations_created:
        await lease_engine.complete_obligation(obligation.obligation_id, "ref")
    return await lease_engine.get_lease(lease.lease_id)


@pytest.mark.asyncio
async def test_maintenance_report(lease_engine, make_lease, sign_both):
    lease = await make_lease(start_date=date(2025, 1, 1), end_date=date(2025, 12, 31))
    await _activate(lease_engine, lease, sign_both)

    report = await lease_engine.run_daily_maintenance(today=date(2025, 2, 10))

    # January rent already exists from activation; February (overdue), March, April minted
    assert report.rent_created == 3
    assert report.rent_errors == 0
    assert report.marked_late == 1
    assert report.leases_expired == 0
    assert report.leases_repaired == 0

    overdue = await lease_engine.list_overdue_obligations(date(2025, 2, 10))
    assert [(o.due_date, o.status) for o in overdue] == [
        (date(2025, 2, 1), ObligationStatus.LATE)
    ]


@pytest.mark.asyncio
async def test_maintenance_is_idempotent(lease_engine, make_lease, sign_both):
    lease = await make_lease()
    await _activate(lease_engine, lease, sign_both)

    await lease_engine.run_daily_maintenance(today=date(2025, 2, 10))
    again = await lease_engine.run_daily_maintenance(today=date(2025, 2, 10))

    assert (again.rent_created, again.marked_late, again.leases_expired) == (0, 0, 0)


@pytest.mark.asyncio
async def test_ended_leases_expire(lease_engine, make_lease, sign_both):
    lease = await make_lease(start_date=date(2025, 1, 1), end_date=date(2025, 1, 31))
    await _activate(lease_engine, lease, sign_both)

    on_last_day = await lease_engine.run_daily_maintenance(today=date(2025, 1, 31))
    assert on_last_day.leases_expired == 0

    after = await lease_engine.run_daily_maintenance(today=date(2025, 2, 1))
    assert after.leases_expired == 1

    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.state == LeaseState.EXPIRED
    assert stored.expired_at is not None
    assert stored.activated_at is not None


@pytest.mark.asyncio
async def test_repair_generates_missing_activation_obligations(lease_engine, session, make_lease):
    lease = await make_lease()
    signed = lease.model_copy(
        update={"tenant_signature": "t", "landlord_signature": "l", "state": LeaseState.FULLY_SIGNED}
    )
    await LeaseRepository(session).save_signatures(signed)

    report = await lease_engine.run_daily_maintenance(today=date(2024, 12, 20))

    assert report.leases_repaired == 1
    types = sorted(
        o.obligation_type.value for o in await lease_engine.list_lease_obligations(lease.lease_id)
    )
    assert types == ["rent", "security_deposit"]


@pytest.mark.asyncio
async def test_repair_activates_lease_with_lost_completion_event(
    lease_engine, session, make_lease, sign_both
):
    """Both obligations completed but the reconciler never ran."""
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    for obligation in result.obligations_created:
        await lease_engine.obligations.update_status(
            obligation.obligation_id,
            ObligationStatus.COMPLETED,
            expected_statuses=[ObligationStatus.PENDING],
            completed_at=datetime(2024, 12, 21, tzinfo=timezone.utc),
        )

    report = await lease_engine.run_daily_maintenance(today=date(2024, 12, 22))

    assert report.leases_repaired == 1
    assert (await lease_engine.get_lease(lease.lease_id)).state == LeaseState.ACTIVE
    assert (await UserRepository(session).get(lease.tenant_id)).role == UserRole.TENANT


@pytest.mark.asyncio
async def test_repair_promotes_tenant_of_active_lease(lease_engine, session, make_lease):
    lease = await make_lease()
    activated_at = datetime(2025, 1, 1, tzinfo=timezone.utc)
    await LeaseRepository(session).update_lifecycle(
        lease.lease_id,
        expected_states=[LeaseState.PENDING_TENANT],
        state=LeaseState.ACTIVE,
        activated_at=activated_at,
    )

    report = await lease_engine.run_daily_maintenance(today=date(2025, 1, 10))

    assert report.leases_repaired == 1
    assert any("promotion repaired" in line for line in report.details)
    assert (await UserRepository(session).get(lease.tenant_id)).role == UserRole.TENANT
    stored = await lease_engine.get_lease(lease.lease_id)
    assert stored.activated_at.replace(tzinfo=None) == activated_at.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_repair_leaves_unpaid_fully_signed_lease(lease_engine, make_lease, sign_both):
    lease = await make_lease()
    await sign_both(lease_engine, lease)

    report = await lease_engine.run_daily_maintenance(today=date(2024, 12, 22))

    assert report.leases_repaired == 0
    assert (await lease_engine.get_lease(lease.lease_id)).state == LeaseState.FULLY_SIGNED


@pytest.mark.asyncio
async def test_terminated_lease_gets_no_new_rent(lease_engine, make_lease, sign_both):
    lease = await make_lease()
    await _activate(lease_engine, lease, sign_both)
    await lease_engine.terminate_lease(lease.lease_id, "early exit")

    report = await lease_engine.run_daily_maintenance(today=date(2025, 3, 10))

    assert report.rent_created == 0
    rents = [
        o
        for o in await lease_engine.list_lease_obligations(lease.lease_id)
        if o.obligation_type == ObligationType.RENT
    ]
    assert len(rents) == 1


@pytest.mark.asyncio
async def test_cli_runs_maintenance_for_date(session, monkeypatch):
    @asynccontextmanager
    async def fake_session():
        yield session

    monkeypatch.setattr(maintenance, "get_session", fake_session)

    report = await maintenance.run_maintenance(date(2025, 3, 10))

    assert report.rent_errors == 0
    assert report.rent_created == 0


def test_cli_parses_date():
    args = maintenance.build_parser().parse_args(["--date", "2025-03-10"])
    assert args.date == date(2025, 3, 10)

    with pytest.raises(SystemExit):
        maintenance.build_parser().parse_args(["--date", "10/03/2025"])

    assert maintenance.build_parser().parse_args([]).date is None


@pytest.mark.asyncio
async def test_repair_keeps_activation_when_promotion_fails(
    lease_engine, session, make_lease, sign_both, monkeypatch
):
    lease = await make_lease()
    result = await sign_both(lease_engine, lease)
    for obligation in result.obligations_created:
        await lease_engine.obligations.update_status(
            obligation.obligation_id,
            ObligationStatus.COMPLETED,
            expected_statuses=[ObligationStatus.PENDING],
            completed_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

    async def broken(self, user_id):
        raise SQLAlchemyError("role update failed")

    monkeypatch.setattr(UserRepository, "promote_to_tenant", broken)
    details: list[str] = []

    repaired = await lease_engine.repair_stalled_leases(date(2025, 1, 2), details)

    assert repaired == 1
    assert (await lease_engine.get_lease(lease.lease_id)).state == LeaseState.ACTIVE
    assert (await UserRepository(session).get(lease.tenant_id)).role == UserRole.PROSPECTIVE_TENANT
    assert any("lease_activated=True, role_promoted=False" in line for line in details)
    assert any("activated=True, promoted=False" in line for line in details)

    # The next run repairs the missed promotion
    monkeypatch.undo()
    report = await lease_engine.run_daily_maintenance(today=date(2025, 1, 3))

    assert any("promotion repaired" in line for line in report.details)
    assert (await UserRepository(session).get(lease.tenant_id)).role == UserRole.TENANT
