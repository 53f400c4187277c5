"""
Overdue marking: pending past-due obligations become late, nothing else moves.
"""

from datetime import date, timedelta

import pytest

from rentflow.db.repositories import ObligationRepository
from rentflow.engine.scheduler import RecurringObligationScheduler
from rentflow.models import ObligationDraft, ObligationStatus, ObligationType


async def _obligation(session, lease, due_date, obligation_type=ObligationType.OTHER):
    return await ObligationRepository(session).create(
        ObligationDraft(
            lease_id=lease.lease_id,
            tenant_id=lease.tenant_id,
            amount=lease.monthly_rent,
            obligation_type=obligation_type,
            due_date=due_date,
        )
    )


@pytest.mark.asyncio
async def test_pending_due_yesterday_becomes_late_and_stays_late(session, make_lease):
    today = date(2025, 3, 10)
    lease = await make_lease()
    overdue = await _obligation(session, lease, today - timedelta(days=1))
    scheduler = RecurringObligationScheduler(session)
    repo = ObligationRepository(session)

    assert await scheduler.mark_overdue(today) == 1
    assert (await repo.get(overdue.obligation_id)).status == ObligationStatus.LATE

    assert await scheduler.mark_overdue(today) == 0
    assert (await repo.get(overdue.obligation_id)).status == ObligationStatus.LATE


@pytest.mark.asyncio
async def test_due_today_not_late(session, make_lease):
    today = date(2025, 3, 10)
    lease = await make_lease()
    due_today = await _obligation(session, lease, today)

    assert await RecurringObligationScheduler(session).mark_overdue(today) == 0
    stored = await ObligationRepository(session).get(due_today.obligation_id)
    assert stored.status == ObligationStatus.PENDING


@pytest.mark.asyncio
async def test_completed_processing_and_failed_untouched(session, make_lease, lease_engine):
    today = date(2025, 3, 10)
    yesterday = today - timedelta(days=1)
    lease = await make_lease()
    completed = await _obligation(session, lease, yesterday)
    processing = await _obligation(session, lease, yesterday)
    failed = await _obligation(session, lease, yesterday)

    await lease_engine.complete_obligation(completed.obligation_id, "ref")
    await lease_engine.mark_processing(processing.obligation_id, "ref-p")
    await lease_engine.fail_obligation(failed.obligation_id, "rejected")

    assert await RecurringObligationScheduler(session).mark_overdue(today) == 0

    repo = ObligationRepository(session)
    assert (await repo.get(completed.obligation_id)).status == ObligationStatus.COMPLETED
    assert (await repo.get(processing.obligation_id)).status == ObligationStatus.PROCESSING
    assert (await repo.get(failed.obligation_id)).status == ObligationStatus.FAILED


@pytest.mark.asyncio
async def test_overdue_listing(session, make_lease, lease_engine):
    today = date(2025, 3, 10)
    lease = await make_lease()
    late = await _obligation(session, lease, date(2025, 2, 1))
    pending = await _obligation(session, lease, date(2025, 3, 9))
    await _obligation(session, lease, date(2025, 3, 20))
    await RecurringObligationScheduler(session).mark_overdue(date(2025, 3, 1))

    overdue = await lease_engine.list_overdue_obligations(today)

    assert [o.obligation_id for o in overdue] == [late.obligation_id, pending.obligation_id]
    assert [o.status for o in overdue] == [ObligationStatus.LATE, ObligationStatus.PENDING]


@pytest.mark.asyncio
async def test_late_obligation_can_still_be_paid(session, make_lease, lease_engine):
    lease = await make_lease()
    obligation = await _obligation(session, lease, date(2025, 1, 1))
    await RecurringObligationScheduler(session).mark_overdue(date(2025, 3, 10))

    result = await lease_engine.complete_obligation(obligation.obligation_id, "ref")

    assert result.obligation.status == ObligationStatus.COMPLETED
