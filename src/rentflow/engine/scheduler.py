"""Recurring rent generation and overdue tracking."""

import logging
from datetime import date, timedelta
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.config import settings
from rentflow.db.repositories import LeaseRepository, ObligationRepository
from rentflow.engine.errors import ObligationConflict
from rentflow.engine.signing import with_derived_state
from rentflow.models import (
    Lease,
    LeaseState,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    ObligationType,
    RentGenerationReport,
)
from rentflow.observability.metrics import metrics
from rentflow.utils.time import add_months, due_date_in_month, utc_now, utc_today

logger = logging.getLogger(__name__)


class RecurringObligationScheduler:
    """Mints monthly rent for active leases and ages unpaid obligations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.leases = LeaseRepository(session)
        self.obligations = ObligationRepository(session)

    async def generate_upcoming_rent(
        self,
        leases: Optional[Sequence[Lease]] = None,
        today: Optional[date] = None,
    ) -> RentGenerationReport:
        """
        Ensure rent obligations exist for the current month and the next
        months of the configured window.

        Each lease is processed in its own savepoint: one failing lease is
        counted and logged, and the sweep continues with the rest. Running
        the sweep twice on the same day creates nothing the second time.
        """
        today = today or utc_today()
        if leases is None:
            leases = await self.leases.list_by_state(LeaseState.ACTIVE)

        report = RentGenerationReport()
        batch_size = settings.maintenance_batch_size

        for index, lease in enumerate(leases, start=1):
            try:
                async with self.session.begin_nested():  # SAVEPOINT
                    created = await self._generate_for_lease(lease, today)
            except Exception as e:
                # Log but continue processing other leases
                logger.error(f"Rent generation failed for lease {lease.lease_id}: {e}", exc_info=True)
                metrics.inc_counter("obligations.rent.failed")
                report.errors += 1
                report.details.append(f"lease {lease.lease_id}: error: {e}")
                continue

            if created:
                report.created += len(created)
                report.details.append(
                    f"lease {lease.lease_id}: created rent due "
                    + ", ".join(o.due_date.isoformat() for o in created)
                )

            if index % batch_size == 0:
                await self.session.commit()

        if report.created:
            logger.info(f"Generated {report.created} rent obligation(s)")
        return report

    async def _generate_for_lease(self, lease: Lease, today: date) -> list[Obligation]:
        if lease.state != LeaseState.ACTIVE:
            return []

        created: list[Obligation] = []
        for offset in range(settings.rent_window_months):
            year, month = add_months(today.year, today.month, offset)
            due = due_date_in_month(year, month, lease.rent_due_day)
            if not lease.covers(due):
                continue

            if await self.obligations.find_in_month(lease.lease_id, ObligationType.RENT, year, month):
                continue

            try:
                obligation = await self.obligations.create(
                    ObligationDraft(
                        lease_id=lease.lease_id,
                        tenant_id=lease.tenant_id,
                        amount=lease.monthly_rent,
                        obligation_type=ObligationType.RENT,
                        due_date=due,
                        notes="Monthly rent",
                    )
                )
            except ObligationConflict:
                # A concurrent sweep minted this month first
                continue

            created.append(obligation)
            metrics.inc_counter("obligations.created")
            metrics.inc_counter("obligations.rent.created")

        return created

    async def mark_overdue(self, today: Optional[date] = None) -> int:
        """Transition pending obligations due before today to late."""
        count = await self.obligations.mark_overdue(today or utc_today())
        if count:
            logger.info(f"Marked {count} obligation(s) late")
            metrics.inc_counter("obligations.marked_late", count)
        return count

    async def expire_ended_leases(self, today: Optional[date] = None) -> int:
        """Expire active leases whose term ended before today."""
        today = today or utc_today()
        count = 0

        for lease in await self.leases.list_ended(today):
            now = utc_now()
            expired_lease = with_derived_state(lease, expired_at=now)
            changed = await self.leases.update_lifecycle(
                lease.lease_id,
                expected_states=[LeaseState.ACTIVE],
                state=expired_lease.state,
                expired_at=now,
            )
            if changed:
                count += 1
                metrics.inc_counter("leases.expired")
                logger.info(f"Lease {lease.lease_id} expired (term ended {lease.end_date})")

        return count

    async def list_upcoming(
        self,
        days_ahead: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[Obligation]:
        """Pending obligations due between today and today + days_ahead."""
        today = today or utc_today()
        days = settings.upcoming_window_days if days_ahead is None else days_ahead
        return await self.obligations.list_due_between(
            today, today + timedelta(days=days), [ObligationStatus.PENDING]
        )

    async def list_overdue(self, today: Optional[date] = None) -> list[Obligation]:
        """Unpaid obligations due before today."""
        return await self.obligations.list_overdue(today or utc_today())
