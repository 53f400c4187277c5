"""Activation obligation generation for fully signed leases."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.config import settings
from rentflow.db.repositories import ObligationRepository
from rentflow.engine.errors import InternalError, InvalidLeaseTransition, ObligationConflict
from rentflow.models import (
    ActivationResult,
    Lease,
    LeaseState,
    Obligation,
    ObligationDraft,
    ObligationType,
)
from rentflow.observability.metrics import metrics
from rentflow.utils.time import utc_today

logger = logging.getLogger(__name__)


def required_activation_types(lease: Lease) -> list[ObligationType]:
    """Obligation types that must be settled before the lease can activate."""
    required = []
    if lease.security_deposit > Decimal("0"):
        required.append(ObligationType.SECURITY_DEPOSIT)
    required.append(ObligationType.RENT)
    return required


async def find_activation_obligations(
    obligations: ObligationRepository,
    lease: Lease,
) -> dict[ObligationType, Obligation]:
    """
    Existing activation obligations of a lease, keyed by type.

    The rent obligation that gates activation is the one due in the calendar
    month of the lease start date.
    """
    found: dict[ObligationType, Obligation] = {}

    deposits = await obligations.list_for_lease(
        lease.lease_id, types=[ObligationType.SECURITY_DEPOSIT]
    )
    if deposits:
        completed = [o for o in deposits if o.is_completed()]
        found[ObligationType.SECURITY_DEPOSIT] = completed[0] if completed else deposits[-1]

    rents = [
        o
        for o in await obligations.list_for_lease(lease.lease_id, types=[ObligationType.RENT])
        if o.in_month(lease.start_date.year, lease.start_date.month)
    ]
    if rents:
        completed = [o for o in rents if o.is_completed()]
        found[ObligationType.RENT] = completed[0] if completed else rents[-1]

    return found


class ObligationGenerator:
    """Creates the move-in obligations once a lease is fully signed."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.obligations = ObligationRepository(session)

    async def ensure_activation_obligations(
        self,
        lease: Lease,
        today: Optional[date] = None,
    ) -> ActivationResult:
        """
        Ensure the security deposit and first-period rent obligations exist.

        Only the missing ones are created, so repeated or concurrent calls end
        with exactly one of each. A unique-key conflict means another caller
        created the obligation first; the existing set is re-read and the
        attempt repeated up to the configured limit.
        """
        if lease.state != LeaseState.FULLY_SIGNED:
            raise InvalidLeaseTransition(
                str(lease.lease_id), lease.state.value, LeaseState.FULLY_SIGNED.value
            )

        today = today or utc_today()
        created: list[Obligation] = []
        max_attempts = settings.activation_max_attempts

        for attempt in range(1, max_attempts + 1):
            existing = await find_activation_obligations(self.obligations, lease)
            missing = [t for t in required_activation_types(lease) if t not in existing]
            if not missing:
                return ActivationResult(created=created, already_existed=not created)

            batch: list[Obligation] = []
            try:
                async with self.session.begin_nested():  # SAVEPOINT
                    for obligation_type in missing:
                        batch.append(
                            await self.obligations.create(self._draft(lease, obligation_type, today))
                        )
            except ObligationConflict as e:
                logger.info(
                    f"Activation obligation race on lease {lease.lease_id} "
                    f"(attempt {attempt}/{max_attempts}): {e.message}"
                )
                metrics.inc_counter("obligations.activation.conflict")
                continue
            except SQLAlchemyError as e:
                logger.warning(
                    f"Failed to create activation obligations for lease {lease.lease_id} "
                    f"(attempt {attempt}/{max_attempts}): {e}"
                )
                metrics.inc_counter("obligations.activation.failed")
                continue

            created.extend(batch)
            metrics.inc_counter("obligations.created", len(batch))
            logger.info(
                f"Created {len(batch)} activation obligation(s) for lease {lease.lease_id}: "
                + ", ".join(o.obligation_type.value for o in batch)
            )

        existing = await find_activation_obligations(self.obligations, lease)
        if all(t in existing for t in required_activation_types(lease)):
            return ActivationResult(created=created, already_existed=not created)

        raise InternalError(
            f"Activation obligations for lease {lease.lease_id} incomplete "
            f"after {max_attempts} attempts"
        )

    def _draft(self, lease: Lease, obligation_type: ObligationType, today: date) -> ObligationDraft:
        if obligation_type == ObligationType.SECURITY_DEPOSIT:
            return ObligationDraft(
                lease_id=lease.lease_id,
                tenant_id=lease.tenant_id,
                amount=lease.security_deposit,
                obligation_type=ObligationType.SECURITY_DEPOSIT,
                due_date=today,
                notes="Security deposit due at signing",
            )
        return ObligationDraft(
            lease_id=lease.lease_id,
            tenant_id=lease.tenant_id,
            amount=lease.monthly_rent,
            obligation_type=ObligationType.RENT,
            due_date=lease.start_date,
            notes="First month rent",
        )
