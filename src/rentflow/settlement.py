"""Payment submission through the payment rail."""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.engine import LeaseEngine
from rentflow.engine.errors import (
    InvalidObligationTransition,
    LeaseNotFound,
    SettlementAccountMissing,
)
from rentflow.integrations.payment_rail import PaymentRail
from rentflow.models import Obligation, ObligationStatus

logger = logging.getLogger(__name__)


class SettlementService:
    """
    Submits obligation payments to the payment rail.

    An accepted transfer moves the obligation to processing with the rail's
    reference; completion arrives later through complete_obligation. A
    rejected transfer fails the obligation. Transfers are never retried here.
    """

    def __init__(self, session: AsyncSession, rail: PaymentRail):
        self.engine = LeaseEngine(session)
        self.rail = rail

    async def submit_payment(self, obligation_id: UUID, from_account: str) -> Obligation:
        obligation = await self.engine.get_obligation(obligation_id)
        if obligation.status not in ObligationStatus.payable_states():
            raise InvalidObligationTransition(
                str(obligation_id), obligation.status.value, ObligationStatus.PROCESSING.value
            )

        lease = await self.engine.leases.get(obligation.lease_id)
        if not lease:
            raise LeaseNotFound(str(obligation.lease_id))
        if not lease.landlord_wallet:
            raise SettlementAccountMissing(str(lease.lease_id))

        # PaymentRailUnavailable propagates with the obligation untouched
        result = await self.rail.transfer_funds(
            from_account,
            lease.landlord_wallet,
            obligation.amount,
            metadata={
                "obligation_id": str(obligation_id),
                "lease_id": str(lease.lease_id),
                "obligation_type": obligation.obligation_type.value,
            },
        )

        if result.success:
            logger.info(f"Transfer for obligation {obligation_id} accepted: {result.reference}")
            return await self.engine.mark_processing(obligation_id, result.reference or "")

        return await self.engine.fail_obligation(
            obligation_id, f"Payment rail rejected transfer: {result.reason or 'unknown reason'}"
        )
