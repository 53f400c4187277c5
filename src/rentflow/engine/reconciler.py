"""Lease activation on completed payments."""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.db.repositories import LeaseRepository, ObligationRepository, UserRepository
from rentflow.engine.activation import find_activation_obligations, required_activation_types
from rentflow.engine.errors import InternalError, LeaseNotFound, PartialActivationError
from rentflow.engine.signing import with_derived_state
from rentflow.models import Lease, LeaseState, Obligation, ObligationType, ReconcileResult
from rentflow.observability.metrics import metrics
from rentflow.utils.time import utc_now

logger = logging.getLogger(__name__)


class CompletionReconciler:
    """
    Activates a lease once its move-in obligations are settled.

    Activation is a conditional write from fully_signed, so concurrent
    completions of the deposit and the first rent activate the lease and
    promote the tenant at most once.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.leases = LeaseRepository(session)
        self.obligations = ObligationRepository(session)
        self.users = UserRepository(session)

    async def on_obligation_completed(self, obligation: Obligation) -> ReconcileResult:
        """React to a completed obligation; only activation types can activate a lease."""
        if obligation.obligation_type not in ObligationType.activation_types():
            return ReconcileResult()
        return await self.reconcile_lease(obligation.lease_id)

    async def reconcile_lease(self, lease_id: UUID) -> ReconcileResult:
        """
        Bring a lease in line with its settled obligations.

        A fully signed lease with a completed deposit and first-period rent is
        activated and its tenant promoted. An active lease whose tenant was
        never promoted gets the promotion repaired.
        """
        lease = await self.leases.get(lease_id, for_update=True)
        if not lease:
            raise LeaseNotFound(str(lease_id))

        if lease.state == LeaseState.ACTIVE:
            promoted = await self._promote_tenant(lease, lease_activated=False)
            if promoted:
                logger.info(f"Repaired tenant promotion for active lease {lease.lease_id}")
                metrics.inc_counter("leases.promotion_repaired")
            return ReconcileResult(lease_activated=False, role_promoted=promoted)

        if lease.state != LeaseState.FULLY_SIGNED:
            return ReconcileResult()

        if not await self.activation_satisfied(lease):
            return ReconcileResult()

        now = utc_now()
        activated_lease = with_derived_state(lease, activated_at=now)

        try:
            async with self.session.begin_nested():  # SAVEPOINT
                activated = await self.leases.update_lifecycle(
                    lease.lease_id,
                    expected_states=[LeaseState.FULLY_SIGNED],
                    state=activated_lease.state,
                    activated_at=now,
                )
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to activate lease {lease.lease_id}: {e}") from e

        if not activated:
            # Another completion activated it first
            return ReconcileResult()

        metrics.inc_counter("leases.activated")
        logger.info(f"Lease {lease.lease_id} activated")

        promoted = await self._promote_tenant(lease, lease_activated=True)
        return ReconcileResult(lease_activated=True, role_promoted=promoted)

    async def activation_satisfied(self, lease: Lease) -> bool:
        """Check that every required activation obligation is completed."""
        existing = await find_activation_obligations(self.obligations, lease)
        return all(
            t in existing and existing[t].is_completed() for t in required_activation_types(lease)
        )

    async def _promote_tenant(self, lease: Lease, lease_activated: bool) -> bool:
        """
        Promote the lease tenant from prospective tenant to tenant.

        Raises PartialActivationError if the promotion cannot be written, so
        the caller sees which half of the activation took effect.
        """
        try:
            async with self.session.begin_nested():  # SAVEPOINT
                promoted = await self.users.promote_to_tenant(lease.tenant_id)
        except SQLAlchemyError as e:
            logger.warning(
                f"Tenant promotion failed for lease {lease.lease_id} "
                f"(lease_activated={lease_activated}): {e}"
            )
            metrics.inc_counter("leases.promotion_failed")
            raise PartialActivationError(
                str(lease.lease_id), lease_activated, False, str(e)
            ) from e

        if promoted:
            metrics.inc_counter("users.promoted")
            return True

        if not await self.users.get(lease.tenant_id):
            logger.warning(f"Tenant {lease.tenant_id} of lease {lease.lease_id} not found")
            metrics.inc_counter("leases.promotion_failed")
            raise PartialActivationError(
                str(lease.lease_id), lease_activated, False, "tenant not found"
            )
        return False
