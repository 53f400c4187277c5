"""RentFlow core engine - canonical lease and obligation operations."""

import logging
from datetime import date
from decimal import Decimal
from time import perf_counter
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.db.repositories import (
    LeaseRepository,
    ObligationRepository,
    UserRepository,
)
from rentflow.engine.activation import ObligationGenerator
from rentflow.engine.errors import (
    InternalError,
    InvalidObligationTransition,
    LeaseNotFound,
    ObligationNotFound,
    PartialActivationError,
    RentFlowError,
)
from rentflow.engine.reconciler import CompletionReconciler
from rentflow.engine.scheduler import RecurringObligationScheduler
from rentflow.engine.signing import apply_signature, with_derived_state
from rentflow.models import (
    BulkCompletionReport,
    CompletionResult,
    Lease,
    LeaseState,
    MaintenanceReport,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    PaymentAnalytics,
    ReconcileResult,
    SignerRole,
    SigningResult,
)
from rentflow.observability.metrics import metrics
from rentflow.utils.time import month_bounds, utc_now, utc_today

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class LeaseEngine:
    """Core engine implementing canonical RentFlow operations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.leases = LeaseRepository(session)
        self.obligations = ObligationRepository(session)
        self.users = UserRepository(session)
        self.generator = ObligationGenerator(session)
        self.reconciler = CompletionReconciler(session)
        self.scheduler = RecurringObligationScheduler(session)

    # =========================================================================
    # Lease Operations
    # =========================================================================

    async def get_lease(self, lease_id: UUID) -> Lease:
        """Get a lease by ID."""
        lease = await self.leases.get(lease_id)
        if not lease:
            raise LeaseNotFound(str(lease_id))
        return lease

    async def sign_lease(
        self,
        lease_id: UUID,
        signer_role: SignerRole,
        signer_id: UUID,
        signature: str,
        wallet_address: Optional[str] = None,
    ) -> SigningResult:
        """
        Record a signature and recompute the lease state.

        The lease row is locked for the read-modify-write, so two parties
        signing at the same moment both land and the lease ends fully signed.
        When the lease becomes fully signed the activation obligations are
        generated. If that generation fails the signature stays recorded, a
        warning is returned and the repair sweep generates them later.
        """
        try:
            async with self.session.begin_nested():  # SAVEPOINT
                lease = await self.leases.get(lease_id, for_update=True)
                if not lease:
                    raise LeaseNotFound(str(lease_id))

                signed = apply_signature(
                    lease,
                    signer_role,
                    signature,
                    signer_id,
                    wallet_address=wallet_address,
                )
                await self.leases.save_signatures(signed)
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to record signature on lease {lease_id}: {e}") from e

        metrics.inc_counter("leases.signatures")
        logger.info(
            f"Signature recorded on lease {lease_id}: role={signer_role.value}, "
            f"state={signed.state.value}"
        )

        result = SigningResult(lease=signed)
        if signed.state != LeaseState.FULLY_SIGNED:
            return result

        try:
            activation = await self.generator.ensure_activation_obligations(signed)
            result.obligations_created = activation.created
        except (RentFlowError, SQLAlchemyError) as e:
            warning = (
                f"Signature recorded on lease {lease_id} but activation obligations "
                f"were not created: {e}"
            )
            logger.warning(warning)
            metrics.inc_counter("obligations.activation.deferred")
            result.warnings.append(warning)

        return result

    async def terminate_lease(self, lease_id: UUID, reason: Optional[str] = None) -> Lease:
        """Terminate a lease from any state. Terminating twice is a no-op."""
        lease = await self.leases.get(lease_id, for_update=True)
        if not lease:
            raise LeaseNotFound(str(lease_id))
        if lease.terminated_at is not None:
            return lease

        now = utc_now()
        terminated = with_derived_state(lease, terminated_at=now, termination_reason=reason)
        try:
            await self.leases.update_lifecycle(
                lease_id,
                expected_states=[s for s in LeaseState if s != LeaseState.TERMINATED],
                state=terminated.state,
                terminated_at=now,
                termination_reason=reason,
            )
        except SQLAlchemyError as e:
            raise InternalError(f"Failed to terminate lease {lease_id}: {e}") from e

        metrics.inc_counter("leases.terminated")
        logger.info(f"Lease {lease_id} terminated (was {lease.state.value})")
        return await self.get_lease(lease_id)

    # =========================================================================
    # Obligation Operations
    # =========================================================================

    async def get_obligation(self, obligation_id: UUID) -> Obligation:
        """Get an obligation by ID."""
        obligation = await self.obligations.get(obligation_id)
        if not obligation:
            raise ObligationNotFound(str(obligation_id))
        return obligation

    async def list_lease_obligations(self, lease_id: UUID) -> list[Obligation]:
        """List every obligation of a lease by due date."""
        await self.get_lease(lease_id)
        return await self.obligations.list_for_lease(lease_id)

    async def complete_obligation(
        self,
        obligation_id: UUID,
        settlement_reference: Optional[str] = None,
    ) -> CompletionResult:
        """
        Mark an obligation paid and reconcile its lease.

        Safe under re-delivery: the status change and the lease payment total
        apply once, and the reconciler activates the lease at most once.
        """
        start_time = perf_counter()
        obligation = await self.obligations.get(obligation_id, for_update=True)
        if not obligation:
            raise ObligationNotFound(str(obligation_id))

        redelivered = obligation.status == ObligationStatus.COMPLETED
        if not redelivered:
            if not obligation.status.can_transition_to(ObligationStatus.COMPLETED):
                raise InvalidObligationTransition(
                    str(obligation_id),
                    obligation.status.value,
                    ObligationStatus.COMPLETED.value,
                )

            now = utc_now()
            try:
                async with self.session.begin_nested():  # SAVEPOINT
                    changed = await self.obligations.update_status(
                        obligation_id,
                        ObligationStatus.COMPLETED,
                        expected_statuses=[
                            ObligationStatus.PENDING,
                            ObligationStatus.LATE,
                            ObligationStatus.PROCESSING,
                        ],
                        settlement_reference=settlement_reference or obligation.settlement_reference,
                        completed_at=now,
                    )
                    if changed:
                        await self.leases.record_payment(obligation.lease_id, obligation.amount, now)
            except SQLAlchemyError as e:
                raise InternalError(f"Failed to complete obligation {obligation_id}: {e}") from e

            if changed:
                metrics.inc_counter("obligations.completed")
                logger.info(
                    f"Obligation {obligation_id} completed "
                    f"({obligation.obligation_type.value}, lease {obligation.lease_id})"
                )
            else:
                redelivered = True

        obligation = await self.get_obligation(obligation_id)
        if redelivered:
            metrics.inc_counter("obligations.completion_redelivered")

        reconciled = await self.reconciler.on_obligation_completed(obligation)
        metrics.observe("obligations.complete_latency_ms", (perf_counter() - start_time) * 1000.0)

        return CompletionResult(
            obligation=obligation,
            lease_activated=reconciled.lease_activated,
            role_promoted=reconciled.role_promoted,
            redelivered=redelivered,
        )

    async def complete_obligations(
        self,
        obligation_ids: Sequence[UUID],
        settlement_reference_prefix: Optional[str] = None,
    ) -> BulkCompletionReport:
        """
        Complete a batch of obligations.

        Each obligation runs in its own savepoint, so one that cannot be
        completed is reported and the rest still go through. A partial
        activation keeps the completed payment and is reported as a warning.
        """
        report = BulkCompletionReport()

        for obligation_id in dict.fromkeys(obligation_ids):
            reference = (
                f"{settlement_reference_prefix}-{obligation_id.hex[:8]}"
                if settlement_reference_prefix
                else None
            )
            partial = None
            try:
                async with self.session.begin_nested():  # SAVEPOINT
                    try:
                        result = await self.complete_obligation(obligation_id, reference)
                    except PartialActivationError as e:
                        partial = e
            except RentFlowError as e:
                logger.warning(f"Bulk completion skipped obligation {obligation_id}: {e.message}")
                report.failed += 1
                report.details.append(f"obligation {obligation_id}: failed: {e.message}")
                continue
            except Exception as e:
                logger.error(f"Bulk completion failed for obligation {obligation_id}: {e}", exc_info=True)
                report.failed += 1
                report.details.append(f"obligation {obligation_id}: failed: {e}")
                continue

            report.completed += 1
            if partial:
                report.leases_activated += int(partial.lease_activated)
                report.details.append(
                    f"obligation {obligation_id}: completed with warning: {partial.message}"
                )
            elif result.redelivered:
                report.details.append(f"obligation {obligation_id}: already completed")
            elif result.lease_activated:
                report.leases_activated += 1
                report.details.append(f"obligation {obligation_id}: completed, lease activated")
            else:
                report.details.append(f"obligation {obligation_id}: completed")

        metrics.inc_counter("obligations.bulk_completions")
        logger.info(f"Bulk completion: completed={report.completed}, failed={report.failed}")
        return report

    async def mark_processing(self, obligation_id: UUID, settlement_reference: str) -> Obligation:
        """Record that a transfer for the obligation was accepted by the payment rail."""
        obligation = await self.obligations.get(obligation_id, for_update=True)
        if not obligation:
            raise ObligationNotFound(str(obligation_id))
        if obligation.status not in ObligationStatus.payable_states():
            raise InvalidObligationTransition(
                str(obligation_id), obligation.status.value, ObligationStatus.PROCESSING.value
            )

        await self.obligations.update_status(
            obligation_id,
            ObligationStatus.PROCESSING,
            expected_statuses=ObligationStatus.payable_states(),
            settlement_reference=settlement_reference,
        )
        metrics.inc_counter("obligations.processing")
        return await self.get_obligation(obligation_id)

    async def fail_obligation(self, obligation_id: UUID, reason: str) -> Obligation:
        """
        Mark an obligation failed.

        Failing an already failed obligation is a no-op. The period key is
        released so a replacement can be issued for the same period.
        """
        obligation = await self.obligations.get(obligation_id, for_update=True)
        if not obligation:
            raise ObligationNotFound(str(obligation_id))
        if obligation.status == ObligationStatus.FAILED:
            return obligation
        if not obligation.status.can_transition_to(ObligationStatus.FAILED):
            raise InvalidObligationTransition(
                str(obligation_id), obligation.status.value, ObligationStatus.FAILED.value
            )

        notes = f"{obligation.notes}\n{reason}" if obligation.notes else reason
        await self.obligations.update_status(
            obligation_id,
            ObligationStatus.FAILED,
            expected_statuses=[
                ObligationStatus.PENDING,
                ObligationStatus.LATE,
                ObligationStatus.PROCESSING,
            ],
            notes=notes,
            period_key=None,
        )
        metrics.inc_counter("obligations.failed")
        logger.warning(f"Obligation {obligation_id} failed: {reason}")
        return await self.get_obligation(obligation_id)

    async def replace_failed_obligation(self, obligation_id: UUID) -> Obligation:
        """Issue a new pending obligation for the same period as a failed one."""
        obligation = await self.get_obligation(obligation_id)
        if obligation.status != ObligationStatus.FAILED:
            raise InvalidObligationTransition(
                str(obligation_id), obligation.status.value, ObligationStatus.PENDING.value
            )

        replacement = await self.obligations.create(
            ObligationDraft(
                lease_id=obligation.lease_id,
                tenant_id=obligation.tenant_id,
                amount=obligation.amount,
                obligation_type=obligation.obligation_type,
                due_date=obligation.due_date,
                notes=f"Replacement for {obligation_id}",
            )
        )
        metrics.inc_counter("obligations.created")
        logger.info(f"Obligation {replacement.obligation_id} replaces failed {obligation_id}")
        return replacement

    async def list_upcoming_obligations(
        self,
        days_ahead: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[Obligation]:
        """Pending obligations due within the look-ahead window."""
        return await self.scheduler.list_upcoming(days_ahead, today)

    async def list_overdue_obligations(self, today: Optional[date] = None) -> list[Obligation]:
        """Unpaid obligations past their due date."""
        return await self.scheduler.list_overdue(today)

    # =========================================================================
    # System Operations
    # =========================================================================

    async def run_daily_maintenance(self, today: Optional[date] = None) -> MaintenanceReport:
        """
        Run the daily maintenance pass.

        Order: mint upcoming rent, mark overdue obligations late, expire
        ended leases, then repair leases stuck between signing and activation.
        """
        today = today or utc_today()
        report = MaintenanceReport()

        with metrics.timed("maintenance.duration_ms"):
            rent = await self.scheduler.generate_upcoming_rent(today=today)
            report.rent_created = rent.created
            report.rent_errors = rent.errors
            report.details.extend(rent.details)

            report.marked_late = await self.scheduler.mark_overdue(today)
            report.leases_expired = await self.scheduler.expire_ended_leases(today)
            report.leases_repaired = await self.repair_stalled_leases(today, report.details)

        metrics.inc_counter("maintenance.runs")
        logger.info(
            f"Maintenance for {today.isoformat()}: rent_created={report.rent_created}, "
            f"rent_errors={report.rent_errors}, marked_late={report.marked_late}, "
            f"leases_expired={report.leases_expired}, leases_repaired={report.leases_repaired}"
        )
        return report

    async def repair_stalled_leases(
        self,
        today: Optional[date] = None,
        details: Optional[list[str]] = None,
    ) -> int:
        """
        Close partial-failure windows left by signing and activation.

        Fully signed leases get missing activation obligations and, when both
        are paid, activation. Active leases get a missed tenant promotion.
        Returns the number of leases changed.
        """
        today = today or utc_today()
        details = details if details is not None else []
        repaired = 0

        for lease in await self.leases.list_by_state(LeaseState.FULLY_SIGNED):
            try:
                async with self.session.begin_nested():  # SAVEPOINT
                    activation = await self.generator.ensure_activation_obligations(lease, today)
                    # A failed promotion must not roll back the activation write
                    reconciled = await self._reconcile_keeping_partial(lease.lease_id, details)
            except Exception as e:
                logger.error(f"Repair failed for lease {lease.lease_id}: {e}", exc_info=True)
                metrics.inc_counter("leases.repair.failed")
                details.append(f"lease {lease.lease_id}: repair error: {e}")
                continue

            if activation.created or reconciled.lease_activated:
                repaired += 1
                details.append(
                    f"lease {lease.lease_id}: repaired "
                    f"(obligations_created={len(activation.created)}, "
                    f"activated={reconciled.lease_activated}, "
                    f"promoted={reconciled.role_promoted})"
                )

        for lease in await self.leases.list_active_with_prospective_tenant():
            try:
                async with self.session.begin_nested():  # SAVEPOINT
                    reconciled = await self._reconcile_keeping_partial(lease.lease_id, details)
            except Exception as e:
                logger.error(f"Repair failed for lease {lease.lease_id}: {e}", exc_info=True)
                metrics.inc_counter("leases.repair.failed")
                details.append(f"lease {lease.lease_id}: repair error: {e}")
                continue

            if reconciled.role_promoted:
                repaired += 1
                details.append(f"lease {lease.lease_id}: tenant promotion repaired")

        if repaired:
            metrics.inc_counter("leases.repaired", repaired)
        return repaired

    async def _reconcile_keeping_partial(self, lease_id: UUID, details: list[str]) -> ReconcileResult:
        """
        Reconcile a lease, reporting a partial activation instead of raising.

        The reconciler writes activation and promotion in separate savepoints,
        so whichever half succeeded is kept when the other fails.
        """
        try:
            return await self.reconciler.reconcile_lease(lease_id)
        except PartialActivationError as e:
            logger.warning(f"Repair left lease {lease_id} partially activated: {e.message}")
            details.append(f"lease {lease_id}: warning: {e.message}")
            return ReconcileResult(lease_activated=e.lease_activated, role_promoted=e.role_promoted)

    async def get_payment_analytics(self, today: Optional[date] = None) -> PaymentAnalytics:
        """Collected and expected amounts overall and for the current month."""
        today = today or utc_today()
        month_start, next_month_start = month_bounds(today.year, today.month)
        overall = await self.obligations.sum_by_status()
        this_month = await self.obligations.sum_by_status(month_start, next_month_start)

        def amount(totals, status: ObligationStatus) -> Decimal:
            return totals.get(status, (0, Decimal("0")))[1]

        def expected(totals) -> Decimal:
            return sum(
                (total for status, (_, total) in totals.items() if status != ObligationStatus.FAILED),
                Decimal("0"),
            )

        by_status = {status.value: overall.get(status, (0, None))[0] for status in ObligationStatus}
        completed = by_status[ObligationStatus.COMPLETED.value]
        collectible = sum(by_status.values()) - by_status[ObligationStatus.FAILED.value]
        total_revenue = amount(overall, ObligationStatus.COMPLETED)

        analytics = PaymentAnalytics(
            total=sum(by_status.values()),
            by_status=by_status,
            total_revenue=total_revenue,
            expected_revenue=expected(overall),
            this_month_revenue=amount(this_month, ObligationStatus.COMPLETED),
            this_month_expected=expected(this_month),
        )
        if collectible:
            analytics.collection_rate = (Decimal(completed * 100) / collectible).quantize(CENTS)
        if completed:
            analytics.average_payment = (total_revenue / completed).quantize(CENTS)
        return analytics

    async def get_metrics_snapshot(self) -> dict[str, Any]:
        """Return metrics snapshot with lease and obligation gauges."""
        lease_counts = await self.leases.count_by_state()
        obligation_counts = await self.obligations.count_by_status()

        leases_by_state = {state.value: int(lease_counts.get(state, 0)) for state in LeaseState}
        obligations_by_status = {
            status.value: int(obligation_counts.get(status, 0)) for status in ObligationStatus
        }
        for state, count in leases_by_state.items():
            metrics.set_gauge(f"leases.{state}", count)
        for status, count in obligations_by_status.items():
            metrics.set_gauge(f"obligations.{status}", count)

        return {
            "metrics": metrics.snapshot(),
            "leases_by_state": leases_by_state,
            "obligations_by_status": obligations_by_status,
        }
