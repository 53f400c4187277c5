"""REST API router."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow import __version__
from rentflow.api.deps import get_db_session, get_payment_rail
from rentflow.api.schemas import (
    BulkCompleteRequest,
    BulkCompleteResponse,
    CompleteObligationRequest,
    CompleteObligationResponse,
    FailObligationRequest,
    HealthResponse,
    LeaseResponse,
    ListObligationsResponse,
    MaintenanceRequest,
    MaintenanceResponse,
    MetricsResponse,
    ObligationResponse,
    PartialActivationDetail,
    PaymentAnalyticsResponse,
    PayObligationRequest,
    SignLeaseRequest,
    SignLeaseResponse,
    TerminateLeaseRequest,
)
from rentflow.engine import (
    ConflictError,
    ForbiddenError,
    InternalError,
    LeaseEngine,
    NotFoundError,
    PartialActivationError,
    PaymentRailUnavailable,
)
from rentflow.integrations.payment_rail import PaymentRail
from rentflow.models import SignerRole
from rentflow.settlement import SettlementService

router = APIRouter(prefix="/v1")


# ============================================================================
# Health & Metrics
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(
    session: AsyncSession = Depends(get_db_session),
):
    """Get metrics snapshot with lease and obligation gauges."""
    engine = LeaseEngine(session)
    return MetricsResponse(**await engine.get_metrics_snapshot())


# ============================================================================
# Leases
# ============================================================================


@router.get("/leases/{lease_id}", response_model=LeaseResponse)
async def get_lease(
    lease_id: UUID,
    session: AsyncSession = Depends(get_db_session),
):
    """Get a lease."""
    engine = LeaseEngine(session)

    try:
        lease = await engine.get_lease(lease_id)
        return LeaseResponse.from_lease(lease)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/leases/{lease_id}/sign", response_model=SignLeaseResponse)
async def sign_lease(
    lease_id: UUID,
    request: SignLeaseRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Sign a lease as tenant or landlord.

    Reaching fully signed generates the activation obligations. If that step
    fails the signature is still saved and the response carries a warning.
    """
    try:
        role = SignerRole(request.signer_role)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid signer_role: {request.signer_role}")

    engine = LeaseEngine(session)

    try:
        result = await engine.sign_lease(
            lease_id=lease_id,
            signer_role=role,
            signer_id=request.signer_id,
            signature=request.signature,
            wallet_address=request.wallet_address,
        )
        return SignLeaseResponse(
            lease=LeaseResponse.from_lease(result.lease),
            obligations_created=[
                ObligationResponse.from_obligation(o) for o in result.obligations_created
            ],
            warnings=result.warnings,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ForbiddenError as e:
        raise HTTPException(status_code=403, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except InternalError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.post("/leases/{lease_id}/terminate", response_model=LeaseResponse)
async def terminate_lease(
    lease_id: UUID,
    request: TerminateLeaseRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Terminate a lease."""
    engine = LeaseEngine(session)

    try:
        lease = await engine.terminate_lease(lease_id, reason=request.reason)
        return LeaseResponse.from_lease(lease)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InternalError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.get("/leases/{lease_id}/obligations", response_model=ListObligationsResponse)
async def list_lease_obligations(
    lease_id: UUID,
    session: AsyncSession = Depends(get_db_session),
):
    """List all obligations of a lease."""
    engine = LeaseEngine(session)

    try:
        obligations = await engine.list_lease_obligations(lease_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    return ListObligationsResponse(
        obligations=[ObligationResponse.from_obligation(o) for o in obligations]
    )


# ============================================================================
# Obligations
# ============================================================================


@router.get("/obligations/upcoming", response_model=ListObligationsResponse)
async def list_upcoming_obligations(
    days: Optional[int] = Query(None, ge=0, le=366),
    session: AsyncSession = Depends(get_db_session),
):
    """List pending obligations due within the next days."""
    engine = LeaseEngine(session)
    obligations = await engine.list_upcoming_obligations(days_ahead=days)
    return ListObligationsResponse(
        obligations=[ObligationResponse.from_obligation(o) for o in obligations]
    )


@router.get("/obligations/overdue", response_model=ListObligationsResponse)
async def list_overdue_obligations(
    session: AsyncSession = Depends(get_db_session),
):
    """List unpaid obligations past their due date."""
    engine = LeaseEngine(session)
    obligations = await engine.list_overdue_obligations()
    return ListObligationsResponse(
        obligations=[ObligationResponse.from_obligation(o) for o in obligations]
    )


@router.get("/obligations/analytics", response_model=PaymentAnalyticsResponse)
async def get_payment_analytics(
    session: AsyncSession = Depends(get_db_session),
):
    """Collected and expected amounts, overall and for the current month."""
    engine = LeaseEngine(session)
    analytics = await engine.get_payment_analytics()
    return PaymentAnalyticsResponse(**analytics.model_dump())


@router.post("/obligations/bulk-complete", response_model=BulkCompleteResponse)
async def bulk_complete_obligations(
    request: BulkCompleteRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Complete many obligations at once.

    Obligations that cannot be completed are listed in details and do not
    stop the rest.
    """
    engine = LeaseEngine(session)
    report = await engine.complete_obligations(
        request.obligation_ids,
        settlement_reference_prefix=request.settlement_reference_prefix,
    )
    return BulkCompleteResponse(**report.model_dump())


@router.post("/obligations/{obligation_id}/pay", response_model=ObligationResponse)
async def pay_obligation(
    obligation_id: UUID,
    request: PayObligationRequest,
    session: AsyncSession = Depends(get_db_session),
    rail: PaymentRail = Depends(get_payment_rail),
):
    """Submit payment for an obligation through the payment rail."""
    service = SettlementService(session, rail)

    try:
        obligation = await service.submit_payment(obligation_id, request.from_account)
        return ObligationResponse.from_obligation(obligation)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except PaymentRailUnavailable as e:
        headers = {"Retry-After": str(e.retry_after)} if e.retry_after is not None else None
        raise HTTPException(status_code=503, detail=e.message, headers=headers)


@router.post("/obligations/{obligation_id}/complete", response_model=CompleteObligationResponse)
async def complete_obligation(
    obligation_id: UUID,
    request: CompleteObligationRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """
    Mark an obligation completed and activate its lease when due.

    A partial activation keeps whatever was written and answers 500 with
    which half took effect.
    """
    engine = LeaseEngine(session)

    try:
        result = await engine.complete_obligation(
            obligation_id,
            settlement_reference=request.settlement_reference,
        )
        return CompleteObligationResponse(
            obligation=ObligationResponse.from_obligation(result.obligation),
            lease_activated=result.lease_activated,
            role_promoted=result.role_promoted,
            redelivered=result.redelivered,
        )
    except PartialActivationError as e:
        await session.commit()
        raise HTTPException(
            status_code=500,
            detail=PartialActivationDetail(
                message=e.message,
                lease_id=e.lease_id,
                lease_activated=e.lease_activated,
                role_promoted=e.role_promoted,
            ).model_dump(),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except InternalError as e:
        raise HTTPException(status_code=500, detail=e.message)


@router.post("/obligations/{obligation_id}/fail", response_model=ObligationResponse)
async def fail_obligation(
    obligation_id: UUID,
    request: FailObligationRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Mark an obligation failed."""
    engine = LeaseEngine(session)

    try:
        obligation = await engine.fail_obligation(obligation_id, request.reason)
        return ObligationResponse.from_obligation(obligation)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.post("/obligations/{obligation_id}/replace", response_model=ObligationResponse)
async def replace_obligation(
    obligation_id: UUID,
    session: AsyncSession = Depends(get_db_session),
):
    """Issue a replacement for a failed obligation."""
    engine = LeaseEngine(session)

    try:
        obligation = await engine.replace_failed_obligation(obligation_id)
        return ObligationResponse.from_obligation(obligation)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)


# ============================================================================
# Maintenance
# ============================================================================


@router.post("/maintenance/run", response_model=MaintenanceResponse)
async def run_maintenance(
    request: Optional[MaintenanceRequest] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Run the daily maintenance pass (triggered by an external scheduler)."""
    engine = LeaseEngine(session)
    report = await engine.run_daily_maintenance(today=request.run_date if request else None)
    return MaintenanceResponse(**report.model_dump())
