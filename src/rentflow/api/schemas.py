"""API request/response schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rentflow.models import Lease, Obligation


# ============================================================================
# Shared schemas
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class PartialActivationDetail(BaseModel):
    """Body returned when activation only partly took effect."""

    message: str
    lease_id: str
    lease_activated: bool
    role_promoted: bool


# ============================================================================
# Lease schemas
# ============================================================================


class LeaseResponse(BaseModel):
    """Lease response. Signature blobs are not echoed back."""

    lease_id: UUID
    tenant_id: UUID
    property_id: UUID
    landlord_id: UUID
    monthly_rent: Decimal
    security_deposit: Decimal
    start_date: date
    end_date: date
    rent_due_day: int
    state: str
    tenant_signed: bool
    tenant_signed_at: Optional[datetime] = None
    landlord_signed: bool
    landlord_signed_at: Optional[datetime] = None
    tenant_wallet: Optional[str] = None
    landlord_wallet: Optional[str] = None
    activated_at: Optional[datetime] = None
    terminated_at: Optional[datetime] = None
    termination_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    total_paid: Decimal
    last_payment_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_lease(cls, lease: Lease) -> "LeaseResponse":
        data = lease.model_dump()
        data["state"] = lease.state.value
        data["tenant_signed"] = lease.tenant_signature is not None
        data["landlord_signed"] = lease.landlord_signature is not None
        return cls(**data)


class SignLeaseRequest(BaseModel):
    """Sign lease request."""

    signer_role: str = Field(..., description="tenant or landlord")
    signer_id: UUID = Field(..., description="Identity of the signing party")
    signature: str = Field(..., min_length=1, description="Signature blob")
    wallet_address: Optional[str] = Field(None, description="Settlement account of the signer")


class SignLeaseResponse(BaseModel):
    """Sign lease response."""

    lease: LeaseResponse
    obligations_created: list["ObligationResponse"]
    warnings: list[str]


class TerminateLeaseRequest(BaseModel):
    """Terminate lease request."""

    reason: Optional[str] = None


# ============================================================================
# Obligation schemas
# ============================================================================


class ObligationResponse(BaseModel):
    """Payment obligation response."""

    obligation_id: UUID
    lease_id: UUID
    tenant_id: UUID
    amount: Decimal
    obligation_type: str
    due_date: date
    status: str
    settlement_reference: Optional[str] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_obligation(cls, obligation: Obligation) -> "ObligationResponse":
        data = obligation.model_dump()
        data["obligation_type"] = obligation.obligation_type.value
        data["status"] = obligation.status.value
        return cls(**data)


class ListObligationsResponse(BaseModel):
    """List obligations response."""

    obligations: list[ObligationResponse]


class PayObligationRequest(BaseModel):
    """Submit payment request."""

    from_account: str = Field(..., min_length=1, description="Tenant settlement account")


class CompleteObligationRequest(BaseModel):
    """Complete obligation request."""

    settlement_reference: Optional[str] = Field(None, description="Reference from the payment rail")


class CompleteObligationResponse(BaseModel):
    """Complete obligation response."""

    obligation: ObligationResponse
    lease_activated: bool
    role_promoted: bool
    redelivered: bool


class FailObligationRequest(BaseModel):
    """Fail obligation request."""

    reason: str = Field(..., min_length=1)


class BulkCompleteRequest(BaseModel):
    """Bulk completion request."""

    obligation_ids: list[UUID] = Field(..., min_length=1, max_length=500)
    settlement_reference_prefix: Optional[str] = Field(
        None, description="Prefix for the generated per-obligation settlement references"
    )


class BulkCompleteResponse(BaseModel):
    """Bulk completion response."""

    completed: int
    failed: int
    leases_activated: int
    details: list[str]


class PaymentAnalyticsResponse(BaseModel):
    """Collection figures across all obligations."""

    total: int
    by_status: dict[str, int]
    total_revenue: Decimal
    expected_revenue: Decimal
    this_month_revenue: Decimal
    this_month_expected: Decimal
    collection_rate: Decimal
    average_payment: Decimal


# ============================================================================
# System schemas
# ============================================================================


class MaintenanceRequest(BaseModel):
    """Maintenance run request."""

    run_date: Optional[date] = Field(None, description="Override today (back-fills)")


class MaintenanceResponse(BaseModel):
    """Maintenance run response."""

    rent_created: int
    rent_errors: int
    marked_late: int
    leases_expired: int
    leases_repaired: int
    details: list[str]


class MetricsResponse(BaseModel):
    """Metrics snapshot response."""

    metrics: dict[str, Any]
    leases_by_state: dict[str, int]
    obligations_by_status: dict[str, int]


SignLeaseResponse.model_rebuild()
