"""Lease model - contract binding a tenant to a property."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rentflow.models.enums import LeaseState, SignerRole


class Lease(BaseModel):
    """A residential lease and its signing/activation record."""

    # Identity
    lease_id: UUID

    # Parties
    tenant_id: UUID
    property_id: UUID
    landlord_id: UUID

    # Terms
    monthly_rent: Decimal
    security_deposit: Decimal
    start_date: date
    end_date: date
    rent_due_day: int = Field(default=1, ge=1, le=31)

    # Signatures
    tenant_signature: Optional[str] = None
    tenant_signed_at: Optional[datetime] = None
    landlord_signature: Optional[str] = None
    landlord_signed_at: Optional[datetime] = None

    # Settlement accounts
    tenant_wallet: Optional[str] = None
    landlord_wallet: Optional[str] = None

    # Lifecycle
    state: LeaseState = LeaseState.PENDING_TENANT
    activated_at: Optional[datetime] = None
    terminated_at: Optional[datetime] = None
    termination_reason: Optional[str] = None
    expired_at: Optional[datetime] = None

    # Payment totals
    total_paid: Decimal = Decimal("0")
    last_payment_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime
    updated_at: datetime

    def party_id(self, role: SignerRole) -> UUID:
        """Identity designated to sign for a role."""
        return self.tenant_id if role == SignerRole.TENANT else self.landlord_id

    def has_signature(self, role: SignerRole) -> bool:
        if role == SignerRole.TENANT:
            return self.tenant_signature is not None
        return self.landlord_signature is not None

    def covers(self, day: date) -> bool:
        """Check if a date falls inside the lease term (inclusive)."""
        return self.start_date <= day <= self.end_date
