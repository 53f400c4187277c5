"""Payment obligation model - an amount owed under a lease."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from rentflow.models.enums import ObligationStatus, ObligationType


class Obligation(BaseModel):
    """A scheduled or ad-hoc amount owed by the tenant."""

    obligation_id: UUID
    lease_id: UUID
    tenant_id: UUID

    amount: Decimal = Field(gt=0)
    obligation_type: ObligationType
    due_date: date
    status: ObligationStatus = ObligationStatus.PENDING

    settlement_reference: Optional[str] = None
    notes: Optional[str] = None
    period_key: Optional[str] = None

    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    def is_terminal(self) -> bool:
        """Check if obligation is in a terminal state."""
        return self.status.is_terminal()

    def is_completed(self) -> bool:
        return self.status == ObligationStatus.COMPLETED

    def in_month(self, year: int, month: int) -> bool:
        return self.due_date.year == year and self.due_date.month == month


class ObligationDraft(BaseModel):
    """Obligation values prior to insertion."""

    lease_id: UUID
    tenant_id: UUID
    amount: Decimal = Field(gt=0)
    obligation_type: ObligationType
    due_date: date
    notes: Optional[str] = None
