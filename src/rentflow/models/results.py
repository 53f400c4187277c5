"""Result models returned by engine operations."""

from decimal import Decimal

from pydantic import BaseModel, Field

from rentflow.models.lease import Lease
from rentflow.models.obligation import Obligation


class ActivationResult(BaseModel):
    """Outcome of ensuring a lease's activation obligations."""

    created: list[Obligation] = Field(default_factory=list)
    already_existed: bool = False


class SigningResult(BaseModel):
    """Outcome of a signature event."""

    lease: Lease
    obligations_created: list[Obligation] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ReconcileResult(BaseModel):
    """Outcome of reconciling a lease after a completed payment."""

    lease_activated: bool = False
    role_promoted: bool = False


class CompletionResult(BaseModel):
    """Outcome of completing an obligation."""

    obligation: Obligation
    lease_activated: bool = False
    role_promoted: bool = False
    redelivered: bool = False


class RentGenerationReport(BaseModel):
    """Aggregate of one recurring rent sweep."""

    created: int = 0
    errors: int = 0
    details: list[str] = Field(default_factory=list)


class MaintenanceReport(BaseModel):
    """Aggregate of one daily maintenance run."""

    rent_created: int = 0
    rent_errors: int = 0
    marked_late: int = 0
    leases_expired: int = 0
    leases_repaired: int = 0
    details: list[str] = Field(default_factory=list)


class BulkCompletionReport(BaseModel):
    """Aggregate of completing a batch of obligations."""

    completed: int = 0
    failed: int = 0
    leases_activated: int = 0
    details: list[str] = Field(default_factory=list)


class PaymentAnalytics(BaseModel):
    """
    Collection figures over all obligations.

    Failed obligations are counted in by_status but excluded from expected
    revenue and the collection rate, since a replacement carries their amount.
    """

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    total_revenue: Decimal = Decimal("0")
    expected_revenue: Decimal = Decimal("0")
    this_month_revenue: Decimal = Decimal("0")
    this_month_expected: Decimal = Decimal("0")
    collection_rate: Decimal = Decimal("0")
    average_payment: Decimal = Decimal("0")
