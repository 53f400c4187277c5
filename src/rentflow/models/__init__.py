"""RentFlow data models."""

from rentflow.models.enums import (
    LeaseState,
    ObligationStatus,
    ObligationType,
    SignerRole,
    UserRole,
)
from rentflow.models.lease import Lease
from rentflow.models.obligation import Obligation, ObligationDraft
from rentflow.models.results import (
    ActivationResult,
    BulkCompletionReport,
    CompletionResult,
    MaintenanceReport,
    PaymentAnalytics,
    ReconcileResult,
    RentGenerationReport,
    SigningResult,
)
from rentflow.models.user import User

__all__ = [
    "ActivationResult",
    "BulkCompletionReport",
    "CompletionResult",
    "Lease",
    "LeaseState",
    "MaintenanceReport",
    "Obligation",
    "ObligationDraft",
    "ObligationStatus",
    "ObligationType",
    "PaymentAnalytics",
    "ReconcileResult",
    "RentGenerationReport",
    "SignerRole",
    "SigningResult",
    "User",
    "UserRole",
]
