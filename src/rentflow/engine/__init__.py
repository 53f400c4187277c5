"""RentFlow engine - lease lifecycle and payment obligations."""

from rentflow.engine.core import LeaseEngine
from rentflow.engine.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    PartialActivationError,
    PaymentRailUnavailable,
    RentFlowError,
)

__all__ = [
    "ConflictError",
    "ForbiddenError",
    "InternalError",
    "LeaseEngine",
    "NotFoundError",
    "PartialActivationError",
    "PaymentRailUnavailable",
    "RentFlowError",
]
