"""External service integrations and resilience patterns."""

from rentflow.integrations.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
)
from rentflow.integrations.payment_rail import (
    HttpPaymentRail,
    PaymentRail,
    TransferResult,
    get_payment_rail,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "HttpPaymentRail",
    "PaymentRail",
    "TransferResult",
    "get_payment_rail",
]
