"""Payment rail client with circuit breaker protection."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import httpx

from rentflow.config import settings
from rentflow.engine.errors import PaymentRailUnavailable
from rentflow.integrations.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
)
from rentflow.observability.metrics import metrics

logger = logging.getLogger(__name__)

# Responses that carry a business rejection rather than a rail outage
REJECTION_STATUS_CODES = {400, 402, 403, 409, 422}


@dataclass
class TransferResult:
    """Outcome of a funds transfer request."""

    success: bool
    reference: Optional[str] = None
    reason: Optional[str] = None


class PaymentRail(ABC):
    """Executes funds transfers between settlement accounts."""

    @abstractmethod
    async def transfer_funds(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        metadata: Optional[dict[str, Any]] = None,
    ) -> TransferResult:
        """
        Request a transfer.

        Returns a failed TransferResult when the rail rejects the transfer and
        raises PaymentRailUnavailable when the rail cannot be reached.
        """


class HttpPaymentRail(PaymentRail):
    """
    Payment rail reached over HTTP.

    POSTs to {endpoint}/transfers. Transport errors and 5xx responses count
    as failures for the circuit breaker; rejections do not.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint or settings.payment_rail_endpoint
        self.api_key = api_key or settings.payment_rail_api_key
        self.timeout = (timeout_ms or settings.payment_rail_timeout_ms) / 1000
        self._transport = transport
        self._circuit_breaker = circuit_breaker
        if self._circuit_breaker is None and settings.payment_rail_circuit_breaker_enabled:
            self._circuit_breaker = CircuitBreaker(
                "payment_rail",
                CircuitBreakerConfig(
                    failure_threshold=settings.payment_rail_circuit_breaker_failure_threshold,
                    timeout_seconds=settings.payment_rail_circuit_breaker_timeout_seconds,
                    half_open_max_calls=settings.payment_rail_circuit_breaker_half_open_max_calls,
                    success_threshold=settings.payment_rail_circuit_breaker_success_threshold,
                ),
            )

    @property
    def circuit_breaker(self) -> Optional[CircuitBreaker]:
        return self._circuit_breaker

    async def transfer_funds(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        metadata: Optional[dict[str, Any]] = None,
    ) -> TransferResult:
        if not self.endpoint:
            raise PaymentRailUnavailable("payment_rail_endpoint not configured")

        payload = {
            "from": from_account,
            "to": to_account,
            "amount": str(amount),
            "metadata": metadata or {},
        }

        try:
            if self._circuit_breaker:
                result = await self._circuit_breaker.call(self._post_transfer, payload)
            else:
                result = await self._post_transfer(payload)
        except CircuitBreakerOpen as e:
            raise PaymentRailUnavailable("circuit breaker open", retry_after=e.retry_after) from e
        except httpx.HTTPError as e:
            metrics.inc_counter("payment_rail.errors")
            raise PaymentRailUnavailable(str(e) or e.__class__.__name__) from e

        if result.success:
            metrics.inc_counter("payment_rail.transfers.accepted")
        else:
            metrics.inc_counter("payment_rail.transfers.rejected")
            logger.warning(f"Payment rail rejected transfer of {amount}: {result.reason}")
        return result

    async def _post_transfer(self, payload: dict[str, Any]) -> TransferResult:
        """POST a transfer request to the rail."""
        url = f"{self.endpoint.rstrip('/')}/transfers"
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        with metrics.timed("payment_rail.request_ms"):
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)

        if response.status_code in REJECTION_STATUS_CODES:
            return TransferResult(success=False, reason=_error_reason(response))

        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise httpx.DecodingError(
                f"Malformed transfer response: {e}", request=response.request
            ) from e
        if not isinstance(data, dict):
            raise httpx.DecodingError("Malformed transfer response", request=response.request)

        if not data.get("success", False):
            return TransferResult(success=False, reason=data.get("reason") or "transfer rejected")
        return TransferResult(success=True, reference=data.get("reference"))


def _error_reason(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("reason") or data.get("detail") or data)
    return str(data)


# Singleton instance
_payment_rail: Optional[PaymentRail] = None


def get_payment_rail() -> PaymentRail:
    """Get or create the payment rail singleton."""
    global _payment_rail
    if _payment_rail is None:
        _payment_rail = HttpPaymentRail()
    return _payment_rail
