"""Circuit breaker guarding calls to the payment rail."""

import asyncio
import math
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from rentflow.observability.metrics import metrics
from rentflow.utils.time import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Calls pass through
    OPEN = "open"  # Calls fail fast
    HALF_OPEN = "half_open"  # Probing recovery


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    failure_threshold: int = 5
    timeout_seconds: int = 60
    half_open_max_calls: int = 3
    success_threshold: int = 2


class CircuitBreakerOpen(Exception):
    """Raised instead of calling the service while the circuit is open."""

    def __init__(self, service_name: str, retry_after: int):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker open for {service_name}, retry after {retry_after}s")


class CircuitBreaker:
    """
    Circuit breaker for an external service.

    CLOSED opens after failure_threshold consecutive failures. OPEN admits
    probe calls (HALF_OPEN) once timeout_seconds have passed. HALF_OPEN
    closes after success_threshold successes and reopens on any failure.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.opened_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Run an async callable through the breaker.

        Raises CircuitBreakerOpen without calling func while open; exceptions
        from func are recorded and re-raised.
        """
        await self._before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_failure(e)
            raise
        await self._record_success()
        return result

    async def _before_call(self) -> None:
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self.retry_after() > 0:
                    metrics.inc_counter(f"circuit.{self.name}.rejected")
                    raise CircuitBreakerOpen(self.name, self.retry_after())
                self._set_state(CircuitState.HALF_OPEN)

            if self.state == CircuitState.HALF_OPEN:
                if self.half_open_calls >= self.config.half_open_max_calls:
                    metrics.inc_counter(f"circuit.{self.name}.rejected")
                    raise CircuitBreakerOpen(self.name, self.config.timeout_seconds)
                self.half_open_calls += 1

    async def _record_success(self) -> None:
        async with self._lock:
            self.failure_count = 0
            self.success_count += 1
            if (
                self.state == CircuitState.HALF_OPEN
                and self.success_count >= self.config.success_threshold
            ):
                self._set_state(CircuitState.CLOSED)

    async def _record_failure(self, error: Exception) -> None:
        async with self._lock:
            self.success_count = 0
            self.failure_count += 1
            metrics.inc_counter(f"circuit.{self.name}.failures")
            logger.warning(
                f"Circuit {self.name} failure "
                f"({self.failure_count}/{self.config.failure_threshold}): {error}"
            )
            if self.state == CircuitState.HALF_OPEN or (
                self.state == CircuitState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                self._set_state(CircuitState.OPEN)

    def _set_state(self, state: CircuitState) -> None:
        self.state = state
        self.half_open_calls = 0
        if state == CircuitState.OPEN:
            self.opened_at = utc_now()
            logger.warning(f"Circuit {self.name} opened after {self.failure_count} failures")
            metrics.inc_counter(f"circuit.{self.name}.opened")
        elif state == CircuitState.HALF_OPEN:
            self.success_count = 0
            self.failure_count = 0
            logger.info(f"Circuit {self.name} half-open")
        else:
            self.opened_at = None
            self.success_count = 0
            self.failure_count = 0
            logger.info(f"Circuit {self.name} closed")

    def retry_after(self) -> int:
        """Seconds until an open circuit admits a probe call."""
        if self.opened_at is None:
            return 0
        elapsed = (utc_now() - self.opened_at).total_seconds()
        return max(0, math.ceil(self.config.timeout_seconds - elapsed))

    async def reset(self) -> None:
        """Force the circuit closed."""
        async with self._lock:
            self._set_state(CircuitState.CLOSED)
