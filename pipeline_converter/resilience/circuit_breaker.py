"""Circuit breaker for the conversation service.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Too many failures, requests rejected immediately
- HALF_OPEN: Probing whether the service recovered

Example:
    >>> breaker = CircuitBreaker("conversation", CircuitBreakerConfig(failure_threshold=5))
    >>> reply = await breaker.call(post_chat_completion, payload)
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pipeline_converter.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before opening the circuit
        timeout_seconds: How long to keep the circuit open before probing
        success_threshold: Successes in HALF_OPEN needed to close the circuit
    """

    failure_threshold: int = 5
    timeout_seconds: float = 60.0
    success_threshold: int = 2


class CircuitBreaker:
    """Async circuit breaker shared by every session of one client.

    Only exceptions accepted by ``counts_as_failure`` trip the breaker, so
    a caller's own cancellation or a malformed prompt does not.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig,
        counts_as_failure: Optional[Callable[[Exception], bool]] = None,
    ):
        self.name = name
        self.config = config
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self._counts_as_failure = counts_as_failure or (lambda exc: True)

    def check(self) -> None:
        """Raise if the circuit rejects calls right now.

        Raises:
            ExternalServiceError: error_type "circuit_open"
        """
        if self.state != CircuitState.OPEN:
            return
        if self._should_attempt_reset():
            self._transition_to_half_open()
            return
        raise ExternalServiceError(
            service_name=self.name,
            error_type="circuit_open",
            details={
                "reason": "circuit breaker is open",
                "retry_after": self._time_until_retry(),
            },
        )

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await ``func`` with circuit breaker protection."""
        self.check()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if self._counts_as_failure(e):
                self._on_failure()
            raise
        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return False
        return time.monotonic() - self.last_failure_time >= self.config.timeout_seconds

    def _time_until_retry(self) -> int:
        if self.last_failure_time is None:
            return 0
        remaining = self.config.timeout_seconds - (time.monotonic() - self.last_failure_time)
        return max(0, int(remaining))

    def _transition_to_half_open(self) -> None:
        self.state = CircuitState.HALF_OPEN
        self.success_count = 0
        logger.info(f"Circuit breaker '{self.name}' entering HALF_OPEN state")

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self._transition_to_closed()
        else:
            self.failure_count = 0

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_open("re-OPENED after failure in HALF_OPEN")
        elif self.failure_count >= self.config.failure_threshold:
            self._transition_to_open(f"OPENED after {self.failure_count} failures")

    def _transition_to_closed(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        logger.info(f"Circuit breaker '{self.name}' CLOSED")

    def _transition_to_open(self, reason: str) -> None:
        self.state = CircuitState.OPEN
        logger.warning(f"Circuit breaker '{self.name}' {reason}", extra={"service": self.name})

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        self._transition_to_closed()

    def get_state(self) -> dict[str, Any]:
        """Current breaker state for logging and diagnostics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "time_until_retry": self._time_until_retry()
            if self.state == CircuitState.OPEN
            else 0,
        }
