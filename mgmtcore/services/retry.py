"""
RetryHandler - Exponential backoff retries guarded by a circuit breaker.

Each attempt first asks the breaker for permission. Transient failures
(network, timeouts, 429, 5xx) are retried after a deterministic delay that
grows by ``backoff_multiplier`` up to ``max_delay``; anything else is raised
at once.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from mgmtcore.services.circuit_breaker import CircuitBreaker, CircuitState
from mgmtcore.services.errors import CircuitOpenError, ServiceError

T = TypeVar("T")

RetryCallback = Callable[[BaseException, int], None]

_TRANSIENT_MARKERS = (
    "econnrefused",
    "connection refused",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "etimedout",
    "timed out",
    "timeout",
    "econnreset",
    "connection reset",
    "rate limit",
)
_TRANSIENT_STATUS = re.compile(r"\b(429|500|502|503|504)\b")


def is_retryable(error: BaseException) -> bool:
    """Decide whether a failed attempt is worth repeating."""
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, ServiceError):
        return error.is_retryable()
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    text = str(error).lower()
    if any(marker in text for marker in _TRANSIENT_MARKERS):
        return True
    return _TRANSIENT_STATUS.search(text) is not None


def _noop_retry(error: BaseException, attempt: int) -> None:
    pass


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration. Delays are in seconds."""

    enabled: bool = True
    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0
    on_retry: RetryCallback = _noop_retry

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be at least 1, got {self.backoff_multiplier}"
            )

    def delays(self) -> list[float]:
        """The sleep before each retry, in order."""
        result = []
        delay = min(self.initial_delay, self.max_delay)
        for _ in range(self.max_attempts - 1):
            result.append(delay)
            delay = min(delay * self.backoff_multiplier, self.max_delay)
        return result


class RetryHandler:
    """
    Runs async operations with retries and a circuit breaker.

    Usage:
        handler = RetryHandler(RetryPolicy(max_attempts=3), CircuitBreaker("api"))

        data = await handler.execute(lambda: client.get(url))
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self.circuit_breaker = circuit_breaker or CircuitBreaker("default")
        self._sleep = sleep

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an operation with retry logic.

        Raises:
            CircuitOpenError: If the breaker rejects an attempt
            Exception: The last failure once retries are exhausted or a
                non-retryable failure occurs
        """
        if not self.policy.enabled:
            return await operation()

        breaker = self.circuit_breaker
        delays = self.policy.delays()
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            if not breaker.allow_request():
                raise CircuitOpenError(
                    breaker.service_id,
                    breaker.get_time_until_reset() or 0,
                )

            try:
                result = await operation()
            except Exception as e:
                breaker.record_failure()

                if attempt == max_attempts:
                    logger.warning(
                        f"Giving up on '{breaker.service_id}' after {attempt} attempts: {e}"
                    )
                    raise

                if not is_retryable(e):
                    raise

                delay = delays[attempt - 1]
                self.policy.on_retry(e, attempt)
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} to '{breaker.service_id}' "
                    f"failed: {e}. Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
                continue

            breaker.record_success()
            return result

        raise RuntimeError("retry loop exited without a result")

    def get_max_attempts(self) -> int:
        return self.policy.max_attempts

    def get_circuit_breaker_state(self) -> CircuitState:
        return self.circuit_breaker.get_state()

    def is_circuit_open(self) -> bool:
        return self.circuit_breaker.is_open()

    def reset_circuit_breaker(self) -> None:
        self.circuit_breaker.reset()
