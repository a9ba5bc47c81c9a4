"""
CircuitBreaker - Stops calling a failing dependency for a cooldown period.

States:
- CLOSED: Normal operation, requests pass through, failures are counted
- OPEN: Dependency is failing, requests are rejected
- HALF_OPEN: Cooldown elapsed, a probe is let through to test recovery

Transitions:
- CLOSED → OPEN: failure_count reaches failure_threshold
- OPEN → HALF_OPEN: allow_request() is called after reset_timeout has
  passed since the last failure (evaluated at check time, no timer)
- HALF_OPEN → CLOSED: a success is recorded
- HALF_OPEN → OPEN: a failure is recorded; the counter is still at or
  above the threshold, so the ordinary threshold check reopens it
"""

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half-open"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    enabled: bool = True
    failure_threshold: int = 5  # Failures before opening
    reset_timeout: timedelta = timedelta(seconds=30)  # Cooldown before half-open


class CircuitBreaker:
    """
    Circuit breaker guarding a single remote dependency.

    Usage:
        cb = CircuitBreaker("management_api")

        if not cb.allow_request():
            raise CircuitOpenError(...)

        try:
            result = await make_request()
            cb.record_success()
            return result
        except Exception:
            cb.record_failure()
            raise
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def get_state(self) -> CircuitState:
        """Get current state without triggering any transition."""
        return self._state

    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def allow_request(self) -> bool:
        """
        Check if a request may be sent.

        An open breaker whose cooldown has elapsed moves to HALF_OPEN as a
        side effect of this check and lets the request through.
        """
        if not self.config.enabled:
            return True

        with self._lock:
            if self._state != CircuitState.OPEN:
                return True

            if self._cooldown_remaining() > 0:
                return False

            self._state = CircuitState.HALF_OPEN
            logger.info(f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN")
            return True

    def record_success(self) -> None:
        """Record a successful request."""
        if not self.config.enabled:
            return

        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

    def record_failure(self) -> None:
        """Record a failed request."""
        if not self.config.enabled:
            return

        with self._lock:
            self._failure_count += 1
            self._last_failure_at = self._clock()

            if self._failure_count >= self.config.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit breaker '{self.service_id}' OPENED after "
                        f"{self._failure_count} failures"
                    )
                self._state = CircuitState.OPEN

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_at = None
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until an open circuit may move to half-open."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return None
            return self._cooldown_remaining()

    def _cooldown_remaining(self) -> float:
        """Seconds left in the cooldown. Caller holds the lock."""
        if self._last_failure_at is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self.config.reset_timeout.total_seconds() - elapsed)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "service_id": self.service_id,
            "enabled": self.config.enabled,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "threshold": self.config.failure_threshold,
            "time_until_reset": self.get_time_until_reset(),
        }
