"""
Tests for the retry handler and failure classification.
"""

from datetime import timedelta
from unittest.mock import Mock

import httpx
import pytest

from mgmtcore.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from mgmtcore.services.errors import (
    AuthenticationError,
    CircuitOpenError,
    InternalServerError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
)
from mgmtcore.services.retry import RetryHandler, RetryPolicy, is_retryable


class CountingOperation:
    """Async operation that fails with the queued errors, then succeeds."""

    def __init__(self, *errors: Exception, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class AlwaysFailing:
    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        raise self.error


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        "test_api",
        CircuitBreakerConfig(failure_threshold=10, reset_timeout=timedelta(seconds=30)),
        clock=clock,
    )


def make_handler(breaker, sleep, **policy):
    options = {"max_attempts": 3, "initial_delay": 0.1, "max_delay": 1.0}
    options.update(policy)
    return RetryHandler(RetryPolicy(**options), breaker, sleep=sleep)


class TestRetryHandlerExecute:
    @pytest.mark.asyncio
    async def test_success_runs_once(self, breaker, sleep):
        handler = make_handler(breaker, sleep, max_attempts=5)
        operation = CountingOperation()

        assert await handler.execute(operation) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retryable_failure_then_success(self, breaker, sleep):
        on_retry = Mock()
        handler = make_handler(breaker, sleep, on_retry=on_retry)
        error = NetworkError("connection refused")
        operation = CountingOperation(error)

        assert await handler.execute(operation) == "ok"
        assert operation.calls == 2
        assert sleep.delays == [pytest.approx(0.1)]
        on_retry.assert_called_once_with(error, 1)
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, breaker, sleep):
        handler = make_handler(
            breaker, sleep, max_attempts=5, initial_delay=0.1, backoff_multiplier=2, max_delay=0.3
        )
        operation = AlwaysFailing(InternalServerError("HTTP 503", status_code=503))

        with pytest.raises(InternalServerError):
            await handler.execute(operation)

        assert operation.calls == 5
        assert sleep.delays == pytest.approx([0.1, 0.2, 0.3, 0.3])
        assert sleep.delays == sorted(sleep.delays)
        assert max(sleep.delays) <= 0.3

    @pytest.mark.asyncio
    async def test_sleeps_follow_policy_delays(self, breaker, sleep):
        handler = make_handler(
            breaker, sleep, max_attempts=4, initial_delay=2.0, backoff_multiplier=3, max_delay=1.5
        )

        with pytest.raises(NetworkError):
            await handler.execute(AlwaysFailing(NetworkError("connection reset")))

        assert sleep.delays == handler.policy.delays()
        assert sleep.delays == [1.5, 1.5, 1.5]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("project not found"),
            AuthenticationError("invalid token"),
            ValueError("bad input"),
        ],
    )
    async def test_non_retryable_failure_runs_once(self, breaker, sleep, error):
        handler = make_handler(breaker, sleep, max_attempts=5)
        operation = AlwaysFailing(error)

        with pytest.raises(type(error)):
            await handler.execute(operation)

        assert operation.calls == 1
        assert sleep.delays == []
        # Client errors still count against the breaker
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, breaker, sleep):
        for _ in range(10):
            breaker.record_failure()
        handler = make_handler(breaker, sleep, max_attempts=5)
        operation = CountingOperation()

        with pytest.raises(CircuitOpenError) as exc_info:
            await handler.execute(operation)

        assert operation.calls == 0
        assert sleep.delays == []
        assert exc_info.value.is_retryable() is False
        # The rejection itself is not recorded as a failure
        assert breaker.failure_count == 10

    @pytest.mark.asyncio
    async def test_breaker_opening_mid_loop_stops_retries(self, clock, sleep):
        breaker = CircuitBreaker(
            "test_api",
            CircuitBreakerConfig(failure_threshold=2, reset_timeout=timedelta(seconds=30)),
            clock=clock,
        )
        handler = make_handler(breaker, sleep, max_attempts=5)
        operation = AlwaysFailing(NetworkError("connection reset"))

        with pytest.raises(CircuitOpenError):
            await handler.execute(operation)

        assert operation.calls == 2
        assert breaker.get_state() == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_half_open_probe_success_closes(self, clock, sleep):
        breaker = CircuitBreaker(
            "test_api",
            CircuitBreakerConfig(failure_threshold=1, reset_timeout=timedelta(seconds=1)),
            clock=clock,
        )
        breaker.record_failure()
        clock.advance(2)
        handler = make_handler(breaker, sleep)

        assert await handler.execute(CountingOperation()) == "ok"
        assert breaker.get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_disabled_retry_calls_once(self, breaker, sleep):
        handler = make_handler(breaker, sleep, enabled=False, max_attempts=5)
        operation = AlwaysFailing(NetworkError("connection refused"))

        with pytest.raises(NetworkError):
            await handler.execute(operation)

        assert operation.calls == 1
        assert breaker.failure_count == 0

    def test_diagnostics(self, breaker, sleep):
        handler = make_handler(breaker, sleep, max_attempts=4)
        assert handler.get_max_attempts() == 4
        assert handler.is_circuit_open() is False

        for _ in range(10):
            breaker.record_failure()
        assert handler.is_circuit_open() is True

        handler.reset_circuit_breaker()
        assert handler.get_circuit_breaker_state() == CircuitState.CLOSED


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.initial_delay == 1.0
        assert policy.backoff_multiplier == 2.0
        assert policy.max_delay == 10.0

    def test_delay_sequence_is_capped(self):
        policy = RetryPolicy(max_attempts=6, initial_delay=1, backoff_multiplier=3, max_delay=10)
        assert policy.delays() == [1, 3, 9, 10, 10]

    @pytest.mark.parametrize(
        "options",
        [
            {"max_attempts": 0},
            {"initial_delay": -1},
            {"backoff_multiplier": 0.5},
        ],
    )
    def test_invalid_policy(self, options):
        with pytest.raises(ValueError):
            RetryPolicy(**options)


class TestIsRetryable:
    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("connection refused"),
            RequestTimeoutError("api", 30),
            RateLimitError(),
            InternalServerError("boom", status_code=502),
            httpx.ConnectTimeout("timed out"),
            httpx.ConnectError("failed"),
            ConnectionResetError("reset by peer"),
            TimeoutError(),
            Exception("connect ECONNREFUSED 127.0.0.1:443"),
            Exception("getaddrinfo ENOTFOUND api.example.com"),
            Exception("socket hang up ECONNRESET"),
            Exception("HTTP 429 Too Many Requests"),
            Exception("rate limit exceeded"),
            Exception("HTTP 503 Service Unavailable"),
            Exception("504 Gateway Timeout"),
        ],
    )
    def test_retryable(self, error):
        assert is_retryable(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            CircuitOpenError("api", 10),
            NotFoundError("missing"),
            AuthenticationError("no token"),
            ValueError("invalid literal"),
            Exception("HTTP 404 Not Found"),
            Exception("listening on port 5000"),
        ],
    )
    def test_not_retryable(self, error):
        assert is_retryable(error) is False
