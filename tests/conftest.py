"""
Shared fixtures: a controllable clock, a recording sleep and an
orchestrator wired to an in-memory HTTP transport.
"""

from typing import Callable

import httpx
import pytest

from mgmtcore.services.client import RequestOrchestrator, create_orchestrator
from mgmtcore.settings import load_settings

API_URL = "https://api.test/v1"
TOKEN = "sbp_0123456789abcdef0123456789"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingTransport:
    """Routes requests to a handler and keeps every request it saw."""

    def __init__(self, handler: Handler):
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def env() -> dict[str, str]:
    """Environment used to build test settings."""
    return {
        "SUPABASE_API_URL": API_URL,
        "SUPABASE_ACCESS_TOKEN": TOKEN,
        "RETRY_MAX_ATTEMPTS": "3",
        "RETRY_INITIAL_DELAY": "100",
        "RETRY_MAX_DELAY": "1000",
        "RETRY_BACKOFF_MULTIPLIER": "2",
        "CIRCUIT_BREAKER_THRESHOLD": "5",
        "CIRCUIT_BREAKER_TIMEOUT": "30000",
    }


@pytest.fixture
def make_orchestrator(env, clock, sleep):
    """Factory building an orchestrator around a request handler."""

    def factory(
        handler: Handler, **overrides: str
    ) -> tuple[RequestOrchestrator, RecordingTransport]:
        transport = RecordingTransport(handler)
        settings = load_settings({**env, **overrides})
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
        orchestrator = create_orchestrator(
            settings,
            http_client=http_client,
            clock=clock,
            sleep=sleep,
        )
        return orchestrator, transport

    return factory
