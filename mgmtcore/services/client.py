"""
RequestOrchestrator - Single request path to the remote management API.

Combines:
- Bearer token injection from a token provider
- Cache-aside reads keyed by "{resource_type}:{resource_id}"
- RetryHandler (exponential backoff + circuit breaker) around every call
- Classification of failed responses into typed ServiceErrors
- Targeted and namespace-wide cache invalidation after mutations
"""

import asyncio
import json
import time
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import urlsplit

import httpx
from loguru import logger

from mgmtcore.auth import TokenProvider, env_token_provider, resolve_token
from mgmtcore.services.cache import Cache, CacheProfile
from mgmtcore.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from mgmtcore.services.errors import (
    AuthenticationError,
    ConfigurationError,
    ErrorCode,
    NetworkError,
    RequestTimeoutError,
    ServiceError,
    error_from_status,
)
from mgmtcore.services.retry import RetryCallback, RetryHandler, RetryPolicy
from mgmtcore.settings import Settings

T = TypeVar("T")

DEFAULT_API_BASE_URL = "https://api.supabase.com/v1"
SERVICE_ID = "management_api"

# Cache TTL per resource namespace
RESOURCE_TTLS: dict[str, timedelta] = {
    "backups": CacheProfile.MEDIUM,
    "branches": CacheProfile.FAST,
    "extensions": CacheProfile.STATIC,
    "functions": CacheProfile.MEDIUM,
    "integrations": CacheProfile.SLOW,
    "logs": CacheProfile.FAST,
    "migrations": CacheProfile.MEDIUM,
    "monitor": CacheProfile.FAST,
    "networks": CacheProfile.SLOW,
    "organizations": CacheProfile.SLOW,
    "projects": CacheProfile.SLOW,
    "regions": CacheProfile.STATIC,
    "replicas": CacheProfile.MEDIUM,
    "schedules": CacheProfile.SLOW,
    "secrets": CacheProfile.MEDIUM,
    "security": CacheProfile.SLOW,
    "storage": CacheProfile.MEDIUM,
    "tables": CacheProfile.MEDIUM,
}

_MISSING = object()

Invalidation = str | tuple[str, str]


def validate_url(url: str) -> None:
    """Reject anything that is not an absolute http(s) URL."""
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ConfigurationError("Invalid URL format") from e

    if parts.scheme not in ("http", "https"):
        raise ConfigurationError("Invalid URL protocol. Only http and https are allowed.")
    if not parts.netloc:
        raise ConfigurationError("Invalid URL format")


def _message_from_body(body: Any) -> str | None:
    """Pull a human-readable message out of a JSON error body."""
    if not isinstance(body, dict):
        return None
    if body.get("message"):
        return str(body["message"])

    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return None


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class RequestOrchestrator:
    """
    Resilient client for the management API.

    Usage:
        orchestrator = create_orchestrator(load_settings())

        # Cached read
        project = await orchestrator.cached_fetch(
            "project",
            ref,
            lambda: orchestrator.enhanced_fetch(f"/projects/{ref}"),
        )

        # Mutation followed by invalidation
        await orchestrator.mutate(
            f"/projects/{ref}/pause",
            invalidate=["projects", ("project", ref)],
        )
    """

    def __init__(
        self,
        cache: Cache,
        retry_handler: RetryHandler,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_API_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        resource_ttls: Mapping[str, timedelta] | None = None,
        default_resource_ttl: timedelta = CacheProfile.SLOW,
        debug: bool = False,
    ):
        self._cache = cache
        self._retry = retry_handler
        self._token_provider = token_provider
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._resource_ttls = dict(RESOURCE_TTLS if resource_ttls is None else resource_ttls)
        self._default_resource_ttl = default_resource_ttl
        self._debug = debug

        # HTTP client (lazy initialization)
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @property
    def cache(self) -> Cache:
        return self._cache

    @property
    def retry_handler(self) -> RetryHandler:
        return self._retry

    @property
    def token_provider(self) -> TokenProvider:
        return self._token_provider

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    def resolve_url(self, url: str) -> str:
        """Expand an API path such as "/projects" against the base URL."""
        if url.startswith("/"):
            return f"{self._base_url}{url}"
        return url

    def ttl_for(self, resource_type: str) -> timedelta:
        """Default TTL for a resource namespace."""
        return self._resource_ttls.get(resource_type, self._default_resource_ttl)

    async def enhanced_fetch(
        self,
        url: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        context: str = "",
    ) -> Any:
        """
        Make an authenticated request with retries.

        Args:
            url: Absolute URL or path relative to the API base URL
            method: HTTP method
            params: Query parameters
            json_data: JSON body for POST/PUT/PATCH requests
            headers: Additional headers
            timeout: Override request timeout in seconds
            context: Free-form label added to the debug timing line

        Returns:
            Parsed JSON body, or None for empty responses

        Raises:
            ConfigurationError: If the URL is not http(s)
            AuthenticationError: If no token is available or the API rejects it
            CircuitOpenError: If the circuit breaker is open
            ServiceError: For every other failed request
        """
        full_url = self.resolve_url(url)
        validate_url(full_url)

        token = await resolve_token(self._token_provider)
        if not token:
            raise AuthenticationError(
                'No authentication token found. Set SUPABASE_ACCESS_TOKEN or run "init" '
                "to set up authentication.",
                status_code=None,
            )

        req_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if headers:
            req_headers.update(headers)

        req_timeout = timeout if timeout is not None else self._timeout
        started = time.perf_counter()

        async def attempt() -> Any:
            return await self._send(method, full_url, params, json_data, req_headers, req_timeout)

        result = await self._retry.execute(attempt)

        duration_ms = int((time.perf_counter() - started) * 1000)
        path = full_url.replace(self._base_url, "")
        self._log(f"{method} {path} ({duration_ms}ms{f', {context}' if context else ''})")
        return result

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        json_data: Any,
        headers: dict[str, str],
        timeout: float,
    ) -> Any:
        """Execute a single HTTP attempt and classify its outcome."""
        client = await self._get_http_client()
        service_id = self._retry.circuit_breaker.service_id

        try:
            response = await client.request(
                method=method,
                url=url,
                params=params,
                headers=headers,
                json=json_data,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(service_id, timeout) from e
        except httpx.TransportError as e:
            raise NetworkError(str(e) or type(e).__name__, service_id=service_id) from e

        if not response.is_success:
            raise self._error_from_response(response)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(
                f"Invalid JSON in response from {url}",
                ErrorCode.API_ERROR,
                response.status_code,
                service_id=service_id,
            ) from e

    def _error_from_response(self, response: httpx.Response) -> ServiceError:
        message = f"API request failed: {response.status_code} {response.reason_phrase}"
        details = None

        body = response.text
        if body:
            try:
                details = json.loads(body)
            except ValueError:
                message = body
            else:
                message = _message_from_body(details) or message

        error = error_from_status(
            response.status_code,
            message,
            details,
            retry_after=_parse_retry_after(response),
        )
        error.service_id = self._retry.circuit_breaker.service_id
        return error

    async def cached_fetch(
        self,
        resource_type: str,
        resource_id: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: timedelta | None = None,
    ) -> T:
        """
        Return a cached value or fetch and cache it.

        The fetcher is not called on a cache hit. Results are stored with
        ``ttl`` or the namespace default from ``ttl_for``.
        """
        cache_key = f"{resource_type}:{resource_id}"

        cached = self._cache.get(cache_key, _MISSING)
        if cached is not _MISSING:
            self._log(f"Cache hit: {cache_key}")
            return cached

        data = await fetcher()
        self._cache.set(cache_key, data, ttl if ttl is not None else self.ttl_for(resource_type))
        self._log(f"Cache miss, fetched and cached: {cache_key}")
        return data

    def invalidate(self, resource_type: str, resource_id: str | None = None) -> int:
        """
        Forget cached data.

        With an id, deletes exactly "{resource_type}:{resource_id}". Without
        one, deletes every key in the resource_type namespace.

        Returns:
            Number of entries removed
        """
        if resource_id is not None:
            cache_key = f"{resource_type}:{resource_id}"
            removed = int(self._cache.delete(cache_key))
            self._log(f"Cache invalidated: {cache_key}")
            return removed

        prefix = f"{resource_type}:"
        removed = 0
        for key in self._cache.keys():
            if key.startswith(prefix) and self._cache.delete(key):
                removed += 1
        self._log(f"Cache invalidated: {removed} entries in '{resource_type}'")
        return removed

    async def mutate(
        self,
        url: str,
        method: str = "POST",
        json_data: Any = None,
        params: dict[str, Any] | None = None,
        invalidate: Iterable[Invalidation] = (),
        context: str = "",
    ) -> Any:
        """
        Perform a write, bypassing the cache, then invalidate affected data.

        Each ``invalidate`` item is a namespace ("projects") or an exact
        (resource_type, resource_id) pair. Nothing is invalidated if the
        request fails.
        """
        result = await self.enhanced_fetch(
            url,
            method=method,
            params=params,
            json_data=json_data,
            context=context,
        )

        for target in invalidate:
            if isinstance(target, tuple):
                self.invalidate(*target)
            else:
                self.invalidate(target)

        return result

    # Health and status methods

    def is_circuit_open(self) -> bool:
        return self._retry.is_circuit_open()

    def get_max_attempts(self) -> int:
        return self._retry.get_max_attempts()

    def cache_size(self) -> int:
        return self._cache.size()

    def reset_circuit(self) -> None:
        """Reset the circuit breaker (used by diagnostics tooling)."""
        self._retry.reset_circuit_breaker()

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_health_status(self) -> dict[str, Any]:
        """Get health status of the request path."""
        policy = self._retry.policy
        return {
            "cache": {"enabled": self._cache.enabled, **self._cache.get_stats().to_dict()},
            "circuit_breaker": self._retry.circuit_breaker.get_status(),
            "retry": {
                "enabled": policy.enabled,
                "max_attempts": policy.max_attempts,
                "initial_delay": policy.initial_delay,
                "backoff_multiplier": policy.backoff_multiplier,
                "max_delay": policy.max_delay,
            },
        }

    async def close(self) -> None:
        """Close the HTTP client if this orchestrator created it."""
        if self._http_client and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("RequestOrchestrator closed")

    async def __aenter__(self) -> "RequestOrchestrator":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[RequestOrchestrator] {message}")


def _log_retry(error: BaseException, attempt: int) -> None:
    logger.debug(f"Retrying request after attempt {attempt}: {type(error).__name__}")


def create_orchestrator(
    settings: Settings,
    token_provider: TokenProvider | None = None,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: RetryCallback | None = None,
) -> RequestOrchestrator:
    """
    Build the cache, breaker, retry handler and orchestrator from settings.

    Call once at process start and pass the result to whatever issues
    requests.
    """
    cache = Cache(
        max_size=settings.cache_max_size,
        default_ttl=settings.cache_ttl,
        enabled=settings.cache_enabled,
        clock=clock,
        debug=settings.debug,
    )
    breaker = CircuitBreaker(
        SERVICE_ID,
        CircuitBreakerConfig(
            enabled=settings.circuit_breaker_enabled,
            failure_threshold=settings.circuit_breaker_threshold,
            reset_timeout=timedelta(milliseconds=settings.circuit_breaker_timeout_ms),
        ),
        clock=clock,
    )
    policy = RetryPolicy(
        enabled=settings.retry_enabled,
        max_attempts=settings.retry_max_attempts,
        initial_delay=settings.retry_initial_delay_ms / 1000,
        backoff_multiplier=settings.retry_backoff_multiplier,
        max_delay=settings.retry_max_delay_ms / 1000,
        on_retry=on_retry or _log_retry,
    )
    retry_handler = RetryHandler(policy, breaker, sleep=sleep)

    resource_ttls = dict(RESOURCE_TTLS)
    resource_ttls["project"] = settings.cache_project_ttl

    return RequestOrchestrator(
        cache=cache,
        retry_handler=retry_handler,
        token_provider=token_provider or env_token_provider(settings),
        base_url=settings.api_base_url,
        http_client=http_client,
        timeout=settings.request_timeout,
        resource_ttls=resource_ttls,
        default_resource_ttl=settings.cache_project_ttl,
        debug=settings.debug,
    )
