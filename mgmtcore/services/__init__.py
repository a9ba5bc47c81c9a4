"""
Service layer infrastructure - resilience patterns for management API calls.

Provides:
- Cache: LRU cache with per-entry TTL and lazy expiry
- CircuitBreaker: Fails fast while the remote API is unhealthy
- RetryHandler: Exponential backoff retries guarded by the breaker
- RequestOrchestrator: Single request path combining all patterns
"""

from mgmtcore.services.errors import (
    AuthenticationError,
    CircuitOpenError,
    ConfigurationError,
    ConflictError,
    ErrorCode,
    InternalServerError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ValidationError,
    error_from_status,
)
from mgmtcore.services.cache import Cache, CacheEntry, CacheProfile, CacheStats
from mgmtcore.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from mgmtcore.services.retry import RetryHandler, RetryPolicy, is_retryable
from mgmtcore.services.client import (
    RESOURCE_TTLS,
    RequestOrchestrator,
    create_orchestrator,
    validate_url,
)

__all__ = [
    # Errors
    "AuthenticationError",
    "CircuitOpenError",
    "ConfigurationError",
    "ConflictError",
    "ErrorCode",
    "InternalServerError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RequestTimeoutError",
    "ServiceError",
    "ValidationError",
    "error_from_status",
    # Cache
    "Cache",
    "CacheEntry",
    "CacheProfile",
    "CacheStats",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Retry
    "RetryHandler",
    "RetryPolicy",
    "is_retryable",
    # Client
    "RESOURCE_TTLS",
    "RequestOrchestrator",
    "create_orchestrator",
    "validate_url",
]
