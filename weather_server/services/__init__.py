"""
Service layer infrastructure - resilient access to upstream weather APIs.

Provides:
- CacheManager: Bounded cache with TTL expiry and LRU eviction
- ttl_for: Cache lifetime per data category
- RetryExecutor: Exponential backoff with jitter for transient failures
- ProviderClient: Per-provider client combining all of the above
"""

from weather_server.services.errors import (
    ApiError,
    RateLimitError,
    ServiceUnavailableError,
    InvalidLocationError,
    DataNotFoundError,
    ValidationError,
    is_retryable_error,
    format_error_for_user,
)
from weather_server.services.cache import (
    CacheManager,
    CacheEntry,
    CacheStats,
    MISSING,
    NEVER_EXPIRES,
    generate_key,
)
from weather_server.services.ttl import CacheCategory, ttl_for, ttl_for_range
from weather_server.services.retry import RetryExecutor, RetryPolicy, RetryState
from weather_server.services.client import ProviderClient, ServiceConfig, ServiceStatus

__all__ = [
    # Errors
    "ApiError",
    "RateLimitError",
    "ServiceUnavailableError",
    "InvalidLocationError",
    "DataNotFoundError",
    "ValidationError",
    "is_retryable_error",
    "format_error_for_user",
    # Cache
    "CacheManager",
    "CacheEntry",
    "CacheStats",
    "MISSING",
    "NEVER_EXPIRES",
    "generate_key",
    # TTL
    "CacheCategory",
    "ttl_for",
    "ttl_for_range",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    "RetryState",
    # Client
    "ProviderClient",
    "ServiceConfig",
    "ServiceStatus",
]
