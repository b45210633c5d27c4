"""
ProviderClient - Async HTTP access to one upstream provider.

Combines:
- CacheManager for response caching, with lifetimes from the TTL policy
- RetryExecutor for transient failures
- Typed errors for every failure path
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger
from pydantic import BaseModel

from weather_server.services.cache import (
    MISSING,
    CacheManager,
    CacheStats,
    Lifetime,
    generate_key,
)
from weather_server.services.errors import (
    ApiError,
    error_from_status,
    help_links_for,
    translate_transport_error,
)
from weather_server.services.retry import RetryExecutor, RetryPolicy
from weather_server.services.ttl import CacheCategory, ttl_for


@dataclass
class ServiceConfig:
    """Configuration for one upstream provider."""

    provider: str
    base_url: str
    timeout: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    use_cache: bool = True
    headers: dict[str, str] = field(default_factory=dict)
    status_path: str = "/"
    status_params: dict[str, Any] | None = None


class ServiceStatus(BaseModel):
    """Result of a provider health probe."""

    provider: str
    operational: bool
    message: str
    last_checked: datetime
    status_code: int | None = None


class ProviderClient:
    """
    Cached, retrying HTTP client for a single provider.

    Usage:
        cache = CacheManager(max_size=1000)
        client = ProviderClient(
            ServiceConfig(provider="NOAA", base_url="https://api.weather.gov"),
            cache=cache,
        )
        data = await client.fetch(CacheCategory.FORECAST, "/gridpoints/MTR/85,105/forecast")

    Several clients may share one CacheManager; keys are namespaced by provider.
    """

    def __init__(
        self,
        config: ServiceConfig,
        cache: CacheManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        self.config = config
        self._cache = cache if config.use_cache else None
        self._transport = transport
        self._retry = RetryExecutor(
            RetryPolicy(
                max_retries=config.max_retries,
                base_delay=config.retry_base_delay,
            ),
            name=config.provider,
            sleep=sleep,
            rng=rng,
        )

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @property
    def provider(self) -> str:
        return self.config.provider

    @property
    def max_retries(self) -> int:
        return self._retry.policy.max_retries

    @property
    def cache_enabled(self) -> bool:
        return self._cache is not None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Accept": "application/json", **self.config.headers},
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    def cache_key(
        self,
        category: CacheCategory,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> str:
        """Key for a request; same logical request, same key."""
        return generate_key(f"{self.provider}:{category.value}:{url}", params)

    async def fetch(
        self,
        category: CacheCategory,
        url: str,
        params: dict[str, Any] | None = None,
        reference_date: date | datetime | None = None,
        ttl: Lifetime | Callable[[], Lifetime] | None = None,
        validate: Callable[[Any], None] | None = None,
        location: tuple[float, float] | None = None,
    ) -> Any:
        """
        Fetch JSON for a request, from cache when possible.

        Args:
            category: Kind of data, selects the cache lifetime
            url: Path relative to the provider base URL, or an absolute URL
            params: Query parameters
            reference_date: Record date, required for HISTORICAL data
            ttl: Explicit lifetime overriding the category default, or a
                callable producing one when the response is stored
            validate: Called on a fresh response before it is cached; an
                exception it raises propagates and nothing is cached
            location: (latitude, longitude) the request is for, reported on
                InvalidLocationError

        Returns:
            Decoded JSON body

        Raises:
            ApiError: Typed error once retries are exhausted or on a
                non-retryable failure
        """
        key = self.cache_key(category, url, params)
        if self._cache is not None:
            cached = self._cache.get(key, MISSING)
            if cached is not MISSING:
                logger.debug(f"[{self.provider}] Cache hit for {category.value}")
                return cached

        if ttl is None:
            # A bad category or a missing record date fails before the network
            ttl_for(category, reference_date)

        data = await self._retry.run(lambda: self._execute_request(url, params, location))
        if validate is not None:
            validate(data)

        if self._cache is not None and data is not None:
            if ttl is None:
                lifetime = ttl_for(category, reference_date)
            elif callable(ttl):
                lifetime = ttl()
            else:
                lifetime = ttl
            self._cache.set(key, data, lifetime)

        return data

    async def _execute_request(
        self,
        url: str,
        params: dict[str, Any] | None,
        location: tuple[float, float] | None = None,
    ) -> Any:
        """Execute one HTTP GET and translate every failure to a typed error."""
        client = await self._get_http_client()

        try:
            response = await client.get(url, params=params)
        except httpx.RequestError as e:
            raise translate_transport_error(self.provider, e) from e

        if response.status_code >= 400:
            raise error_from_status(
                self.provider,
                response.status_code,
                retry_after=response.headers.get("Retry-After"),
                detail=_problem_detail(response),
                location=location,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"Malformed JSON from {self.provider}",
                status_code=502,
                provider=self.provider,
                user_message="The service returned an unreadable response.",
                help_links=help_links_for(self.provider),
                is_retryable=False,
            ) from e

    async def status(self) -> ServiceStatus:
        """
        Probe the provider with one request.

        Bypasses the cache and the retry loop; never raises for upstream
        failures.
        """
        checked_at = datetime.now(timezone.utc)
        try:
            await self._execute_request(self.config.status_path, self.config.status_params)
        except ApiError as e:
            logger.error(f"[{self.provider}] Status check failed: {e.message}")
            return ServiceStatus(
                provider=self.provider,
                operational=False,
                message=f"{self.provider} API is not reachable: {e.message}",
                last_checked=checked_at,
                status_code=e.status_code,
            )

        logger.info(f"[{self.provider}] Status check OK")
        return ServiceStatus(
            provider=self.provider,
            operational=True,
            message=f"{self.provider} API is operational",
            last_checked=checked_at,
        )

    def cache_stats(self) -> CacheStats | None:
        """Statistics of the backing cache, None when caching is disabled."""
        if self._cache is None:
            return None
        return self._cache.get_stats()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug(f"[{self.provider}] client closed")

    async def __aenter__(self) -> "ProviderClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _problem_detail(response: httpx.Response) -> str | None:
    """Pull a short human-readable reason out of an error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail") or body.get("reason")
    if isinstance(detail, str) and detail.strip():
        return detail.strip()[:200]
    return None
