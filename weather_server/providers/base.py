"""
Base provider interface.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

import httpx

from weather_server.services.cache import CacheManager, CacheStats
from weather_server.services.client import ProviderClient, ServiceConfig, ServiceStatus
from weather_server.settings import Settings


class BaseProvider(ABC):
    """
    Abstract base class for upstream weather providers.

    All providers should:
    - Use ProviderClient for HTTP requests (caching, retries, typed errors)
    - Validate inputs before any request is made
    - Let typed errors propagate to the caller
    """

    def __init__(self, client: ProviderClient):
        self.client = client

    @classmethod
    @abstractmethod
    def default_config(cls, settings: Settings) -> ServiceConfig:
        """Service configuration for this provider."""
        ...

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: CacheManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        """Build the provider around a new ProviderClient."""
        config = cls.default_config(settings)
        config.timeout = settings.request_timeout
        config.max_retries = settings.max_retries
        config.retry_base_delay = settings.retry_base_delay_s
        config.use_cache = settings.cache_enabled
        return cls(
            ProviderClient(config, cache=cache, transport=transport, sleep=sleep, rng=rng)
        )

    @property
    def provider(self) -> str:
        return self.client.provider

    async def status(self) -> ServiceStatus:
        return await self.client.status()

    def cache_stats(self) -> CacheStats | None:
        return self.client.cache_stats()

    async def close(self) -> None:
        await self.client.close()
