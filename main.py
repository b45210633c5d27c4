"""
Weather server entry point.

Builds the shared cache and both providers, reports upstream status and
cache statistics, then shuts down.
"""

import asyncio
import sys

from loguru import logger

from weather_server.providers import NOAAProvider, OpenMeteoProvider
from weather_server.services import CacheManager, format_error_for_user
from weather_server.settings import load_settings


async def main() -> None:
    """Main function."""
    settings = load_settings()

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())
    logger.info("Starting weather server...")

    cache = CacheManager(max_size=settings.cache_max_size, debug=settings.cache_debug)
    providers = [
        NOAAProvider.from_settings(settings, cache),
        OpenMeteoProvider.from_settings(settings, cache),
    ]

    try:
        for provider in providers:
            status = await provider.status()
            state = "UP" if status.operational else "DOWN"
            logger.info(f"{provider.provider}: {state} - {status.message}")

        # Warm the static mapping for a well-known point
        noaa = providers[0]
        try:
            await noaa.get_point(38.89, -77.04)
        except Exception as e:
            logger.warning(format_error_for_user(e))

        logger.info(f"Cache: {cache.get_stats().to_dict()}")

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        for provider in providers:
            await provider.close()
        cache.clear()
        logger.info("Weather server stopped")


if __name__ == "__main__":
    asyncio.run(main())
