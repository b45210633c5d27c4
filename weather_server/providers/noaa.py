"""
NOAA / National Weather Service API provider (US locations only).

API Documentation: https://www.weather.gov/documentation/services-web-api
No API key required, but every request must carry an identifying User-Agent.
"""

from datetime import date, datetime
from typing import Any

from loguru import logger

from weather_server.providers.base import BaseProvider
from weather_server.services.client import ServiceConfig
from weather_server.services.errors import DataNotFoundError, ValidationError
from weather_server.services.ttl import CacheCategory, ttl_for_range
from weather_server.settings import Settings
from weather_server.validation import parse_datetime, round_coordinates


class NOAAProvider(BaseProvider):
    """
    National Weather Service data.

    Most lookups start from /points, which maps coordinates to a forecast
    office grid and links to the forecast and station endpoints. That mapping
    never changes, so it is cached forever.
    """

    BASE_URL = "https://api.weather.gov"
    SERVICE_ID = "NOAA"

    @classmethod
    def default_config(cls, settings: Settings) -> ServiceConfig:
        return ServiceConfig(
            provider=cls.SERVICE_ID,
            base_url=cls.BASE_URL,
            headers={
                "User-Agent": settings.noaa_user_agent,
                "Accept": "application/geo+json",
            },
            status_path="/",
        )

    async def get_point(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Grid metadata for a location."""
        lat, lon = round_coordinates(latitude, longitude)
        return await self.client.fetch(
            CacheCategory.GRID_POINT, f"/points/{lat:g},{lon:g}", location=(lat, lon)
        )

    async def _point_link(self, latitude: float, longitude: float, name: str) -> str:
        point = await self.get_point(latitude, longitude)
        url = (point.get("properties") or {}).get(name)
        if not url:
            raise DataNotFoundError(
                self.SERVICE_ID,
                f"NOAA has no {name} data for ({latitude}, {longitude}). "
                "NOAA only covers US locations.",
            )
        return url

    async def get_forecast(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Twelve-hour forecast periods for the next seven days."""
        url = await self._point_link(latitude, longitude, "forecast")
        return await self.client.fetch(CacheCategory.FORECAST, url)

    async def get_hourly_forecast(self, latitude: float, longitude: float) -> dict[str, Any]:
        url = await self._point_link(latitude, longitude, "forecastHourly")
        return await self.client.fetch(CacheCategory.FORECAST, url)

    async def get_stations(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Observation stations near a location, nearest first."""
        url = await self._point_link(latitude, longitude, "observationStations")
        return await self.client.fetch(CacheCategory.STATIONS, url)

    async def get_nearest_station(self, latitude: float, longitude: float) -> str:
        stations = await self.get_stations(latitude, longitude)
        features = stations.get("features") or []
        if not features:
            raise DataNotFoundError(
                self.SERVICE_ID,
                f"No weather stations found near ({latitude}, {longitude}).",
            )
        return features[0]["properties"]["stationIdentifier"]

    async def get_current_conditions(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Latest observation from the nearest station."""
        station = await self.get_nearest_station(latitude, longitude)
        return await self.client.fetch(
            CacheCategory.CURRENT_CONDITIONS,
            f"/stations/{station}/observations/latest",
        )

    async def get_historical_observations(
        self,
        latitude: float,
        longitude: float,
        start: str | date | datetime,
        end: str | date | datetime,
        limit: int = 168,
    ) -> dict[str, Any]:
        """
        Observations from the nearest station between start and end.

        The whole range is cached as one entry, with the lifetime its newest
        record allows.
        """
        start_time = parse_datetime(start, "start_date")
        end_time = parse_datetime(end, "end_date")
        if start_time > end_time:
            raise ValidationError(
                f"Invalid date range: start_date {start} is after end_date {end}.",
                field="start_date",
                value=str(start),
            )
        if not 1 <= limit <= 500:
            raise ValidationError(
                f"Invalid limit: {limit}. Must be between 1 and 500.", field="limit", value=limit
            )
        station = await self.get_nearest_station(latitude, longitude)

        logger.debug(f"[NOAA] Historical observations for {station}: {start_time} to {end_time}")
        return await self.client.fetch(
            CacheCategory.HISTORICAL,
            f"/stations/{station}/observations",
            params={
                "start": start_time.isoformat(),
                "end": end_time.isoformat(),
                "limit": limit,
            },
            reference_date=end_time,
            ttl=lambda: ttl_for_range(start_time, end_time),
        )

    async def get_alerts(
        self,
        latitude: float,
        longitude: float,
        active_only: bool = True,
    ) -> dict[str, Any]:
        """Watches, warnings and advisories covering a location."""
        lat, lon = round_coordinates(latitude, longitude)
        return await self.client.fetch(
            CacheCategory.ALERTS,
            "/alerts/active" if active_only else "/alerts",
            params={"point": f"{lat:g},{lon:g}"},
            location=(lat, lon),
        )
