"""
Open-Meteo API provider (global coverage).

API Documentation: https://open-meteo.com/en/docs
Free for non-commercial use, no API key required.
"""

from datetime import date
from typing import Any

from weather_server.providers.base import BaseProvider
from weather_server.services.client import ServiceConfig
from weather_server.services.errors import DataNotFoundError, ValidationError
from weather_server.services.ttl import CacheCategory, ttl_for_range
from weather_server.settings import Settings
from weather_server.validation import (
    round_coordinates,
    validate_date_range,
    validate_forecast_days,
)

ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"

HOURLY_VARIABLES = [
    "temperature_2m",
    "relative_humidity_2m",
    "dew_point_2m",
    "apparent_temperature",
    "precipitation",
    "weather_code",
    "pressure_msl",
    "cloud_cover",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
]

DAILY_VARIABLES = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "apparent_temperature_max",
    "apparent_temperature_min",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "sunrise",
    "sunset",
]

# Archive has no probability forecasts
ARCHIVE_DAILY_VARIABLES = [v for v in DAILY_VARIABLES if v != "precipitation_probability_max"]

IMPERIAL_UNITS = {
    "temperature_unit": "fahrenheit",
    "wind_speed_unit": "mph",
    "precipitation_unit": "inch",
    "timezone": "auto",
}


class OpenMeteoProvider(BaseProvider):
    """
    Open-Meteo forecast, historical archive and geocoding.

    Used for locations outside NOAA coverage and for history back to 1940.
    """

    BASE_URL = "https://api.open-meteo.com/v1"
    SERVICE_ID = "OpenMeteo"

    @classmethod
    def default_config(cls, settings: Settings) -> ServiceConfig:
        return ServiceConfig(
            provider=cls.SERVICE_ID,
            base_url=cls.BASE_URL,
            status_path="/forecast",
            status_params={
                "latitude": 40.71,
                "longitude": -74.01,
                "hourly": "temperature_2m",
                "forecast_days": 1,
            },
        )

    async def get_forecast(
        self,
        latitude: float,
        longitude: float,
        days: int = 7,
        hourly: bool = False,
    ) -> dict[str, Any]:
        """Daily (or hourly) forecast for up to 16 days."""
        lat, lon = round_coordinates(latitude, longitude)
        days = validate_forecast_days(days)
        params: dict[str, Any] = {
            "latitude": lat,
            "longitude": lon,
            "forecast_days": days,
            **IMPERIAL_UNITS,
        }
        if hourly:
            params["hourly"] = ",".join(HOURLY_VARIABLES)
        else:
            params["daily"] = ",".join(DAILY_VARIABLES)

        return await self.client.fetch(
            CacheCategory.FORECAST, "/forecast", params=params, location=(lat, lon)
        )

    async def get_historical_weather(
        self,
        latitude: float,
        longitude: float,
        start: str | date,
        end: str | date,
        hourly: bool = True,
    ) -> dict[str, Any]:
        """
        Reanalysis archive between two dates, inclusive.

        Raises DataNotFoundError when the archive has no rows for the range,
        e.g. before 1940 or for the last few days.
        """
        lat, lon = round_coordinates(latitude, longitude)
        start_date, end_date = validate_date_range(start, end)
        series = "hourly" if hourly else "daily"
        params: dict[str, Any] = {
            "latitude": lat,
            "longitude": lon,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            series: ",".join(HOURLY_VARIABLES if hourly else ARCHIVE_DAILY_VARIABLES),
            **IMPERIAL_UNITS,
        }

        def require_rows(data: Any) -> None:
            times = ((data or {}).get(series) or {}).get("time") or []
            if not times:
                raise DataNotFoundError(
                    self.SERVICE_ID,
                    f"No historical weather data available for {start_date} to {end_date}. "
                    "The archive covers 1940 to roughly five days ago; "
                    "try a different date range.",
                )

        return await self.client.fetch(
            CacheCategory.HISTORICAL,
            ARCHIVE_URL,
            params=params,
            reference_date=end_date,
            ttl=lambda: ttl_for_range(start_date, end_date),
            validate=require_rows,
            location=(lat, lon),
        )

    async def search_location(self, query: str, limit: int = 5) -> list[dict[str, Any]]:
        """Place name to candidate locations, best match first."""
        name = (query or "").strip()
        if not name:
            raise ValidationError("Location query must not be empty.", field="query", value=query)
        if not 1 <= limit <= 100:
            raise ValidationError(
                f"Invalid limit: {limit}. Must be between 1 and 100.", field="limit", value=limit
            )

        def require_results(data: Any) -> None:
            if not (data or {}).get("results"):
                raise DataNotFoundError(
                    self.SERVICE_ID,
                    f'No locations found matching "{name}". Try a more general name.',
                )

        data = await self.client.fetch(
            CacheCategory.GEOCODING,
            GEOCODING_URL,
            params={"name": name, "count": limit, "language": "en", "format": "json"},
            validate=require_results,
        )
        return data["results"]
