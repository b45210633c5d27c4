"""
Upstream weather providers.
"""

from weather_server.providers.base import BaseProvider
from weather_server.providers.noaa import NOAAProvider
from weather_server.providers.openmeteo import OpenMeteoProvider

__all__ = ["BaseProvider", "NOAAProvider", "OpenMeteoProvider"]
