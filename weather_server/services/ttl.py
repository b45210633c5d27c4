"""
Cache lifetimes per kind of weather data.

Each category maps to how quickly its upstream source changes. Historical
records use a date-dependent rule: once a record is more than a day old the
provider has finished correcting it, so it is cached forever.
"""

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from weather_server.services.cache import NEVER_EXPIRES, Lifetime


class CacheCategory(str, Enum):
    """Kinds of cached upstream data."""

    GRID_POINT = "grid_point"  # coordinates -> forecast office grid
    GEOCODING = "geocoding"  # place name -> coordinates
    STATIONS = "stations"
    FORECAST = "forecast"
    CURRENT_CONDITIONS = "current_conditions"
    ALERTS = "alerts"
    HISTORICAL = "historical"


STATIONS_TTL = timedelta(hours=24)
FORECAST_TTL = timedelta(hours=2)
CURRENT_CONDITIONS_TTL = timedelta(minutes=15)
ALERTS_TTL = timedelta(minutes=5)
RECENT_HISTORICAL_TTL = timedelta(hours=1)

# Records older than this are no longer revised upstream
FINALIZED_AFTER = timedelta(days=1)


def _as_utc(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def is_finalized(reference_date: date | datetime, now: datetime | None = None) -> bool:
    """True when a historical record is older than the revision window."""
    current = _as_utc(now or datetime.now(timezone.utc))
    return current - _as_utc(reference_date) > FINALIZED_AFTER


def ttl_for(
    category: CacheCategory,
    reference_date: date | datetime | None = None,
    now: datetime | None = None,
) -> Lifetime:
    """
    Return the cache lifetime for a category.

    Args:
        category: Kind of data being cached
        reference_date: Date of the record, required for HISTORICAL
        now: Override of the current time (naive values are treated as UTC)

    Raises:
        ValueError: For HISTORICAL without a reference date, or an unknown
            category
    """
    if category is CacheCategory.GRID_POINT or category is CacheCategory.GEOCODING:
        return NEVER_EXPIRES
    if category is CacheCategory.STATIONS:
        return STATIONS_TTL
    if category is CacheCategory.FORECAST:
        return FORECAST_TTL
    if category is CacheCategory.CURRENT_CONDITIONS:
        return CURRENT_CONDITIONS_TTL
    if category is CacheCategory.ALERTS:
        return ALERTS_TTL
    if category is CacheCategory.HISTORICAL:
        if reference_date is None:
            raise ValueError("HISTORICAL data needs a reference date to pick a TTL")
        if is_finalized(reference_date, now):
            return NEVER_EXPIRES
        return RECENT_HISTORICAL_TTL
    raise ValueError(f"Unknown cache category: {category!r}")


def ttl_for_range(
    start: date | datetime,
    end: date | datetime,
    now: datetime | None = None,
) -> Lifetime:
    """
    Lifetime for a batch of historical records spanning start..end.

    A range is only as final as its newest record, so the later of the two
    dates decides. A plain date covers the whole day, so its newest record
    is taken to be at the following midnight.
    """
    newest = max(_range_edge(start), _range_edge(end))
    return ttl_for(CacheCategory.HISTORICAL, newest, now)


def _range_edge(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return _as_utc(value)
    return _as_utc(value + timedelta(days=1))
