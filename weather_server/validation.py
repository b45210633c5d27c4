"""
Input checks run before any request leaves the process.
"""

import math
from datetime import date, datetime, timezone

from weather_server.services.cache import KEY_PRECISION
from weather_server.services.errors import ValidationError


def validate_coordinates(latitude: float, longitude: float) -> tuple[float, float]:
    """Ensure latitude/longitude are finite numbers inside their ranges."""
    for name, value, limit in (("latitude", latitude, 90), ("longitude", longitude, 180)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(
                f"Invalid {name}: {value!r}. Must be a number.", field=name, value=value
            )
        if not math.isfinite(value):
            raise ValidationError(
                f"Invalid {name}: {value}. Must be a finite number.",
                field=name,
                value=value,
            )
        if not -limit <= value <= limit:
            raise ValidationError(
                f"Invalid {name}: {value}. Must be between -{limit} and {limit}.",
                field=name,
                value=value,
                hint=f"Use decimal degrees, e.g. {name}=37.77.",
            )
    return float(latitude), float(longitude)


def validate_forecast_days(days: int, maximum: int = 16) -> int:
    if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= maximum:
        raise ValidationError(
            f"Invalid days: {days!r}. Must be an integer between 1 and {maximum}.",
            field="days",
            value=days,
        )
    return days


def parse_date(value: str | date, field: str) -> date:
    """Accept a date, datetime or ISO string and return the calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value!r}. Use ISO format (YYYY-MM-DD or ISO 8601 datetime).",
            field=field,
            value=value,
        ) from None


def validate_date_range(start: str | date, end: str | date) -> tuple[date, date]:
    start_date = parse_date(start, "start_date")
    end_date = parse_date(end, "end_date")
    if start_date > end_date:
        raise ValidationError(
            f"Invalid date range: start_date {start_date} is after end_date {end_date}.",
            field="start_date",
            value=str(start),
        )
    return start_date, end_date


def parse_datetime(value: str | date, field: str) -> datetime:
    """Like parse_date but keeps the time of day; naive values are UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, datetime.min.time())
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                f"Invalid {field}: {value!r}. Use ISO format (YYYY-MM-DD or ISO 8601 datetime).",
                field=field,
                value=value,
            ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def round_coordinates(latitude: float, longitude: float) -> tuple[float, float]:
    """
    Validate and round coordinates to the cache key precision.

    Nearby queries (within roughly a kilometre) then share one cache entry.
    """
    latitude, longitude = validate_coordinates(latitude, longitude)
    return round(latitude, KEY_PRECISION), round(longitude, KEY_PRECISION)
