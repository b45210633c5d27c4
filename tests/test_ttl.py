from datetime import date, datetime, timedelta, timezone

import pytest

from weather_server.services.cache import NEVER_EXPIRES
from weather_server.services.ttl import (
    FINALIZED_AFTER,
    RECENT_HISTORICAL_TTL,
    CacheCategory,
    is_finalized,
    ttl_for,
    ttl_for_range,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("category", "expected"),
    [
        (CacheCategory.GRID_POINT, NEVER_EXPIRES),
        (CacheCategory.GEOCODING, NEVER_EXPIRES),
        (CacheCategory.STATIONS, timedelta(hours=24)),
        (CacheCategory.FORECAST, timedelta(hours=2)),
        (CacheCategory.CURRENT_CONDITIONS, timedelta(minutes=15)),
        (CacheCategory.ALERTS, timedelta(minutes=5)),
    ],
)
def test_fixed_category_lifetimes(category, expected) -> None:
    assert ttl_for(category) == expected


def test_every_category_has_a_lifetime() -> None:
    for category in CacheCategory:
        assert ttl_for(category, reference_date=NOW, now=NOW) is not None


def test_old_historical_record_never_expires() -> None:
    assert ttl_for(CacheCategory.HISTORICAL, NOW - timedelta(days=10), now=NOW) is NEVER_EXPIRES


def test_recent_historical_record_gets_short_ttl() -> None:
    ttl = ttl_for(CacheCategory.HISTORICAL, NOW - timedelta(hours=3), now=NOW)
    assert ttl == timedelta(hours=1)


@pytest.mark.parametrize("hours", [0, 1, 12, 23, 24])
def test_records_within_a_day_are_not_final(hours) -> None:
    ttl = ttl_for(CacheCategory.HISTORICAL, NOW - timedelta(hours=hours), now=NOW)
    assert ttl == RECENT_HISTORICAL_TTL


@pytest.mark.parametrize("age", [timedelta(days=1, seconds=1), timedelta(days=2), timedelta(days=3650)])
def test_records_older_than_a_day_are_final(age) -> None:
    assert ttl_for(CacheCategory.HISTORICAL, NOW - age, now=NOW) is NEVER_EXPIRES


def test_naive_and_plain_dates_are_treated_as_utc() -> None:
    naive_now = datetime(2025, 6, 15, 12, 0)
    assert is_finalized(date(2025, 6, 10), now=naive_now)
    assert not is_finalized(datetime(2025, 6, 15, 0, 0), now=naive_now)


def test_historical_requires_reference_date() -> None:
    with pytest.raises(ValueError):
        ttl_for(CacheCategory.HISTORICAL)


def test_unknown_category_fails_fast() -> None:
    with pytest.raises(ValueError):
        ttl_for("forecast")  # type: ignore[arg-type]


def test_range_uses_newest_record() -> None:
    old = NOW - timedelta(days=30)
    recent = NOW - timedelta(hours=2)

    assert ttl_for_range(old, old + timedelta(days=5), now=NOW) is NEVER_EXPIRES
    assert ttl_for_range(old, recent, now=NOW) == RECENT_HISTORICAL_TTL


def test_range_ending_yesterday_is_not_final() -> None:
    # Yesterday's last hours are less than a day old
    yesterday = (NOW - timedelta(days=1)).date()
    assert ttl_for_range(yesterday - timedelta(days=3), yesterday, now=NOW) == RECENT_HISTORICAL_TTL
    two_days_ago = (NOW - FINALIZED_AFTER * 2).date()
    assert ttl_for_range(two_days_ago - timedelta(days=3), two_days_ago, now=NOW) is NEVER_EXPIRES
