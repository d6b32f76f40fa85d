"""Market session calendar for virtual-time queries.

Weekends and the NYSE holidays below are closed. Session boundaries come
from ``MarketHoursConfig`` and are interpreted in its timezone; naive
timestamps are treated as UTC.
"""
from __future__ import annotations

from datetime import date, datetime, timezone

from replaytrader.core.config import MarketHoursConfig
from replaytrader.core.types import MarketHours

# NYSE market holidays (add years as needed).
_NYSE_HOLIDAYS: dict[date, str] = {
    # 2024
    date(2024, 1, 1): "New Year's Day",
    date(2024, 1, 15): "Martin Luther King Jr. Day",
    date(2024, 2, 19): "Presidents' Day",
    date(2024, 3, 29): "Good Friday",
    date(2024, 5, 27): "Memorial Day",
    date(2024, 6, 19): "Juneteenth",
    date(2024, 7, 4): "Independence Day",
    date(2024, 9, 2): "Labor Day",
    date(2024, 11, 28): "Thanksgiving Day",
    date(2024, 12, 25): "Christmas Day",
    # 2025
    date(2025, 1, 1): "New Year's Day",
    date(2025, 1, 20): "Martin Luther King Jr. Day",
    date(2025, 2, 17): "Presidents' Day",
    date(2025, 4, 18): "Good Friday",
    date(2025, 5, 26): "Memorial Day",
    date(2025, 6, 19): "Juneteenth",
    date(2025, 7, 4): "Independence Day",
    date(2025, 9, 1): "Labor Day",
    date(2025, 11, 27): "Thanksgiving Day",
    date(2025, 12, 25): "Christmas Day",
    # 2026
    date(2026, 1, 1): "New Year's Day",
    date(2026, 1, 19): "Martin Luther King Jr. Day",
    date(2026, 2, 16): "Presidents' Day",
    date(2026, 4, 3): "Good Friday",
    date(2026, 5, 25): "Memorial Day",
    date(2026, 6, 19): "Juneteenth",
    date(2026, 7, 3): "Independence Day (observed)",
    date(2026, 9, 7): "Labor Day",
    date(2026, 11, 26): "Thanksgiving Day",
    date(2026, 12, 25): "Christmas Day",
}


def holiday_name(d: date) -> str | None:
    return _NYSE_HOLIDAYS.get(d)


def is_trading_day(d: date) -> bool:
    """Return True if *d* is a NYSE trading day (not weekend or holiday)."""
    if d.weekday() >= 5:  # 5=Saturday, 6=Sunday
        return False
    return d not in _NYSE_HOLIDAYS


def _local(ts: datetime, config: MarketHoursConfig) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(config.zone)


def market_hours(day: date, config: MarketHoursConfig) -> MarketHours:
    """Session boundaries for *day* as timezone-aware datetimes."""
    zone = config.zone

    def at(name: str) -> datetime:
        return datetime.combine(day, config.clock(name), tzinfo=zone)

    name = holiday_name(day)
    return MarketHours(
        day=day,
        pre_market_open=at("pre_market_open"),
        market_open=at("market_open"),
        market_close=at("market_close"),
        after_hours_close=at("after_hours_close"),
        is_holiday=name is not None,
        holiday_name=name,
    )


def session_day(ts: datetime, config: MarketHoursConfig) -> date:
    """Calendar day of *ts* in the exchange timezone."""
    return _local(ts, config).date()


def is_market_open(ts: datetime, config: MarketHoursConfig) -> bool:
    """True on trading days between the open and the close, both inclusive."""
    local = _local(ts, config)
    if not is_trading_day(local.date()):
        return False
    now = local.time().replace(tzinfo=None)
    return config.clock("market_open") <= now <= config.clock("market_close")
