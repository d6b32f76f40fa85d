"""Synthetic intraday bars for seeding a bar store.

Produces a regular-session (09:30-16:00 UTC-stamped) random walk with small
wicks. Output is deterministic for a given seed and every bar satisfies the
OHLC invariant, so generated data always passes integrity validation.
"""
from __future__ import annotations

import random
from datetime import date, datetime, time, timezone

from replaytrader.core.types import ONE_MINUTE, Bar, Timeframe

SESSION_OPEN = time(9, 30)
SESSION_CLOSE = time(16, 0)

_VOLATILITY = 0.002  # 0.2% per bar
_MAX_WICK = 0.001


def generate_session_bars(
    symbol: str,
    day: date,
    base_price: float,
    timeframe: Timeframe = ONE_MINUTE,
    seed: int | None = None,
    session_open: time = SESSION_OPEN,
    session_close: time = SESSION_CLOSE,
) -> list[Bar]:
    """Generate bars from session_open (inclusive) to session_close (exclusive)."""
    if base_price <= 0:
        raise ValueError("base_price must be positive")

    rng = random.Random(seed)
    current = datetime.combine(day, session_open, tzinfo=timezone.utc)
    close_at = datetime.combine(day, session_close, tzinfo=timezone.utc)
    step = timeframe.interval

    bars: list[Bar] = []
    price = base_price
    while current < close_at:
        open_ = price
        close = max(0.01, open_ * (1 + rng.uniform(-_VOLATILITY, _VOLATILITY)))
        high = max(open_, close) * (1 + rng.uniform(0, _MAX_WICK))
        low = min(open_, close) * (1 - rng.uniform(0, _MAX_WICK))
        bars.append(Bar(
            symbol=symbol,
            timestamp=current,
            open=round(open_, 2),
            high=round(high, 2),
            low=round(low, 2),
            close=round(close, 2),
            volume=float(rng.randint(1_000, 50_000)),
            timeframe=timeframe,
        ))
        price = close
        current += step
    return bars
