"""Shared fixtures for replaytrader tests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from replaytrader.core.config import Settings
from replaytrader.core.types import Bar
from replaytrader.data.sqlite_store import SQLiteStore

SESSION_DAY = datetime(2024, 3, 15, tzinfo=timezone.utc)


def at(hour: int, minute: int, day: datetime = SESSION_DAY) -> datetime:
    return day.replace(hour=hour, minute=minute)


def make_bars(
    symbol: str,
    start: datetime,
    count: int,
    price: float = 100.0,
    step: timedelta = timedelta(minutes=1),
    drift: float = 0.0,
) -> list[Bar]:
    """Regular OHLC-valid bars whose close moves by ``drift`` each bar."""
    bars = []
    for i in range(count):
        close = round(price + drift * i, 2)
        bars.append(Bar(
            symbol=symbol,
            timestamp=start + step * i,
            open=close,
            high=close + 0.5,
            low=close - 0.5,
            close=close,
            volume=1000.0,
        ))
    return bars


@pytest.fixture
def settings() -> Settings:
    return Settings.model_validate({
        "system": {"log_dir": None},
        "replay": {"tick_interval_seconds": 3600.0, "initial_balance": 100_000.0},
        "projection": {"seed": 7},
    })


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(str(tmp_path / "replay.db"))
    await s.initialize()
    yield s
    await s.close()
