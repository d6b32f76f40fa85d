"""Tests for the aiosqlite bar cache, trade log and session store."""
from datetime import timedelta

import pytest

from conftest import at, make_bars
from replaytrader.core.exceptions import StoreUnavailableError
from replaytrader.core.types import (
    ONE_MINUTE,
    Bar,
    OrderType,
    ReplaySession,
    ReplayStatus,
    SimulatedTrade,
    Timeframe,
    TradeAction,
)
from replaytrader.data.sqlite_store import SQLiteStore


class TestBarCache:
    async def test_save_and_get_bars(self, store):
        bars = make_bars("AAPL", at(9, 30), 5)
        assert await store.save_bars(bars) == 5

        loaded = await store.get_bars("AAPL", ONE_MINUTE, at(9, 30), at(9, 34))
        assert loaded == bars

    async def test_range_is_inclusive_and_filtered(self, store):
        await store.save_bars(make_bars("AAPL", at(9, 30), 10))
        await store.save_bars(make_bars("TSLA", at(9, 30), 10))
        loaded = await store.get_bars("AAPL", ONE_MINUTE, at(9, 32), at(9, 35))
        assert [b.timestamp for b in loaded] == [at(9, m) for m in range(32, 36)]
        assert all(b.symbol == "AAPL" for b in loaded)

    async def test_timeframe_is_part_of_key(self, store):
        five = Timeframe("minute", 5)
        five_min = [
            Bar("AAPL", at(9, 30), 1, 2, 0.5, 1.5, 10, timeframe=five),
        ]
        await store.save_bars(five_min)
        await store.save_bars(make_bars("AAPL", at(9, 30), 1))
        assert len(await store.get_bars("AAPL", five, at(9, 0), at(10, 0))) == 1
        assert len(await store.get_bars("AAPL", ONE_MINUTE, at(9, 0), at(10, 0))) == 1

    async def test_save_is_upsert(self, store):
        await store.save_bars(make_bars("AAPL", at(9, 30), 3, price=100))
        inserted = await store.save_bars(make_bars("AAPL", at(9, 30), 4, price=200), data_source="vendor")
        assert inserted == 1
        loaded = await store.get_bars("AAPL", ONE_MINUTE, at(9, 30), at(9, 33))
        assert [b.close for b in loaded] == [200, 200, 200, 200]

    async def test_save_empty(self, store):
        assert await store.save_bars([]) == 0

    async def test_data_range(self, store):
        assert await store.get_data_range("AAPL") is None
        await store.save_bars(make_bars("AAPL", at(9, 30), 31))
        first, last, count = await store.get_data_range("AAPL")
        assert first == at(9, 30)
        assert last == at(10, 0)
        assert count == 31


class TestBarNear:
    async def test_closest_bar(self, store):
        await store.save_bars(make_bars("AAPL", at(9, 30), 3, step=timedelta(minutes=10), drift=1))
        bar = await store.get_bar_near("AAPL", at(9, 42))
        assert bar.timestamp == at(9, 40)

    async def test_tie_picks_earliest(self, store):
        await store.save_bars(make_bars("AAPL", at(9, 30), 2, step=timedelta(minutes=10)))
        bar = await store.get_bar_near("AAPL", at(9, 35))
        assert bar.timestamp == at(9, 30)

    async def test_same_day_only(self, store):
        await store.save_bars(make_bars("AAPL", at(23, 59) - timedelta(days=1), 1))
        assert await store.get_bar_near("AAPL", at(0, 1)) is None

    async def test_unknown_symbol(self, store):
        assert await store.get_bar_near("ZZZZ", at(9, 30)) is None

    async def test_timeframe_filter(self, store):
        await store.save_bars(make_bars("AAPL", at(9, 30), 1))
        assert await store.get_bar_near("AAPL", at(9, 30), Timeframe("daily", 1)) is None
        assert await store.get_bar_near("AAPL", at(9, 30), ONE_MINUTE) is not None


class TestTradeLog:
    async def test_append_and_read(self, store):
        trade = SimulatedTrade(
            session_id="s1", symbol="AAPL", action=TradeAction.SELL, quantity=3,
            price=101.25, commission=1.0, executed_at=at(9, 45),
            order_type=OrderType.LIMIT, limit_price=101.0,
        )
        await store.append(trade)
        await store.append(SimulatedTrade("s2", "TSLA", TradeAction.BUY, 1, 245.0, 0.0, at(9, 46)))
        assert await store.get_trades("s1") == [trade]


class TestSessions:
    def _session(self, status=ReplayStatus.RUNNING):
        return ReplaySession(
            id="s1", symbols=["AAPL"], start=at(9, 30), end=at(10, 0),
            current_time=at(9, 30), tick_interval=1.0, status=status,
        )

    async def test_unknown_session_balance(self, store):
        assert await store.get_balance("missing") is None

    async def test_save_and_update(self, store):
        await store.save_session(self._session(), 50_000.0)
        assert await store.get_balance("s1") == 50_000.0

        await store.update_session("s1", ReplayStatus.COMPLETED, 51_234.5, completed_at=at(16, 0))
        assert await store.get_balance("s1") == 51_234.5
        row = await store.get_session("s1")
        assert row["status"] == "completed"
        assert row["symbols"] == ["AAPL"]
        assert row["initial_balance"] == 50_000.0
        assert row["completed_at"] is not None

    async def test_resaving_keeps_balance(self, store):
        await store.save_session(self._session(), 50_000.0)
        await store.update_session("s1", ReplayStatus.STOPPED, 49_000.0)
        await store.save_session(self._session(), 49_000.0)
        assert await store.get_balance("s1") == 49_000.0

    async def test_resaving_restarts_from_carried_balance(self, store):
        await store.save_session(self._session(), 50_000.0)
        await store.update_session("s1", ReplayStatus.COMPLETED, 48_500.0, completed_at=at(10, 0))
        await store.save_session(self._session(), 48_500.0)
        row = await store.get_session("s1")
        assert row["initial_balance"] == 48_500.0
        assert row["current_balance"] == 48_500.0
        assert row["status"] == "running"
        assert row["completed_at"] is None


class TestUnavailable:
    async def test_not_initialized(self, tmp_path):
        store = SQLiteStore(str(tmp_path / "x.db"))
        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.get_bars("AAPL", ONE_MINUTE, at(9, 30), at(10, 0))
        assert exc_info.value.operation == "get_bars"

    async def test_unopenable_path(self, tmp_path):
        store = SQLiteStore(str(tmp_path / "missing" / "dir" / "x.db"))
        with pytest.raises(StoreUnavailableError):
            await store.initialize()

    async def test_closed_store(self, tmp_path):
        store = SQLiteStore(str(tmp_path / "x.db"))
        await store.initialize()
        await store.close()
        with pytest.raises(StoreUnavailableError):
            await store.get_balance("s1")
