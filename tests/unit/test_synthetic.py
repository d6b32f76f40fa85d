from datetime import date, timedelta

import pytest

from replaytrader.core.types import Timeframe
from replaytrader.data.synthetic import generate_session_bars

DAY = date(2024, 3, 15)


class TestGenerateSessionBars:
    def test_regular_session_minute_bars(self):
        bars = generate_session_bars("AAPL", DAY, 175.0, seed=1)
        assert len(bars) == 390
        assert bars[0].timestamp.hour == 9 and bars[0].timestamp.minute == 30
        assert bars[-1].timestamp.hour == 15 and bars[-1].timestamp.minute == 59
        assert all(b.timestamp - a.timestamp == timedelta(minutes=1) for a, b in zip(bars, bars[1:]))

    def test_bars_satisfy_ohlc_invariant(self):
        for seed in range(5):
            for bar in generate_session_bars("TSLA", DAY, 245.0, seed=seed):
                assert bar.ohlc_issues() == []
                assert bar.high >= bar.low
                assert bar.low <= bar.open <= bar.high
                assert bar.low <= bar.close <= bar.high

    def test_deterministic_per_seed(self):
        assert generate_session_bars("AAPL", DAY, 175.0, seed=42) == generate_session_bars("AAPL", DAY, 175.0, seed=42)
        assert generate_session_bars("AAPL", DAY, 175.0, seed=1) != generate_session_bars("AAPL", DAY, 175.0, seed=2)

    def test_price_stays_near_base(self):
        bars = generate_session_bars("NVDA", DAY, 430.0, seed=3)
        assert bars[0].open == 430.0
        assert all(300 < b.close < 560 for b in bars)

    def test_custom_timeframe(self):
        bars = generate_session_bars("AAPL", DAY, 100.0, timeframe=Timeframe("minute", 5), seed=1)
        assert len(bars) == 78
        assert all(b.timeframe == Timeframe("minute", 5) for b in bars)

    def test_rejects_non_positive_base(self):
        with pytest.raises(ValueError):
            generate_session_bars("AAPL", DAY, 0.0)
