"""Unit tests for core event bus module."""
from datetime import datetime, timezone

import pytest

from replaytrader.core.event_bus import (
    DATA_WARNING,
    MARKET_UPDATE,
    STATUS_CHANGED,
    DataWarning,
    EventBus,
    StatusChanged,
)
from replaytrader.core.types import ReplayStatus

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def bus():
    """Fixture providing a fresh EventBus instance."""
    return EventBus()


class TestEventBusBasics:
    async def test_subscribe_and_emit(self, bus):
        received = []

        async def handler(data):
            received.append(data)

        bus.subscribe(DATA_WARNING, handler)
        warning = DataWarning(message="gap", virtual_time=NOW, symbol="AAPL")
        await bus.emit(DATA_WARNING, warning)
        assert received == [warning]

    async def test_every_subscriber_receives_every_event(self, bus):
        first, second = [], []

        async def h1(data):
            first.append(data)

        async def h2(data):
            second.append(data)

        bus.subscribe(MARKET_UPDATE, h1)
        bus.subscribe(MARKET_UPDATE, h2)
        await bus.emit(MARKET_UPDATE, 1)
        await bus.emit(MARKET_UPDATE, 2)
        assert first == [1, 2]
        assert second == [1, 2]

    async def test_events_are_isolated(self, bus):
        received = []

        async def handler(data):
            received.append(data)

        bus.subscribe(STATUS_CHANGED, handler)
        await bus.emit(MARKET_UPDATE, "ignored")
        assert received == []

    async def test_emit_without_subscribers(self, bus):
        await bus.emit("nobody_listens", {"x": 1})

    def test_subscribe_non_callable(self, bus):
        with pytest.raises(TypeError):
            bus.subscribe(MARKET_UPDATE, "not callable")


class TestUnsubscribe:
    async def test_unsubscribe(self, bus):
        received = []

        async def handler(data):
            received.append(data)

        bus.subscribe(MARKET_UPDATE, handler)
        assert bus.subscriber_count(MARKET_UPDATE) == 1
        bus.unsubscribe(MARKET_UPDATE, handler)
        assert bus.subscriber_count(MARKET_UPDATE) == 0
        await bus.emit(MARKET_UPDATE, 1)
        assert received == []

    def test_unsubscribe_unknown_handler(self, bus):
        async def handler(data):
            pass

        bus.unsubscribe(MARKET_UPDATE, handler)


class TestErrorIsolation:
    async def test_failing_handler_does_not_block_others(self, bus, caplog):
        received = []

        async def broken(data):
            raise RuntimeError("boom")

        async def healthy(data):
            received.append(data)

        bus.subscribe(STATUS_CHANGED, broken)
        bus.subscribe(STATUS_CHANGED, healthy)
        event = StatusChanged(status=ReplayStatus.RUNNING, virtual_time=NOW, progress=0.0)
        await bus.emit(STATUS_CHANGED, event)

        assert received == [event]
        assert "failed for event 'status_changed'" in caplog.text

    def test_status_changed_is_active(self):
        assert StatusChanged(ReplayStatus.PAUSED, NOW, 0.5).is_active
        assert not StatusChanged(ReplayStatus.COMPLETED, NOW, 1.0).is_active
