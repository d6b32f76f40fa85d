"""Unit tests for logging setup and the replay log listener."""
import logging
from datetime import datetime, timezone

import pytest

from replaytrader.core.event_bus import (
    DATA_WARNING,
    MARKET_UPDATE,
    STATUS_CHANGED,
    TRADE_EXECUTED,
    DataWarning,
    EventBus,
    MarketUpdate,
    StatusChanged,
    TradeExecuted,
)
from replaytrader.core.logger import ReplayLogListener, setup_logging
from replaytrader.core.types import (
    ProjectedQuote,
    QuoteProvenance,
    ReplayStatus,
    SimulatedTrade,
    TradeAction,
    TradeResult,
)

NOW = datetime(2024, 3, 15, 9, 31, tzinfo=timezone.utc)


@pytest.fixture
def fresh_logger_name(request):
    name = f"replaytrader.test.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestSetupLogging:
    def test_console_only(self, fresh_logger_name):
        logger = setup_logging(fresh_logger_name, level="DEBUG")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_file_handler(self, fresh_logger_name, tmp_path):
        logger = setup_logging(fresh_logger_name, log_dir=str(tmp_path / "logs"))
        assert len(logger.handlers) == 2
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert (tmp_path / "logs" / f"{fresh_logger_name}.log").read_text().strip().endswith("hello")

    def test_no_duplicate_handlers(self, fresh_logger_name):
        setup_logging(fresh_logger_name)
        logger = setup_logging(fresh_logger_name)
        assert len(logger.handlers) == 1

    def test_unknown_level_defaults_to_info(self, fresh_logger_name):
        assert setup_logging(fresh_logger_name, level="chatty").level == logging.INFO


class TestReplayLogListener:
    @pytest.fixture
    def bus(self):
        bus = EventBus()
        ReplayLogListener(logging.getLogger("replaytrader.test.events")).attach(bus)
        return bus

    async def test_attach_subscribes_all_events(self, bus):
        for event in (MARKET_UPDATE, TRADE_EXECUTED, STATUS_CHANGED, DATA_WARNING):
            assert bus.subscriber_count(event) == 1

    async def test_detach(self):
        bus = EventBus()
        listener = ReplayLogListener()
        listener.attach(bus)
        listener.detach(bus)
        assert bus.subscriber_count(MARKET_UPDATE) == 0

    async def test_logs_trade(self, bus, caplog):
        trade = SimulatedTrade(
            session_id="s1", symbol="AAPL", action=TradeAction.BUY, quantity=10,
            price=100.1, commission=0.0, executed_at=NOW,
        )
        result = TradeResult(success=True, execution_price=100.1, new_balance=98999.0, trade=trade)
        with caplog.at_level(logging.INFO, logger="replaytrader.test.events"):
            await bus.emit(TRADE_EXECUTED, TradeExecuted(trade=trade, result=result))
        assert "Trade buy 10 AAPL @ 100.10" in caplog.text

    async def test_logs_status_and_warning(self, bus, caplog):
        with caplog.at_level(logging.INFO, logger="replaytrader.test.events"):
            await bus.emit(STATUS_CHANGED, StatusChanged(ReplayStatus.PAUSED, NOW, 0.25))
            await bus.emit(DATA_WARNING, DataWarning("1 gaps", NOW, symbol="TSLA"))
        assert "Replay paused" in caplog.text
        assert "25.0%" in caplog.text
        assert "[TSLA]: 1 gaps" in caplog.text

    async def test_market_update_is_debug(self, bus, caplog):
        quote = ProjectedQuote("AAPL", 175.2, 0.0, NOW, QuoteProvenance.SYNTHETIC)
        with caplog.at_level(logging.DEBUG, logger="replaytrader.test.events"):
            await bus.emit(MARKET_UPDATE, MarketUpdate([quote], NOW, 0.5))
        record = caplog.records[-1]
        assert record.levelno == logging.DEBUG
        assert "1 quotes (1 synthetic)" in record.getMessage()
