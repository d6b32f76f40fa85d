"""Core logging setup and the replay notification log listener."""
from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

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

_LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logging(
    name: str,
    level: str = "INFO",
    log_dir: str | None = None,
) -> logging.Logger:
    """Configure the named logger with a stdout handler and optional daily file.

    Calling this twice for the same name does not duplicate handlers.
    """
    logger = logging.getLogger(name)
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    if not logger.handlers:
        formatter = logging.Formatter(_LOG_FORMAT)
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        logger.addHandler(console)

        if log_dir:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)
            file_handler = TimedRotatingFileHandler(
                filename=log_path / f"{name}.log",
                when="midnight",
                backupCount=30,
                encoding="utf-8",
            )
            file_handler.suffix = "%Y-%m-%d"
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


class ReplayLogListener:
    """Writes every replay notification to a logger.

    Market updates are logged at DEBUG (one per tick), everything else at
    INFO, data warnings at WARNING.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger("replaytrader.events")

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(MARKET_UPDATE, self.on_market_update)
        bus.subscribe(TRADE_EXECUTED, self.on_trade_executed)
        bus.subscribe(STATUS_CHANGED, self.on_status_changed)
        bus.subscribe(DATA_WARNING, self.on_data_warning)

    def detach(self, bus: EventBus) -> None:
        bus.unsubscribe(MARKET_UPDATE, self.on_market_update)
        bus.unsubscribe(TRADE_EXECUTED, self.on_trade_executed)
        bus.unsubscribe(STATUS_CHANGED, self.on_status_changed)
        bus.unsubscribe(DATA_WARNING, self.on_data_warning)

    async def on_market_update(self, update: MarketUpdate) -> None:
        synthetic = sum(1 for q in update.quotes if q.is_synthetic)
        self._log.debug(
            "Market update at %s: %d quotes (%d synthetic), progress %.1f%%",
            update.virtual_time.isoformat(), len(update.quotes), synthetic,
            update.progress * 100,
        )

    async def on_trade_executed(self, event: TradeExecuted) -> None:
        trade = event.trade
        self._log.info(
            "Trade %s %g %s @ %.2f (commission %.2f) at %s, balance %.2f",
            trade.action.value, trade.quantity, trade.symbol, trade.price,
            trade.commission, trade.executed_at.isoformat(), event.result.new_balance,
        )

    async def on_status_changed(self, event: StatusChanged) -> None:
        when = event.virtual_time.isoformat() if event.virtual_time else "-"
        self._log.info(
            "Replay %s at %s (progress %.1f%%)",
            event.status.value, when, event.progress * 100,
        )

    async def on_data_warning(self, warning: DataWarning) -> None:
        self._log.warning(
            "Data warning%s: %s",
            f" [{warning.symbol}]" if warning.symbol else "", warning.message,
        )
