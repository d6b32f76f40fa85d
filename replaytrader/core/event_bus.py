"""Core event bus module for replay notifications.

The replay controller publishes four notifications; every subscriber of an
event receives every emission, in subscription order of scheduling.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Coroutine

from replaytrader.core.types import ProjectedQuote, ReplayStatus, SimulatedTrade, TradeResult

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Coroutine[Any, Any, None]]

MARKET_UPDATE = "market_update"
TRADE_EXECUTED = "trade_executed"
STATUS_CHANGED = "status_changed"
DATA_WARNING = "data_warning"

ALL_EVENTS = (MARKET_UPDATE, TRADE_EXECUTED, STATUS_CHANGED, DATA_WARNING)


@dataclass(frozen=True)
class MarketUpdate:
    quotes: list[ProjectedQuote]
    virtual_time: datetime
    progress: float


@dataclass(frozen=True)
class TradeExecuted:
    trade: SimulatedTrade
    result: TradeResult


@dataclass(frozen=True)
class StatusChanged:
    status: ReplayStatus
    virtual_time: datetime | None
    progress: float

    @property
    def is_active(self) -> bool:
        return self.status.is_active


@dataclass(frozen=True)
class DataWarning:
    message: str
    virtual_time: datetime | None
    symbol: str | None = None


class EventBus:
    """Async pub-sub bus for replay notifications.

    Example:
        >>> bus = EventBus()
        >>> async def on_update(update):
        ...     print(update.virtual_time)
        >>> bus.subscribe(MARKET_UPDATE, on_update)
        >>> await bus.emit(MARKET_UPDATE, update)
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> None:
        """Subscribe a handler to an event.

        Raises:
            TypeError: If handler is not callable.
        """
        if not callable(handler):
            raise TypeError(f"Handler must be callable, got {type(handler)}")

        self._handlers[event].append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        """Unsubscribe a handler; does nothing if it was never subscribed."""
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    async def emit(self, event: str, data: Any = None) -> None:
        """Deliver data to every handler of the event.

        A failing handler is logged and does not prevent delivery to the
        remaining handlers.
        """
        # Copy so handlers may (un)subscribe while being called
        handlers = list(self._handlers.get(event, []))
        if handlers:
            await asyncio.gather(
                *(self._safe_call_handler(h, event, data) for h in handlers)
            )

    async def _safe_call_handler(self, handler: Handler, event: str, data: Any) -> None:
        try:
            await handler(data)
        except Exception:
            logger.exception(
                "Handler %s failed for event '%s'",
                getattr(handler, "__name__", repr(handler)), event,
            )
