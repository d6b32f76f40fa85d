"""Append-only JSONL trade log.

Alternative to the SQLite ``sandbox_trades`` table for sessions that only
need a flat file of fills for post-hoc analysis.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from replaytrader.core.exceptions import StoreUnavailableError
from replaytrader.core.types import OrderType, SimulatedTrade, TradeAction
from replaytrader.data.store import TradeLog

logger = logging.getLogger(__name__)


def _to_record(trade: SimulatedTrade) -> dict:
    return {
        "session_id": trade.session_id,
        "symbol": trade.symbol,
        "action": trade.action.value,
        "quantity": trade.quantity,
        "price": trade.price,
        "commission": trade.commission,
        "total_value": trade.total_value,
        "order_type": trade.order_type.value,
        "limit_price": trade.limit_price,
        "executed_at": trade.executed_at.isoformat(),
    }


def _from_record(data: dict) -> SimulatedTrade:
    return SimulatedTrade(
        session_id=data["session_id"],
        symbol=data["symbol"],
        action=TradeAction(data["action"]),
        quantity=data["quantity"],
        price=data["price"],
        commission=data.get("commission", 0.0),
        executed_at=datetime.fromisoformat(data["executed_at"]),
        order_type=OrderType(data.get("order_type", OrderType.MARKET.value)),
        limit_price=data.get("limit_price"),
    )


class TradeLogger(TradeLog):
    """JSONL sink for simulated trades, one JSON object per line."""

    def __init__(self, trade_log_path: str) -> None:
        self._trade_path = Path(trade_log_path)

    async def append(self, trade: SimulatedTrade) -> None:
        """Append a trade record to the JSONL log."""
        try:
            self._trade_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._trade_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(_to_record(trade)) + "\n")
        except OSError as e:
            raise StoreUnavailableError("append", str(e)) from e

    async def get_trades(self, session_id: str) -> list[SimulatedTrade]:
        return [t for t in self.read_trades() if t.session_id == session_id]

    def read_trades(self) -> list[SimulatedTrade]:
        """Read all trade records, skipping corrupt lines.

        Records written before order_type/commission were logged get
        market-order and zero-commission defaults.
        """
        if not self._trade_path.exists():
            return []
        trades: list[SimulatedTrade] = []
        with open(self._trade_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    trades.append(_from_record(json.loads(line)))
                except (json.JSONDecodeError, TypeError, KeyError, ValueError):
                    logger.warning("Skipping corrupt trade log line: %s", line[:80])
        return trades
