"""Simulated trade execution against projected quotes."""
from __future__ import annotations

import logging
from datetime import datetime

from replaytrader.core.config import ExecutionConfig
from replaytrader.core.types import (
    AccountState,
    ErrorKind,
    OrderType,
    ProjectedQuote,
    SimulatedTrade,
    TradeAction,
    TradeResult,
)
from replaytrader.data.store import TradeLog

logger = logging.getLogger(__name__)


class TradeExecutionEngine:
    """Prices orders, applies them to an ``AccountState`` and persists fills.

    ``apply`` and ``revert`` only touch in-memory state and never await, so
    the controller can run them under its session lock; ``persist`` is the
    I/O half and runs outside it.
    """

    def __init__(self, trade_log: TradeLog, config: ExecutionConfig | None = None) -> None:
        self._trade_log = trade_log
        self._config = config or ExecutionConfig()

    def fill_price(
        self,
        market_price: float,
        action: TradeAction,
        order_type: OrderType = OrderType.MARKET,
        limit_price: float | None = None,
    ) -> tuple[float, float]:
        """Return (execution price rounded to cents, slippage amount)."""
        slippage = 0.0
        price = market_price
        if self._config.enable_slippage:
            slippage = market_price * self._config.slippage_percent / 100
            price = market_price + slippage if action is TradeAction.BUY else market_price - slippage

        if order_type is OrderType.LIMIT and limit_price is not None:
            if action is TradeAction.BUY:
                price = min(price, limit_price)
            else:
                price = max(price, limit_price)

        return round(price, 2), round(slippage, 4)

    def commission(self) -> float:
        return self._config.commission_per_trade if self._config.enable_commissions else 0.0

    def apply(
        self,
        session_id: str,
        account: AccountState,
        quote: ProjectedQuote | None,
        symbol: str,
        action: TradeAction,
        quantity: float,
        virtual_time: datetime,
        order_type: OrderType = OrderType.MARKET,
        limit_price: float | None = None,
    ) -> TradeResult:
        """Validate and price the order, then debit/credit ``account`` in place.

        Rejections leave ``account`` untouched.
        """
        if quantity <= 0:
            return TradeResult.rejected(
                ErrorKind.INVALID_ORDER, f"Quantity must be positive, got {quantity}", account.balance,
            )
        if order_type is OrderType.LIMIT and limit_price is None:
            return TradeResult.rejected(
                ErrorKind.INVALID_ORDER, "Limit order requires a limit price", account.balance,
            )
        if quote is None:
            return TradeResult.rejected(
                ErrorKind.NO_MARKET_DATA, f"No market data available for {symbol}", account.balance,
            )

        price, slippage = self.fill_price(quote.price, action, order_type, limit_price)
        total_cost = round(price * quantity, 2)
        commission = self.commission()

        if action is TradeAction.BUY:
            required = total_cost + commission
            if required > account.balance:
                return TradeResult.rejected(
                    ErrorKind.INSUFFICIENT_FUNDS,
                    f"Insufficient funds. Required: {required:.2f}, Available: {account.balance:.2f}",
                    account.balance,
                )
            account.balance = round(account.balance - required, 2)
            account.positions[symbol] = account.positions.get(symbol, 0.0) + quantity
        else:
            account.balance = round(account.balance + total_cost - commission, 2)
            account.positions[symbol] = account.positions.get(symbol, 0.0) - quantity

        if account.positions[symbol] == 0:
            del account.positions[symbol]

        trade = SimulatedTrade(
            session_id=session_id,
            symbol=symbol,
            action=action,
            quantity=quantity,
            price=price,
            commission=commission,
            executed_at=virtual_time,
            order_type=order_type,
            limit_price=limit_price,
        )
        return TradeResult(
            success=True,
            execution_price=price,
            commission=commission,
            total_cost=total_cost,
            new_balance=account.balance,
            slippage=slippage,
            executed_at=virtual_time,
            trade=trade,
            message=f"{action.value.upper()} {quantity:g} {symbol} @ {price:.2f}",
        )

    @staticmethod
    def revert(account: AccountState, result: TradeResult) -> None:
        """Undo a successful ``apply``."""
        trade = result.trade
        if trade is None:
            return
        if trade.action is TradeAction.BUY:
            account.balance = round(account.balance + result.total_cost + result.commission, 2)
            signed = -trade.quantity
        else:
            account.balance = round(account.balance - result.total_cost + result.commission, 2)
            signed = trade.quantity
        remaining = account.positions.get(trade.symbol, 0.0) + signed
        if remaining == 0:
            account.positions.pop(trade.symbol, None)
        else:
            account.positions[trade.symbol] = remaining

    async def persist(self, trade: SimulatedTrade) -> None:
        """Append to the trade log.

        Raises:
            StoreUnavailableError: If the trade log cannot be written.
        """
        await self._trade_log.append(trade)
        logger.debug("Persisted trade %s %s %g", trade.symbol, trade.action.value, trade.quantity)
