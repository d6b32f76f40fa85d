"""P&L and win-rate statistics for a replay session.

Trades are matched first-in first-out per symbol. Commissions are spread
per unit over the lot they opened and the trade that closes it, so
realized + unrealized always equals equity minus the initial balance.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from replaytrader.core.types import SimulatedTrade, TradeAction


@dataclass
class _Lot:
    quantity: float  # signed: > 0 long, < 0 short
    price: float
    commission_per_unit: float


@dataclass(frozen=True)
class PositionSummary:
    symbol: str
    quantity: float
    average_cost: float
    market_price: float
    market_value: float
    unrealized_pnl: float


@dataclass(frozen=True)
class TradeStats:
    realized_pnl: float
    unrealized_pnl: float
    total_trades: int
    closing_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    closed_pnls: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class PerformanceReport:
    initial_balance: float
    balance: float
    equity: float
    realized_pnl: float
    unrealized_pnl: float
    total_profit: float
    total_return: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    profit_factor: float
    max_drawdown: float
    positions: list[PositionSummary]


def calculate_metrics(trade_pnls: list[float], initial_equity: float) -> dict:
    """Win rate, profit factor and max drawdown over closed-trade P&Ls."""
    if not trade_pnls:
        return {
            "total_trades": 0, "win_rate": 0.0, "profit_factor": 0.0,
            "total_pnl": 0.0, "max_drawdown": 0.0,
        }

    wins = [p for p in trade_pnls if p > 0]
    losses = [p for p in trade_pnls if p < 0]

    total_wins = sum(wins)
    total_losses = abs(sum(losses))

    equity = initial_equity
    peak = equity
    max_dd = 0.0
    for pnl in trade_pnls:
        equity += pnl
        peak = max(peak, equity)
        dd = (peak - equity) / peak if peak > 0 else 0.0
        max_dd = max(max_dd, dd)

    return {
        "total_trades": len(trade_pnls),
        "win_rate": len(wins) / len(trade_pnls),
        "profit_factor": total_wins / total_losses if total_losses > 0 else float("inf"),
        "total_pnl": sum(trade_pnls),
        "max_drawdown": max_dd,
    }


class PerformanceTracker:
    def __init__(self, initial_balance: float) -> None:
        self.initial_balance = initial_balance

    @staticmethod
    def _match(trades: list[SimulatedTrade]) -> tuple[dict[str, deque[_Lot]], list[float]]:
        """FIFO-match trades; returns open lots per symbol and per-closing-trade P&L."""
        books: dict[str, deque[_Lot]] = {}
        closed: list[float] = []

        for trade in trades:
            lots = books.setdefault(trade.symbol, deque())
            sign = 1.0 if trade.action is TradeAction.BUY else -1.0
            remaining = trade.quantity
            fee = trade.commission / trade.quantity if trade.quantity else 0.0
            pnl = 0.0
            matched = False

            while remaining > 0 and lots and lots[0].quantity * sign < 0:
                lot = lots[0]
                qty = min(remaining, abs(lot.quantity))
                if lot.quantity > 0:
                    pnl += (trade.price - lot.price) * qty
                else:
                    pnl += (lot.price - trade.price) * qty
                pnl -= (lot.commission_per_unit + fee) * qty
                matched = True
                remaining -= qty
                lot.quantity += qty * sign
                if abs(lot.quantity) < 1e-12:
                    lots.popleft()

            if remaining > 0:
                lots.append(_Lot(quantity=remaining * sign, price=trade.price, commission_per_unit=fee))
            if matched:
                closed.append(round(pnl, 2))

        return books, closed

    def stats(self, trades: list[SimulatedTrade], marks: dict[str, float]) -> TradeStats:
        books, closed = self._match(trades)
        unrealized = 0.0
        for symbol, lots in books.items():
            for lot in lots:
                mark = marks.get(symbol, lot.price)
                unrealized += (mark - lot.price) * lot.quantity - lot.commission_per_unit * abs(lot.quantity)

        wins = sum(1 for p in closed if p > 0)
        losses = sum(1 for p in closed if p < 0)
        return TradeStats(
            realized_pnl=round(sum(closed), 2),
            unrealized_pnl=round(unrealized, 2),
            total_trades=len(trades),
            closing_trades=len(closed),
            winning_trades=wins,
            losing_trades=losses,
            win_rate=wins / len(closed) if closed else 0.0,
            closed_pnls=closed,
        )

    def positions(self, trades: list[SimulatedTrade], marks: dict[str, float]) -> list[PositionSummary]:
        """Open positions with average cost (commissions excluded)."""
        books, _ = self._match(trades)
        result: list[PositionSummary] = []
        for symbol in sorted(books):
            lots = books[symbol]
            quantity = sum(lot.quantity for lot in lots)
            if not lots or abs(quantity) < 1e-12:
                continue
            average = sum(lot.price * lot.quantity for lot in lots) / quantity
            mark = marks.get(symbol, average)
            fees = sum(lot.commission_per_unit * abs(lot.quantity) for lot in lots)
            result.append(PositionSummary(
                symbol=symbol,
                quantity=quantity,
                average_cost=round(average, 4),
                market_price=mark,
                market_value=round(mark * quantity, 2),
                unrealized_pnl=round((mark - average) * quantity - fees, 2),
            ))
        return result

    def report(
        self, trades: list[SimulatedTrade], balance: float, marks: dict[str, float],
    ) -> PerformanceReport:
        stats = self.stats(trades, marks)
        positions = self.positions(trades, marks)
        equity = round(balance + sum(p.market_value for p in positions), 2)
        summary = calculate_metrics(stats.closed_pnls, self.initial_balance)
        total_profit = round(stats.realized_pnl + stats.unrealized_pnl, 2)
        return PerformanceReport(
            initial_balance=self.initial_balance,
            balance=balance,
            equity=equity,
            realized_pnl=stats.realized_pnl,
            unrealized_pnl=stats.unrealized_pnl,
            total_profit=total_profit,
            total_return=total_profit / self.initial_balance if self.initial_balance else 0.0,
            total_trades=stats.total_trades,
            winning_trades=stats.winning_trades,
            losing_trades=stats.losing_trades,
            win_rate=stats.win_rate,
            profit_factor=summary["profit_factor"],
            max_drawdown=summary["max_drawdown"],
            positions=positions,
        )
