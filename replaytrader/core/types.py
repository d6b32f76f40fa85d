"""Core domain types for the replay engine."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Literal

TimeframeType = Literal["second", "minute", "daily", "weekly", "monthly"]

_TIMEFRAME_UNITS: dict[str, timedelta] = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
}

_SHORTHAND = re.compile(r"^(\d+)\s*(s|sec|min|m|h|hour|d|day|w|week|mo|month)$")
_SHORTHAND_UNITS: dict[str, tuple[str, int]] = {
    "s": ("second", 1), "sec": ("second", 1),
    "m": ("minute", 1), "min": ("minute", 1),
    "h": ("minute", 60), "hour": ("minute", 60),
    "d": ("daily", 1), "day": ("daily", 1),
    "w": ("weekly", 1), "week": ("weekly", 1),
    "mo": ("monthly", 1), "month": ("monthly", 1),
}


@dataclass(frozen=True)
class Timeframe:
    """Bar timeframe expressed as a unit type and a multiple, e.g. minute:5."""

    type: TimeframeType = "minute"
    value: int = 1

    def __post_init__(self) -> None:
        if self.type not in _TIMEFRAME_UNITS:
            raise ValueError(f"Unknown timeframe type: {self.type}")
        if self.value < 1:
            raise ValueError("Timeframe value must be >= 1")

    @property
    def interval(self) -> timedelta:
        """Expected spacing between two consecutive bars."""
        return _TIMEFRAME_UNITS[self.type] * self.value

    @classmethod
    def parse(cls, text: str) -> Timeframe:
        """Parse ``"minute:5"`` or shorthand such as ``"5min"`` / ``"1d"``."""
        raw = text.strip().lower()
        if ":" in raw:
            tf_type, _, tf_value = raw.partition(":")
            return cls(type=tf_type, value=int(tf_value))  # type: ignore[arg-type]
        match = _SHORTHAND.match(raw)
        if match is None:
            raise ValueError(f"Cannot parse timeframe: {text!r}")
        count, unit = int(match.group(1)), match.group(2)
        tf_type, multiple = _SHORTHAND_UNITS[unit]
        return cls(type=tf_type, value=count * multiple)  # type: ignore[arg-type]

    def __str__(self) -> str:
        return f"{self.type}:{self.value}"


ONE_MINUTE = Timeframe("minute", 1)


@dataclass(frozen=True)
class Bar:
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    timeframe: Timeframe = ONE_MINUTE

    def ohlc_issues(self) -> list[str]:
        """Return every OHLCV invariant this bar violates (empty if valid)."""
        issues: list[str] = []
        if min(self.open, self.high, self.low, self.close) < 0:
            issues.append("negative price")
        if self.high < self.low:
            issues.append("high below low")
        if not self.low <= self.open <= self.high:
            issues.append("open outside [low, high]")
        if not self.low <= self.close <= self.high:
            issues.append("close outside [low, high]")
        if self.volume < 0:
            issues.append("negative volume")
        return issues


class ReplayStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        return self in (ReplayStatus.RUNNING, ReplayStatus.PAUSED)


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class QuoteProvenance(str, Enum):
    HISTORICAL = "historical"
    SYNTHETIC = "synthetic"


class ErrorKind(str, Enum):
    NO_MARKET_DATA = "no_market_data"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ALREADY_ACTIVE = "already_active"
    INSUFFICIENT_HISTORY = "insufficient_history"
    STORE_UNAVAILABLE = "store_unavailable"
    INVALID_ORDER = "invalid_order"
    NOT_ACTIVE = "not_active"


@dataclass(frozen=True)
class ProjectedQuote:
    """Point-in-time price for one symbol at a virtual time."""

    symbol: str
    price: float
    volume: float
    as_of: datetime
    provenance: QuoteProvenance = QuoteProvenance.HISTORICAL
    bar_timestamp: datetime | None = None

    @property
    def is_synthetic(self) -> bool:
        return self.provenance is QuoteProvenance.SYNTHETIC


@dataclass(frozen=True)
class SimulatedTrade:
    session_id: str
    symbol: str
    action: TradeAction
    quantity: float
    price: float
    commission: float
    executed_at: datetime  # virtual time
    order_type: OrderType = OrderType.MARKET
    limit_price: float | None = None

    @property
    def total_value(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class TradeResult:
    success: bool
    execution_price: float = 0.0
    commission: float = 0.0
    total_cost: float = 0.0
    new_balance: float = 0.0
    slippage: float = 0.0
    executed_at: datetime | None = None
    trade: SimulatedTrade | None = None
    error: ErrorKind | None = None
    message: str = ""

    @classmethod
    def rejected(cls, error: ErrorKind, message: str, balance: float) -> TradeResult:
        return cls(success=False, new_balance=balance, error=error, message=message)


@dataclass
class AccountState:
    """Cash balance and signed per-symbol positions of one replay session."""

    initial_balance: float
    balance: float
    positions: dict[str, float] = field(default_factory=dict)

    def copy(self) -> AccountState:
        return AccountState(
            initial_balance=self.initial_balance,
            balance=self.balance,
            positions=dict(self.positions),
        )


@dataclass(frozen=True)
class DataGap:
    start: datetime
    end: datetime
    duration: timedelta
    reason: str


@dataclass(frozen=True)
class DataInconsistency:
    timestamp: datetime
    issue: str
    details: str


@dataclass(frozen=True)
class ValidationReport:
    symbol: str
    timeframe: Timeframe
    is_valid: bool
    total_records: int
    covered_span: timedelta
    gaps: list[DataGap] = field(default_factory=list)
    inconsistencies: list[DataInconsistency] = field(default_factory=list)

    @property
    def has_coverage(self) -> bool:
        return self.total_records > 0


@dataclass(frozen=True)
class ReplayMetrics:
    """Snapshot returned by ``ReplayController.get_metrics()``."""

    status: ReplayStatus
    virtual_time: datetime | None
    progress: float
    initial_balance: float
    current_balance: float
    equity: float
    realized_pnl: float
    unrealized_pnl: float
    total_profit: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    ticks: int = 0
    tick_errors: int = 0


@dataclass
class ReplaySession:
    """Replay window and clock state; mutated only by the controller."""

    id: str
    symbols: list[str]
    start: datetime
    end: datetime
    current_time: datetime
    tick_interval: float
    status: ReplayStatus = ReplayStatus.STOPPED
    ticks: int = 0

    @property
    def progress(self) -> float:
        total = (self.end - self.start).total_seconds()
        if total <= 0:
            return 0.0
        done = (self.current_time - self.start).total_seconds() / total
        return min(1.0, max(0.0, done))


@dataclass(frozen=True)
class MarketHours:
    """Trading session boundaries for one calendar day."""

    day: date
    pre_market_open: datetime
    market_open: datetime
    market_close: datetime
    after_hours_close: datetime
    is_holiday: bool = False
    holiday_name: str | None = None

    @property
    def is_trading_day(self) -> bool:
        return not self.is_holiday and self.day.weekday() < 5
