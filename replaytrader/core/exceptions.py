"""Core exception hierarchy for ReplayTrader.

Control-plane failures (starting a replay, reaching the bar store) are
raised as exceptions from this module. Each carries an ``ErrorKind`` so
callers can map them onto the same codes used by ``TradeResult``.
"""
from __future__ import annotations

from replaytrader.core.types import ErrorKind


class ReplayTraderError(Exception):
    """Base exception class for all ReplayTrader errors.

    Attributes:
        kind: Machine-readable error code, or None for generic errors.
    """

    kind: ErrorKind | None = None


class ConfigError(ReplayTraderError):
    """Configuration-related errors.

    Raised when a configuration file is missing required values or
    contains settings that cannot be applied.
    """


class DataError(ReplayTraderError):
    """Bar store and persistence errors."""


class StoreUnavailableError(DataError):
    """I/O failure while talking to the bar store, trade log or account store.

    Attributes:
        operation: Store operation that failed (e.g. "get_bars").
        reason: Underlying failure description.
    """

    kind = ErrorKind.STORE_UNAVAILABLE

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Store unavailable during {operation}: {reason}")
        self.operation = operation
        self.reason = reason


class ReplayError(ReplayTraderError):
    """Replay controller state errors."""


class AlreadyActiveError(ReplayError):
    """Start requested while a replay is running or paused.

    Attributes:
        session_id: Session that currently owns the controller.
    """

    kind = ErrorKind.ALREADY_ACTIVE

    def __init__(self, session_id: str):
        super().__init__(f"Replay session {session_id} is already active")
        self.session_id = session_id


class InsufficientHistoryError(ReplayError):
    """No historical bars cover the requested replay window.

    Attributes:
        symbols: Symbols that had no bars in the window.
    """

    kind = ErrorKind.INSUFFICIENT_HISTORY

    def __init__(self, symbols: list[str]):
        super().__init__(
            f"Insufficient historical data for: {', '.join(symbols)}"
        )
        self.symbols = list(symbols)
