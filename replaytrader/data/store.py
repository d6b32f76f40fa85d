from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from replaytrader.core.types import Bar, ReplaySession, ReplayStatus, SimulatedTrade, Timeframe


class BarStore(ABC):
    """Read side of the historical bar cache."""

    @abstractmethod
    async def get_bars(
        self, symbol: str, timeframe: Timeframe, start: datetime, end: datetime,
    ) -> list[Bar]:
        """Bars with start <= timestamp <= end, ordered by timestamp."""

    @abstractmethod
    async def get_bar_near(
        self, symbol: str, timestamp: datetime, timeframe: Timeframe | None = None,
    ) -> Bar | None:
        """Bar closest to timestamp on the same UTC calendar day, if any."""


class TradeLog(ABC):
    @abstractmethod
    async def append(self, trade: SimulatedTrade) -> None: ...

    @abstractmethod
    async def get_trades(self, session_id: str) -> list[SimulatedTrade]: ...


class AccountStore(ABC):
    @abstractmethod
    async def get_balance(self, session_id: str) -> float | None: ...

    @abstractmethod
    async def save_session(self, session: ReplaySession, initial_balance: float) -> None: ...

    @abstractmethod
    async def update_session(
        self,
        session_id: str,
        status: ReplayStatus,
        current_balance: float,
        completed_at: datetime | None = None,
    ) -> None: ...
