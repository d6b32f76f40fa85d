"""ReplayController: virtual clock, replay state machine and simulated account.

States::

    STOPPED -> RUNNING <-> PAUSED -> COMPLETED
    (RUNNING | PAUSED) -> STOPPED via stop()

One ``asyncio.Lock`` guards the session, projected quotes, trade list and
account. Ticks and trades do their I/O outside the lock and commit (or roll
back) under it. Queries return copies.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import date, datetime, timedelta, timezone

from replaytrader.core.config import Settings
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
from replaytrader.core.exceptions import (
    AlreadyActiveError,
    InsufficientHistoryError,
    StoreUnavailableError,
)
from replaytrader.core.types import (
    AccountState,
    ErrorKind,
    MarketHours,
    OrderType,
    ProjectedQuote,
    ReplayMetrics,
    ReplaySession,
    ReplayStatus,
    SimulatedTrade,
    TradeAction,
    TradeResult,
    ValidationReport,
)
from replaytrader.data.store import AccountStore, BarStore, TradeLog
from replaytrader.portfolio.performance import PerformanceReport, PerformanceTracker
from replaytrader.replay import market_hours
from replaytrader.replay.execution import TradeExecutionEngine
from replaytrader.replay.projector import MarketStateProjector
from replaytrader.replay.scheduler import PeriodicTicker
from replaytrader.replay.validator import DataIntegrityValidator

logger = logging.getLogger(__name__)

VIRTUAL_STEP = timedelta(minutes=1)


class ReplayController:
    def __init__(
        self,
        bar_store: BarStore,
        trade_log: TradeLog,
        account_store: AccountStore | None = None,
        settings: Settings | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._bus = bus or EventBus()
        self._account_store = account_store
        self._timeframe = self._settings.replay.parsed_timeframe
        self._validator = DataIntegrityValidator(bar_store, self._settings.validation.gap_tolerance)
        self._projector = MarketStateProjector(bar_store, self._settings.projection, self._timeframe)
        self._engine = TradeExecutionEngine(trade_log, self._settings.execution)

        self._lock = asyncio.Lock()
        self._session: ReplaySession | None = None
        self._account: AccountState | None = None
        self._quotes: dict[str, ProjectedQuote] = {}
        self._trades: list[SimulatedTrade] = []
        self._reports: list[ValidationReport] = []
        self._tick_errors = 0
        self._ticker: PeriodicTicker | None = None

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def status(self) -> ReplayStatus:
        return self._session.status if self._session else ReplayStatus.STOPPED

    @property
    def session(self) -> ReplaySession | None:
        if self._session is None:
            return None
        return dataclasses.replace(self._session, symbols=list(self._session.symbols))

    @property
    def validation_reports(self) -> list[ValidationReport]:
        return list(self._reports)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        session_id: str,
        symbols: list[str],
        start: datetime,
        end: datetime,
        speed: float | None = None,
    ) -> ReplaySession:
        """Validate history, initialise the account and begin ticking.

        Raises:
            AlreadyActiveError: A replay is RUNNING or PAUSED.
            InsufficientHistoryError: Some symbols have no bars in the window.
            StoreUnavailableError: The bar or account store failed.
            ValueError: Empty symbols, end before start or non-positive speed.
        """
        if self._session is not None and self._session.status.is_active:
            raise AlreadyActiveError(self._session.id)
        if not symbols:
            raise ValueError("At least one symbol is required")
        if end < start:
            raise ValueError("Replay end must not be before start")
        interval = speed if speed is not None else self._settings.replay.tick_interval_seconds
        if interval <= 0:
            raise ValueError(f"speed must be positive, got {interval}")

        symbols = [s.strip().upper() for s in symbols]
        reports = list(await asyncio.gather(
            *(self._validator.validate(s, self._timeframe, start, end) for s in symbols)
        ))
        missing = [r.symbol for r in reports if not r.has_coverage]
        if missing:
            logger.warning("Cannot start replay %s, no data for %s", session_id, missing)
            raise InsufficientHistoryError(missing)

        initial_balance = self._settings.replay.initial_balance
        if self._account_store is not None:
            stored = await self._account_store.get_balance(session_id)
            if stored is not None:
                initial_balance = stored

        quotes = await self._projector.project(symbols, start)
        session = ReplaySession(
            id=session_id,
            symbols=symbols,
            start=start,
            end=end,
            current_time=start,
            tick_interval=interval,
            status=ReplayStatus.RUNNING,
        )
        async with self._lock:
            if self._session is not None and self._session.status.is_active:
                raise AlreadyActiveError(self._session.id)
            previous = (
                self._session, self._account, self._quotes, self._trades,
                self._reports, self._tick_errors, self._ticker,
            )
            self._session = session
            self._account = AccountState(initial_balance=initial_balance, balance=initial_balance)
            self._quotes = {q.symbol: q for q in quotes}
            self._trades = []
            self._reports = reports
            self._tick_errors = 0
            self._ticker = PeriodicTicker(self.tick, interval, name=f"replay-{session_id}")

        if self._account_store is not None:
            try:
                await self._account_store.save_session(session, initial_balance)
            except StoreUnavailableError:
                async with self._lock:
                    if self._session is session:
                        (
                            self._session, self._account, self._quotes, self._trades,
                            self._reports, self._tick_errors, self._ticker,
                        ) = previous
                raise

        async with self._lock:
            if self._session is session and session.status.is_active and self._ticker is not None:
                self._ticker.start()

        logger.info(
            "Replay %s started: %s from %s to %s, %.3fs per tick, balance %.2f",
            session_id, ",".join(symbols), start.isoformat(), end.isoformat(),
            interval, initial_balance,
        )
        for report in reports:
            if not report.is_valid:
                await self._warn(
                    f"{len(report.gaps)} gaps and {len(report.inconsistencies)} "
                    f"OHLC inconsistencies in {report.total_records} bars",
                    start, report.symbol,
                )
        await self._emit_status(session)
        await self._bus.emit(MARKET_UPDATE, MarketUpdate(
            quotes=quotes, virtual_time=start, progress=session.progress,
        ))
        return self.session  # type: ignore[return-value]

    async def tick(self) -> bool:
        """Advance the virtual clock by one minute and re-project quotes.

        Returns False once the replay is no longer running, which also ends
        the background ticker.
        """
        async with self._lock:
            session = self._session
            if session is None or session.status is not ReplayStatus.RUNNING:
                return session is not None and session.status is ReplayStatus.PAUSED
            if session.current_time >= session.end:
                session.status = ReplayStatus.COMPLETED
                completed = True
            else:
                completed = False
                next_time = min(session.current_time + VIRTUAL_STEP, session.end)
                symbols = list(session.symbols)
                # held positions keep being marked after their symbol is unwatched
                if self._account is not None:
                    symbols += [s for s, qty in self._account.positions.items()
                                if qty and s not in symbols]

        if completed:
            await self._on_completed(session)
            return False

        error: StoreUnavailableError | None = None
        quotes: list[ProjectedQuote] = []
        try:
            quotes = await self._projector.project(symbols, next_time)
        except StoreUnavailableError as e:
            error = e

        async with self._lock:
            if self._session is not session:
                return False
            session.current_time = next_time
            session.ticks += 1
            if error is None:
                fresh = {q.symbol: q for q in quotes}
                if self._account is not None:
                    for held in self._account.positions:
                        if held not in fresh and held in self._quotes:
                            fresh[held] = self._quotes[held]
                self._quotes = fresh
            else:
                self._tick_errors += 1
            snapshot = [self._quotes[s] for s in session.symbols if s in self._quotes]
            progress = session.progress
            if session.current_time >= session.end and session.status.is_active:
                session.status = ReplayStatus.COMPLETED
            completed = session.status is ReplayStatus.COMPLETED

        if error is not None:
            logger.error("Tick at %s failed, keeping previous quotes: %s", next_time.isoformat(), error)
            await self._warn(f"Market projection failed: {error}", next_time)
        await self._bus.emit(MARKET_UPDATE, MarketUpdate(
            quotes=snapshot, virtual_time=next_time, progress=progress,
        ))
        if completed:
            await self._on_completed(session)
            return False
        return True

    async def pause(self) -> None:
        async with self._lock:
            session = self._session
            if session is None or session.status is not ReplayStatus.RUNNING:
                return
            session.status = ReplayStatus.PAUSED
            if self._ticker is not None:
                self._ticker.pause()
        logger.info("Replay %s paused at %s", session.id, session.current_time.isoformat())
        await self._emit_status(session)

    async def resume(self) -> None:
        async with self._lock:
            session = self._session
            if session is None or session.status is not ReplayStatus.PAUSED:
                return
            session.status = ReplayStatus.RUNNING
            if self._ticker is not None:
                self._ticker.resume()
        logger.info("Replay %s resumed at %s", session.id, session.current_time.isoformat())
        await self._emit_status(session)

    async def set_speed(self, seconds: float) -> None:
        """Change the wall-clock seconds per tick; applies immediately."""
        if seconds <= 0:
            raise ValueError(f"speed must be positive, got {seconds}")
        async with self._lock:
            if self._session is not None:
                self._session.tick_interval = seconds
            if self._ticker is not None:
                self._ticker.set_interval(seconds)
        logger.info("Replay speed set to %.3fs per tick", seconds)

    async def set_symbols(self, symbols: list[str]) -> None:
        """Replace the watched symbols; takes effect on the next tick."""
        if not symbols:
            raise ValueError("At least one symbol is required")
        async with self._lock:
            if self._session is None:
                return
            self._session.symbols = [s.strip().upper() for s in symbols]
        logger.info("Replay symbols set to %s", ",".join(symbols))

    async def stop(self) -> None:
        """Stop ticking and mark the session STOPPED; idempotent.

        Returns after any in-flight tick has finished.
        """
        session = self._session
        if session is None or not session.status.is_active:
            return
        if self._ticker is not None:
            await self._ticker.stop()

        async with self._lock:
            if self._session is not session or not session.status.is_active:
                return
            session.status = ReplayStatus.STOPPED
            balance = self._account.balance if self._account else 0.0

        logger.info("Replay %s stopped at %s", session.id, session.current_time.isoformat())
        await self._persist_status(session, balance, completed_at=None)
        await self._emit_status(session)

    async def wait_closed(self) -> None:
        """Wait until the background ticker exits (completion or stop)."""
        if self._ticker is not None:
            await self._ticker.wait()

    # ------------------------------------------------------------------
    # Trading
    # ------------------------------------------------------------------

    async def execute_trade(
        self,
        session_id: str,
        symbol: str,
        action: TradeAction | str,
        quantity: float,
        order_type: OrderType | str = OrderType.MARKET,
        limit_price: float | None = None,
    ) -> TradeResult:
        try:
            action = TradeAction(action.strip().lower() if isinstance(action, str) else action)
            order_type = OrderType(
                order_type.strip().lower() if isinstance(order_type, str) else order_type
            )
        except ValueError as e:
            balance = self._account.balance if self._account else 0.0
            logger.info("Trade rejected (%s): %s", ErrorKind.INVALID_ORDER, e)
            return TradeResult.rejected(ErrorKind.INVALID_ORDER, str(e), balance)
        symbol = symbol.strip().upper()

        async with self._lock:
            session = self._session
            account = self._account
            if session is None or account is None or not session.status.is_active or session.id != session_id:
                balance = account.balance if account else 0.0
                return TradeResult.rejected(
                    ErrorKind.NOT_ACTIVE, f"No active replay session {session_id}", balance,
                )
            result = self._engine.apply(
                session_id, account, self._quotes.get(symbol), symbol, action, quantity,
                session.current_time, order_type, limit_price,
            )
            if not result.success or result.trade is None:
                logger.info("Trade rejected (%s): %s", result.error, result.message)
                return result
            trades = self._trades
            trades.append(result.trade)

        try:
            await self._engine.persist(result.trade)
        except StoreUnavailableError as e:
            async with self._lock:
                self._engine.revert(account, result)
                if result.trade in trades:
                    trades.remove(result.trade)
                balance = account.balance
            logger.error("Trade for %s rolled back, persistence failed: %s", symbol, e)
            return TradeResult.rejected(ErrorKind.STORE_UNAVAILABLE, str(e), balance)

        logger.info("Trade executed: %s", result.message)
        await self._persist_status(session, result.new_balance, completed_at=None)
        await self._bus.emit(TRADE_EXECUTED, TradeExecuted(trade=result.trade, result=result))
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_current_market_state(self) -> list[ProjectedQuote]:
        async with self._lock:
            if self._session is None:
                return []
            return [self._quotes[s] for s in self._session.symbols if s in self._quotes]

    async def get_current_quote(self, symbol: str) -> ProjectedQuote | None:
        async with self._lock:
            return self._quotes.get(symbol.strip().upper())

    async def get_market_hours(self, day: date | None = None) -> MarketHours | None:
        """Session boundaries for *day*, defaulting to the virtual day.

        Returns None when no day is given and no replay has been started.
        """
        config = self._settings.market
        if day is None:
            async with self._lock:
                if self._session is None:
                    return None
                day = market_hours.session_day(self._session.current_time, config)
        return market_hours.market_hours(day, config)

    async def is_market_open(self) -> bool:
        """Whether the exchange is open at the current virtual time."""
        async with self._lock:
            if self._session is None:
                return False
            now = self._session.current_time
        return market_hours.is_market_open(now, self._settings.market)

    async def get_trades(self) -> list[SimulatedTrade]:
        async with self._lock:
            return list(self._trades)

    async def get_account(self) -> AccountState | None:
        async with self._lock:
            return self._account.copy() if self._account else None

    async def get_metrics(self) -> ReplayMetrics:
        async with self._lock:
            session = self.session
            account = self._account.copy() if self._account else None
            trades = list(self._trades)
            marks = {s: q.price for s, q in self._quotes.items()}
            tick_errors = self._tick_errors

        initial = account.initial_balance if account else self._settings.replay.initial_balance
        balance = account.balance if account else initial
        report = PerformanceTracker(initial).report(trades, balance, marks)
        return ReplayMetrics(
            status=session.status if session else ReplayStatus.STOPPED,
            virtual_time=session.current_time if session else None,
            progress=session.progress if session else 0.0,
            initial_balance=initial,
            current_balance=balance,
            equity=report.equity,
            realized_pnl=report.realized_pnl,
            unrealized_pnl=report.unrealized_pnl,
            total_profit=report.total_profit,
            total_trades=report.total_trades,
            winning_trades=report.winning_trades,
            losing_trades=report.losing_trades,
            win_rate=report.win_rate,
            ticks=session.ticks if session else 0,
            tick_errors=tick_errors,
        )

    async def get_report(self) -> PerformanceReport:
        async with self._lock:
            account = self._account.copy() if self._account else None
            trades = list(self._trades)
            marks = {s: q.price for s, q in self._quotes.items()}
        initial = account.initial_balance if account else self._settings.replay.initial_balance
        balance = account.balance if account else initial
        return PerformanceTracker(initial).report(trades, balance, marks)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _on_completed(self, session: ReplaySession) -> None:
        if self._ticker is not None:
            await self._ticker.stop()
        balance = self._account.balance if self._account else 0.0
        logger.info(
            "Replay %s completed at %s after %d ticks, balance %.2f",
            session.id, session.current_time.isoformat(), session.ticks, balance,
        )
        await self._persist_status(session, balance, completed_at=datetime.now(timezone.utc))
        await self._emit_status(session)

    async def _persist_status(
        self, session: ReplaySession, balance: float, completed_at: datetime | None,
    ) -> None:
        if self._account_store is None:
            return
        try:
            await self._account_store.update_session(session.id, session.status, balance, completed_at)
        except StoreUnavailableError as e:
            logger.error("Could not persist session %s: %s", session.id, e)
            await self._warn(f"Session state not persisted: {e}", session.current_time)

    async def _emit_status(self, session: ReplaySession) -> None:
        await self._bus.emit(STATUS_CHANGED, StatusChanged(
            status=session.status,
            virtual_time=session.current_time,
            progress=session.progress,
        ))

    async def _warn(self, message: str, virtual_time: datetime | None, symbol: str | None = None) -> None:
        await self._bus.emit(DATA_WARNING, DataWarning(
            message=message, virtual_time=virtual_time, symbol=symbol,
        ))
