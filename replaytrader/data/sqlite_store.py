"""SQLite-backed bar cache, trade log and session store (aiosqlite)."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import aiosqlite

from replaytrader.core.exceptions import StoreUnavailableError
from replaytrader.core.types import (
    Bar,
    OrderType,
    ReplaySession,
    ReplayStatus,
    SimulatedTrade,
    Timeframe,
    TradeAction,
)
from replaytrader.data.store import AccountStore, BarStore, TradeLog

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS bar_cache (
        symbol TEXT NOT NULL,
        timeframe_type TEXT NOT NULL,
        timeframe_value INTEGER NOT NULL,
        timestamp TEXT NOT NULL,
        epoch REAL NOT NULL,
        open REAL NOT NULL,
        high REAL NOT NULL,
        low REAL NOT NULL,
        close REAL NOT NULL,
        volume REAL NOT NULL,
        data_source TEXT NOT NULL,
        fetched_at TEXT NOT NULL,
        is_real_time INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (symbol, timeframe_type, timeframe_value, timestamp)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_bar_cache_symbol_epoch ON bar_cache (symbol, epoch)",
    """
    CREATE TABLE IF NOT EXISTS sandbox_trades (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        symbol TEXT NOT NULL,
        action TEXT NOT NULL,
        quantity REAL NOT NULL,
        price REAL NOT NULL,
        commission REAL NOT NULL,
        total_value REAL NOT NULL,
        order_type TEXT NOT NULL,
        limit_price REAL,
        executed_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sandbox_trades_session ON sandbox_trades (session_id)",
    """
    CREATE TABLE IF NOT EXISTS sandbox_sessions (
        session_id TEXT PRIMARY KEY,
        symbols TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        initial_balance REAL NOT NULL,
        current_balance REAL NOT NULL,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL,
        completed_at TEXT
    )
    """,
)

_BAR_COLUMNS = "symbol, timeframe_type, timeframe_value, timestamp, open, high, low, close, volume"


def _epoch(ts: datetime) -> float:
    """Seconds since the epoch; naive timestamps are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


def _utc_day_bounds(ts: datetime) -> tuple[float, float]:
    aware = ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)
    day = aware.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return day.timestamp(), (day + timedelta(days=1)).timestamp()


def _row_to_bar(row: Any) -> Bar:
    return Bar(
        symbol=row[0],
        timeframe=Timeframe(type=row[1], value=row[2]),
        timestamp=datetime.fromisoformat(row[3]),
        open=row[4], high=row[5], low=row[6], close=row[7], volume=row[8],
    )


def _row_to_trade(row: Any) -> SimulatedTrade:
    return SimulatedTrade(
        session_id=row[0],
        symbol=row[1],
        action=TradeAction(row[2]),
        quantity=row[3],
        price=row[4],
        commission=row[5],
        order_type=OrderType(row[6]),
        limit_price=row[7],
        executed_at=datetime.fromisoformat(row[8]),
    )


class SQLiteStore(BarStore, TradeLog, AccountStore):
    """One SQLite database holding ``bar_cache``, ``sandbox_trades`` and
    ``sandbox_sessions``.

    Every aiosqlite failure is re-raised as ``StoreUnavailableError`` so the
    replay engine only has to handle one I/O error type.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        try:
            self._db = await aiosqlite.connect(self._db_path)
            for statement in _SCHEMA:
                await self._db.execute(statement)
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("initialize", str(e)) from e
        logger.debug("SQLiteStore opened at %s", self._db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self, operation: str) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreUnavailableError(operation, "store is not initialized")
        return self._db

    # ------------------------------------------------------------------
    # Bar cache
    # ------------------------------------------------------------------

    async def save_bars(
        self,
        bars: list[Bar],
        data_source: str = "historical",
        is_real_time: bool = False,
    ) -> int:
        """Upsert bars with provenance; returns the number of new rows."""
        db = self._conn("save_bars")
        if not bars:
            return 0
        fetched_at = datetime.now(timezone.utc).isoformat()
        try:
            before = await self._count_bars(db)
            await db.executemany(
                f"""
                INSERT INTO bar_cache ({_BAR_COLUMNS}, epoch, data_source, fetched_at, is_real_time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (symbol, timeframe_type, timeframe_value, timestamp) DO UPDATE SET
                    open = excluded.open, high = excluded.high, low = excluded.low,
                    close = excluded.close, volume = excluded.volume,
                    data_source = excluded.data_source, fetched_at = excluded.fetched_at,
                    is_real_time = excluded.is_real_time
                """,
                [
                    (
                        b.symbol, b.timeframe.type, b.timeframe.value, b.timestamp.isoformat(),
                        b.open, b.high, b.low, b.close, b.volume,
                        _epoch(b.timestamp), data_source, fetched_at, int(is_real_time),
                    )
                    for b in bars
                ],
            )
            await db.commit()
            after = await self._count_bars(db)
        except aiosqlite.Error as e:
            raise StoreUnavailableError("save_bars", str(e)) from e
        inserted = after - before
        logger.debug("Saved %d bars (%d new) from %s", len(bars), inserted, data_source)
        return inserted

    async def _count_bars(self, db: aiosqlite.Connection) -> int:
        cursor = await db.execute("SELECT COUNT(*) FROM bar_cache")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_bars(
        self, symbol: str, timeframe: Timeframe, start: datetime, end: datetime,
    ) -> list[Bar]:
        db = self._conn("get_bars")
        try:
            cursor = await db.execute(
                f"SELECT {_BAR_COLUMNS} FROM bar_cache "
                "WHERE symbol = ? AND timeframe_type = ? AND timeframe_value = ? "
                "AND epoch >= ? AND epoch <= ? ORDER BY epoch",
                (symbol, timeframe.type, timeframe.value, _epoch(start), _epoch(end)),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("get_bars", str(e)) from e
        return [_row_to_bar(r) for r in rows]

    async def get_bar_near(
        self, symbol: str, timestamp: datetime, timeframe: Timeframe | None = None,
    ) -> Bar | None:
        db = self._conn("get_bar_near")
        target = _epoch(timestamp)
        day_start, day_end = _utc_day_bounds(timestamp)
        query = (
            f"SELECT {_BAR_COLUMNS} FROM bar_cache "
            "WHERE symbol = ? AND epoch >= ? AND epoch < ?"
        )
        params: list[Any] = [symbol, day_start, day_end]
        if timeframe is not None:
            query += " AND timeframe_type = ? AND timeframe_value = ?"
            params += [timeframe.type, timeframe.value]
        query += " ORDER BY ABS(epoch - ?), epoch LIMIT 1"
        params.append(target)
        try:
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("get_bar_near", str(e)) from e
        return _row_to_bar(row) if row else None

    async def get_data_range(
        self, symbol: str, timeframe: Timeframe | None = None,
    ) -> tuple[datetime, datetime, int] | None:
        """(first timestamp, last timestamp, bar count) for a symbol, or None."""
        db = self._conn("get_data_range")
        query = "SELECT MIN(epoch), MAX(epoch), COUNT(*) FROM bar_cache WHERE symbol = ?"
        params: list[Any] = [symbol]
        if timeframe is not None:
            query += " AND timeframe_type = ? AND timeframe_value = ?"
            params += [timeframe.type, timeframe.value]
        try:
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("get_data_range", str(e)) from e
        if not row or not row[2]:
            return None
        first = datetime.fromtimestamp(row[0], tz=timezone.utc)
        last = datetime.fromtimestamp(row[1], tz=timezone.utc)
        return first, last, int(row[2])

    # ------------------------------------------------------------------
    # Trade log
    # ------------------------------------------------------------------

    async def append(self, trade: SimulatedTrade) -> None:
        db = self._conn("append")
        try:
            await db.execute(
                """
                INSERT INTO sandbox_trades (session_id, symbol, action, quantity, price,
                    commission, total_value, order_type, limit_price, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trade.session_id, trade.symbol, trade.action.value, trade.quantity,
                    trade.price, trade.commission, trade.total_value,
                    trade.order_type.value, trade.limit_price, trade.executed_at.isoformat(),
                ),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("append", str(e)) from e

    async def get_trades(self, session_id: str) -> list[SimulatedTrade]:
        db = self._conn("get_trades")
        try:
            cursor = await db.execute(
                "SELECT session_id, symbol, action, quantity, price, commission, "
                "order_type, limit_price, executed_at FROM sandbox_trades "
                "WHERE session_id = ? ORDER BY id",
                (session_id,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("get_trades", str(e)) from e
        return [_row_to_trade(r) for r in rows]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def get_balance(self, session_id: str) -> float | None:
        db = self._conn("get_balance")
        try:
            cursor = await db.execute(
                "SELECT current_balance FROM sandbox_sessions WHERE session_id = ?",
                (session_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("get_balance", str(e)) from e
        return float(row[0]) if row else None

    async def save_session(self, session: ReplaySession, initial_balance: float) -> None:
        """Insert the session row, or refresh it when the id is reused.

        A reused id starts a new run from *initial_balance*, so both balance
        columns are overwritten.
        """
        db = self._conn("save_session")
        try:
            await db.execute(
                """
                INSERT INTO sandbox_sessions (session_id, symbols, start_time, end_time,
                    initial_balance, current_balance, status, created_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL)
                ON CONFLICT (session_id) DO UPDATE SET
                    symbols = excluded.symbols, start_time = excluded.start_time,
                    end_time = excluded.end_time, status = excluded.status,
                    initial_balance = excluded.initial_balance,
                    current_balance = excluded.current_balance, completed_at = NULL
                """,
                (
                    session.id, json.dumps(session.symbols), session.start.isoformat(),
                    session.end.isoformat(), initial_balance, initial_balance,
                    session.status.value, datetime.now(timezone.utc).isoformat(),
                ),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("save_session", str(e)) from e

    async def update_session(
        self,
        session_id: str,
        status: ReplayStatus,
        current_balance: float,
        completed_at: datetime | None = None,
    ) -> None:
        db = self._conn("update_session")
        try:
            await db.execute(
                "UPDATE sandbox_sessions SET status = ?, current_balance = ?, "
                "completed_at = COALESCE(?, completed_at) WHERE session_id = ?",
                (
                    status.value, current_balance,
                    completed_at.isoformat() if completed_at else None, session_id,
                ),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("update_session", str(e)) from e

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        db = self._conn("get_session")
        try:
            cursor = await db.execute(
                "SELECT session_id, symbols, start_time, end_time, initial_balance, "
                "current_balance, status, created_at, completed_at "
                "FROM sandbox_sessions WHERE session_id = ?",
                (session_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreUnavailableError("get_session", str(e)) from e
        if row is None:
            return None
        return {
            "session_id": row[0],
            "symbols": json.loads(row[1]),
            "start_time": row[2],
            "end_time": row[3],
            "initial_balance": row[4],
            "current_balance": row[5],
            "status": row[6],
            "created_at": row[7],
            "completed_at": row[8],
        }
