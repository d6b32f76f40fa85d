"""Headless entry point: seed synthetic bars, validate a window, or run a replay."""
from __future__ import annotations

import argparse
import asyncio
import logging
import uuid
from datetime import date, datetime, timezone
from pathlib import Path

from replaytrader.core.config import Settings, load_settings
from replaytrader.core.event_bus import EventBus
from replaytrader.core.exceptions import ReplayTraderError
from replaytrader.core.logger import ReplayLogListener, setup_logging
from replaytrader.data.sqlite_store import SQLiteStore
from replaytrader.data.store import TradeLog
from replaytrader.data.synthetic import generate_session_bars
from replaytrader.portfolio.trade_logger import TradeLogger
from replaytrader.replay.controller import ReplayController
from replaytrader.replay.validator import DataIntegrityValidator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("config/default.yaml")


def _parse_time(text: str) -> datetime:
    """ISO timestamp; naive values are taken as UTC."""
    ts = datetime.fromisoformat(text)
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="replaytrader", description=__doc__)
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="write synthetic session bars into the bar store")
    seed.add_argument("--date", required=True, type=date.fromisoformat)
    seed.add_argument("--symbols", nargs="+", default=None)
    seed.add_argument("--seed", type=int, default=None)

    validate = sub.add_parser("validate", help="print a data integrity report")
    validate.add_argument("--start", required=True, type=_parse_time)
    validate.add_argument("--end", required=True, type=_parse_time)
    validate.add_argument("--symbols", nargs="+", default=None)

    run = sub.add_parser("run", help="replay a window until it completes")
    run.add_argument("--start", required=True, type=_parse_time)
    run.add_argument("--end", required=True, type=_parse_time)
    run.add_argument("--symbols", nargs="+", default=None)
    run.add_argument("--speed", type=float, default=None, help="wall-clock seconds per tick")
    run.add_argument("--session-id", default=None)
    return parser


def _load(config_path: Path | None) -> Settings:
    if config_path is not None:
        return load_settings(config_path)
    if DEFAULT_CONFIG.exists():
        return load_settings(DEFAULT_CONFIG)
    return Settings()


def _trade_log(settings: Settings, store: SQLiteStore) -> TradeLog:
    if settings.data.trade_log == "jsonl":
        return TradeLogger(settings.data.trade_log_path)
    return store


async def seed_command(settings: Settings, store: SQLiteStore, args: argparse.Namespace) -> int:
    symbols = args.symbols or settings.replay.symbols
    timeframe = settings.replay.parsed_timeframe
    total = 0
    for offset, symbol in enumerate(symbols):
        base = settings.projection.baseline_prices.get(symbol, settings.projection.default_baseline_price)
        seed = None if args.seed is None else args.seed + offset
        bars = generate_session_bars(symbol, args.date, base, timeframe=timeframe, seed=seed)
        inserted = await store.save_bars(bars, data_source="synthetic")
        total += inserted
        print(f"{symbol}: {len(bars)} bars ({inserted} new)")
    logger.info("Seeded %d new bars for %s", total, args.date)
    return 0


async def validate_command(settings: Settings, store: SQLiteStore, args: argparse.Namespace) -> int:
    validator = DataIntegrityValidator(store, settings.validation.gap_tolerance)
    timeframe = settings.replay.parsed_timeframe
    all_valid = True
    for symbol in args.symbols or settings.replay.symbols:
        report = await validator.validate(symbol, timeframe, args.start, args.end)
        all_valid = all_valid and report.is_valid
        status = "OK" if report.is_valid else "PROBLEMS"
        print(f"{symbol} [{timeframe}] {status}: {report.total_records} bars over {report.covered_span}")
        for gap in report.gaps:
            print(f"  gap {gap.start.isoformat()} -> {gap.end.isoformat()} ({gap.duration}): {gap.reason}")
        for issue in report.inconsistencies:
            print(f"  {issue.timestamp.isoformat()} {issue.issue}: {issue.details}")
    return 0 if all_valid else 1


async def run_command(settings: Settings, store: SQLiteStore, args: argparse.Namespace) -> int:
    bus = EventBus()
    ReplayLogListener().attach(bus)
    controller = ReplayController(
        bar_store=store,
        trade_log=_trade_log(settings, store),
        account_store=store,
        settings=settings,
        bus=bus,
    )
    session_id = args.session_id or uuid.uuid4().hex[:12]
    await controller.start(
        session_id, args.symbols or settings.replay.symbols, args.start, args.end, args.speed,
    )
    try:
        await controller.wait_closed()
    finally:
        await controller.stop()

    metrics = await controller.get_metrics()
    print(
        f"Session {session_id} {metrics.status.value}: {metrics.ticks} ticks, "
        f"balance {metrics.current_balance:.2f}, profit {metrics.total_profit:.2f}, "
        f"{metrics.total_trades} trades, win rate {metrics.win_rate:.1%}"
    )
    return 0


_COMMANDS = {
    "seed": seed_command,
    "validate": validate_command,
    "run": run_command,
}


async def run_cli(args: argparse.Namespace, settings: Settings) -> int:
    store = SQLiteStore(settings.data.sqlite_path)
    Path(settings.data.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    await store.initialize()
    try:
        return await _COMMANDS[args.command](settings, store, args)
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = _load(args.config)
    setup_logging("replaytrader", level=settings.system.log_level, log_dir=settings.system.log_dir)

    try:
        return asyncio.run(run_cli(args, settings))
    except ReplayTraderError as e:
        logger.error("%s", e)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
