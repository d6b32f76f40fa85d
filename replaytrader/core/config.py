"""Core configuration management module."""
from __future__ import annotations

from datetime import time
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from replaytrader.core.types import Timeframe


class SystemConfig(BaseModel):
    """System-level configuration."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = "ReplayTrader"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str | None = "logs"


class DataConfig(BaseModel):
    """Bar store and trade log locations."""

    model_config = ConfigDict(use_enum_values=True)

    sqlite_path: str = "data/replaytrader.db"
    trade_log: Literal["sqlite", "jsonl"] = "sqlite"
    trade_log_path: str = "data/sandbox_trades.jsonl"


class ReplayConfig(BaseModel):
    """Replay clock and account defaults."""

    model_config = ConfigDict(use_enum_values=True)

    tick_interval_seconds: float = 1.0
    timeframe: str = "minute:1"
    initial_balance: float = 100_000.0
    symbols: list[str] = ["AAPL", "TSLA", "NVDA", "MSFT", "GOOGL"]

    @field_validator("tick_interval_seconds", "initial_balance")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate that the value is strictly positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("timeframe")
    @classmethod
    def validate_timeframe(cls, v: str) -> str:
        """Validate that the timeframe string parses."""
        Timeframe.parse(v)
        return v

    @field_validator("symbols")
    @classmethod
    def validate_symbols(cls, v: list[str]) -> list[str]:
        """Validate symbols list and normalise to upper case."""
        for symbol in v:
            if not isinstance(symbol, str) or not symbol.strip():
                raise ValueError("Each symbol must be a non-empty string")
        return [s.strip().upper() for s in v]

    @property
    def parsed_timeframe(self) -> Timeframe:
        return Timeframe.parse(self.timeframe)


class ExecutionConfig(BaseModel):
    """Slippage and commission policy for simulated fills."""

    model_config = ConfigDict(use_enum_values=True)

    enable_slippage: bool = True
    slippage_percent: float = 0.1  # 0.1 => 0.1% of the quoted price
    enable_commissions: bool = False
    commission_per_trade: float = 0.0

    @field_validator("slippage_percent", "commission_per_trade")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate that the value is not negative."""
        if v < 0:
            raise ValueError("value must not be negative")
        return v


class ProjectionConfig(BaseModel):
    """Synthetic quote settings used when no bar exists for the day."""

    model_config = ConfigDict(use_enum_values=True)

    baseline_prices: dict[str, float] = {
        "AAPL": 175.0,
        "TSLA": 245.0,
        "NVDA": 430.0,
        "MSFT": 375.0,
        "GOOGL": 142.0,
    }
    default_baseline_price: float = 100.0
    max_perturbation: float = 5.0
    seed: int | None = None

    @field_validator("default_baseline_price")
    @classmethod
    def validate_baseline(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("default_baseline_price must be positive")
        return v

    @field_validator("max_perturbation")
    @classmethod
    def validate_perturbation(cls, v: float) -> float:
        if v < 0:
            raise ValueError("max_perturbation must not be negative")
        return v


class ValidationConfig(BaseModel):
    """Data integrity validation settings."""

    model_config = ConfigDict(use_enum_values=True)

    gap_tolerance: float = 1.5

    @field_validator("gap_tolerance")
    @classmethod
    def validate_tolerance(cls, v: float) -> float:
        """A tolerance below 1 would flag perfectly regular bars as gaps."""
        if v < 1:
            raise ValueError("gap_tolerance must be >= 1")
        return v


class MarketHoursConfig(BaseModel):
    """Exchange session boundaries used to answer is-market-open queries."""

    model_config = ConfigDict(use_enum_values=True)

    timezone: str = "UTC"
    pre_market_open: str = "04:00"
    market_open: str = "09:30"
    market_close: str = "16:00"
    after_hours_close: str = "20:00"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("pre_market_open", "market_open", "market_close", "after_hours_close")
    @classmethod
    def validate_clock(cls, v: str) -> str:
        """Validate an HH:MM wall-clock time."""
        time.fromisoformat(v)
        return v

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def clock(self, name: str) -> time:
        return time.fromisoformat(getattr(self, name))


class Settings(BaseModel):
    """Root settings configuration."""

    model_config = ConfigDict(use_enum_values=True)

    system: SystemConfig = SystemConfig()
    data: DataConfig = DataConfig()
    replay: ReplayConfig = ReplayConfig()
    execution: ExecutionConfig = ExecutionConfig()
    projection: ProjectionConfig = ProjectionConfig()
    validation: ValidationConfig = ValidationConfig()
    market: MarketHoursConfig = MarketHoursConfig()


def load_settings(path: Path | str) -> Settings:
    """Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings instance with loaded configuration.

    Raises:
        FileNotFoundError: If configuration file does not exist.
        yaml.YAMLError: If YAML is invalid.
        ValueError: If configuration is invalid.
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    return Settings.model_validate(raw_config)
