from replaytrader.replay.controller import ReplayController
from replaytrader.replay.execution import TradeExecutionEngine
from replaytrader.replay.projector import MarketStateProjector
from replaytrader.replay.scheduler import PeriodicTicker
from replaytrader.replay.validator import DataIntegrityValidator

__all__ = [
    "ReplayController",
    "TradeExecutionEngine",
    "MarketStateProjector",
    "PeriodicTicker",
    "DataIntegrityValidator",
]
