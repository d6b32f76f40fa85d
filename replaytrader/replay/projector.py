"""Market state projection: nearest stored bar per symbol at a virtual time."""
from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime

from replaytrader.core.config import ProjectionConfig
from replaytrader.core.types import ProjectedQuote, QuoteProvenance, Timeframe
from replaytrader.data.store import BarStore

logger = logging.getLogger(__name__)


class MarketStateProjector:
    """Builds one ``ProjectedQuote`` per symbol.

    A symbol with no bar on the virtual day gets a synthetic quote around its
    baseline price. The RNG is the only mutable state held here.
    """

    def __init__(
        self,
        store: BarStore,
        config: ProjectionConfig | None = None,
        timeframe: Timeframe | None = None,
    ) -> None:
        self._store = store
        self._config = config or ProjectionConfig()
        self._timeframe = timeframe
        self._rng = random.Random(self._config.seed)

    async def project(self, symbols: list[str], virtual_time: datetime) -> list[ProjectedQuote]:
        """Quotes in the order of ``symbols``.

        Raises:
            StoreUnavailableError: If any bar lookup fails.
        """
        return list(await asyncio.gather(
            *(self.project_symbol(s, virtual_time) for s in symbols)
        ))

    async def project_symbol(self, symbol: str, virtual_time: datetime) -> ProjectedQuote:
        bar = await self._store.get_bar_near(symbol, virtual_time, self._timeframe)
        if bar is None:
            return self.synthetic_quote(symbol, virtual_time)
        return ProjectedQuote(
            symbol=symbol,
            price=bar.close,
            volume=bar.volume,
            as_of=virtual_time,
            provenance=QuoteProvenance.HISTORICAL,
            bar_timestamp=bar.timestamp,
        )

    def baseline_price(self, symbol: str) -> float:
        return self._config.baseline_prices.get(symbol, self._config.default_baseline_price)

    def synthetic_quote(self, symbol: str, virtual_time: datetime) -> ProjectedQuote:
        spread = self._config.max_perturbation
        price = self.baseline_price(symbol) + self._rng.uniform(-spread, spread)
        logger.debug("No bar for %s on %s, using synthetic quote", symbol, virtual_time.date())
        return ProjectedQuote(
            symbol=symbol,
            price=round(max(price, 0.01), 2),
            volume=float(self._rng.randint(1_000, 100_000)),
            as_of=virtual_time,
            provenance=QuoteProvenance.SYNTHETIC,
        )
