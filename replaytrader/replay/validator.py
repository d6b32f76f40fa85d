"""Data integrity validation for a replay window.

The report is advisory: it never mutates bars, and callers decide whether a
problem is fatal (only an empty window aborts a replay start).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from replaytrader.core.types import (
    Bar,
    DataGap,
    DataInconsistency,
    Timeframe,
    ValidationReport,
)
from replaytrader.data.store import BarStore

logger = logging.getLogger(__name__)

NO_DATA_REASON = "No data found"
MISSING_INTERVAL_REASON = "Missing data interval"
OHLC_ISSUE = "OHLC validation failed"


class DataIntegrityValidator:
    def __init__(self, store: BarStore, gap_tolerance: float = 1.5) -> None:
        if gap_tolerance < 1:
            raise ValueError("gap_tolerance must be >= 1")
        self._store = store
        self._gap_tolerance = gap_tolerance

    async def validate(
        self, symbol: str, timeframe: Timeframe, start: datetime, end: datetime,
    ) -> ValidationReport:
        """Check bars for timing gaps and OHLC inconsistencies.

        Raises:
            StoreUnavailableError: If the bar store cannot be read.
        """
        bars = await self._store.get_bars(symbol, timeframe, start, end)

        if not bars:
            logger.warning("No %s bars for %s between %s and %s", timeframe, symbol, start, end)
            return ValidationReport(
                symbol=symbol,
                timeframe=timeframe,
                is_valid=False,
                total_records=0,
                covered_span=timedelta(0),
                gaps=[DataGap(start=start, end=end, duration=end - start, reason=NO_DATA_REASON)],
            )

        gaps = self.find_gaps(bars, timeframe)
        inconsistencies = self.find_inconsistencies(bars)
        report = ValidationReport(
            symbol=symbol,
            timeframe=timeframe,
            is_valid=not gaps and not inconsistencies,
            total_records=len(bars),
            covered_span=bars[-1].timestamp - bars[0].timestamp,
            gaps=gaps,
            inconsistencies=inconsistencies,
        )
        logger.info(
            "Validated %s %s: %d bars, %d gaps, %d inconsistencies",
            symbol, timeframe, report.total_records, len(gaps), len(inconsistencies),
        )
        return report

    def find_gaps(self, bars: list[Bar], timeframe: Timeframe) -> list[DataGap]:
        threshold = timeframe.interval * self._gap_tolerance
        gaps: list[DataGap] = []
        for prev, cur in zip(bars, bars[1:]):
            spacing = cur.timestamp - prev.timestamp
            if spacing > threshold:
                gaps.append(DataGap(
                    start=prev.timestamp,
                    end=cur.timestamp,
                    duration=spacing,
                    reason=MISSING_INTERVAL_REASON,
                ))
        return gaps

    @staticmethod
    def find_inconsistencies(bars: list[Bar]) -> list[DataInconsistency]:
        found: list[DataInconsistency] = []
        for bar in bars:
            issues = bar.ohlc_issues()
            if issues:
                found.append(DataInconsistency(
                    timestamp=bar.timestamp,
                    issue=OHLC_ISSUE,
                    details=(
                        f"O:{bar.open},H:{bar.high},L:{bar.low},C:{bar.close},V:{bar.volume}"
                        f" ({'; '.join(issues)})"
                    ),
                ))
        return found
