from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterator, Optional, Tuple


@dataclass(frozen=True)
class Candle:
    """
    Candle (OHLCV) for one bar of a series.

    date: calendar day of the bar (for derived week/month bars: the last
          trading day inside the bucket)
    open/high/low/close: prices for the bar
    volume: summed volume for the bar
    """
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class FetchedSeries:
    """Provider response after ingestion: the parsed bars plus freshness metadata."""
    candles: Tuple[Candle, ...]
    last_refreshed: str = ""


@dataclass(frozen=True)
class Quote:
    symbol: str
    current_price: float
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None


@dataclass(frozen=True)
class QuoteStatus:
    last_refreshed: str
    is_stale: bool


TIMEFRAMES = ("day", "week", "month", "three_month", "six_month", "year")

TIMEFRAME_LABELS = {
    "day": "1 Day",
    "week": "1 Week",
    "month": "1 Month",
    "three_month": "3 Month",
    "six_month": "6 Month",
    "year": "1 Year",
}


@dataclass(frozen=True)
class MultiTimeframeBundle:
    """
    The six canonical windows for one analysis request.

    day: last 30 daily bars
    week / month: last 12 weekly / monthly bars (native or derived from daily)
    three_month / six_month / year: daily bars inside the trailing 90/180/365 days
    """
    day: Tuple[Candle, ...]
    week: Tuple[Candle, ...]
    month: Tuple[Candle, ...]
    three_month: Tuple[Candle, ...]
    six_month: Tuple[Candle, ...]
    year: Tuple[Candle, ...]
    source: str = "primary"

    def items(self) -> Iterator[Tuple[str, Tuple[Candle, ...]]]:
        for tf in TIMEFRAMES:
            yield tf, getattr(self, tf)

    def counts(self) -> dict[str, int]:
        return {tf: len(series) for tf, series in self.items()}


def candle_to_dict(c: Candle) -> dict:
    return {
        "date": c.date.isoformat(),
        "open": c.open,
        "high": c.high,
        "low": c.low,
        "close": c.close,
        "volume": c.volume,
    }


def utc_today() -> date:
    return datetime.now(timezone.utc).date()
