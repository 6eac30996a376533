from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from options_analyzer.indicators.engine import closes_of, ema_series, macd_series, obv_series, sma_series
from options_analyzer.models.market import Candle

Overlays = Dict[str, List[Optional[float]]]


@dataclass(frozen=True)
class ChartImage:
    timeframe: str
    data_url: str


def build_overlays(series: Sequence[Candle]) -> Overlays:
    """Indicator arrays aligned with `series`, one entry per overlay the charts draw."""
    closes = closes_of(series)
    macd_line, macd_signal = macd_series(closes)
    return {
        "sma20": sma_series(closes, 20),
        "ema12": ema_series(closes, 12),
        "ema26": ema_series(closes, 26),
        "macd": macd_line,
        "macd_signal": macd_signal,
        "obv": list(obv_series(closes, [c.volume for c in series])),
    }


class ChartRenderer(ABC):
    """
    Renders one timeframe into a displayable image (data URL).
    Implementations own the plotting library; callers only see ChartImage.
    """

    @abstractmethod
    async def render(
        self,
        symbol: str,
        timeframe: str,
        series: Sequence[Candle],
        overlays: Overlays,
    ) -> ChartImage:
        raise NotImplementedError
