from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from options_analyzer.models.market import Candle

INSUFFICIENT = "insufficient data"

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
MACD_MIN_POINTS = MACD_SLOW + MACD_SIGNAL


def closes_of(series: Sequence[Candle]) -> List[float]:
    return [c.close for c in series]


def _pct_change(start: float, end: float) -> float:
    if start == 0:
        return 0.0
    return (end - start) / start * 100.0


# -------------------------
# RSI
# -------------------------
def calculate_rsi(series: Sequence[Candle], period: int = 14) -> float:
    """
    RSI over the trailing period+1 closes (simple average of gains/losses).

    Returns 50.0 (neutral) when there are fewer than period+1 closes and
    100.0 when there was no loss in the window.
    """
    if period <= 0 or len(series) < period + 1:
        return 50.0

    window = closes_of(series[-(period + 1):])
    gains = 0.0
    losses = 0.0
    for prev, curr in zip(window, window[1:]):
        change = curr - prev
        if change > 0:
            gains += change
        else:
            losses += -change

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def classify_rsi(rsi: float) -> str:
    if rsi > 70:
        return "overbought"
    if rsi < 30:
        return "oversold"
    return "neutral"


# -------------------------
# SMA
# -------------------------
def calculate_sma(series: Sequence[Candle], period: int) -> float:
    """Mean of the last `period` closes; the last close when the series is shorter (0.0 if empty)."""
    if not series:
        return 0.0
    if period <= 0 or len(series) < period:
        return float(series[-1].close)
    window = closes_of(series[-period:])
    return sum(window) / period


def sma_series(values: Sequence[float], period: int) -> List[Optional[float]]:
    out: List[Optional[float]] = [None] * len(values)
    if period <= 0 or len(values) < period:
        return out
    running = sum(values[:period])
    out[period - 1] = running / period
    for i in range(period, len(values)):
        running += values[i] - values[i - period]
        out[i] = running / period
    return out


# -------------------------
# EMA
# -------------------------
def ema_series(values: Sequence[float], period: int) -> List[Optional[float]]:
    """
    EMA seeded with the SMA of the first `period` values; None before the seed.
    ema[i] = value[i] * k + ema[i-1] * (1 - k), k = 2 / (period + 1)
    """
    out: List[Optional[float]] = [None] * len(values)
    if period <= 0 or len(values) < period:
        return out
    k = 2.0 / (period + 1)
    prev = sum(values[:period]) / period
    out[period - 1] = prev
    for i in range(period, len(values)):
        prev = values[i] * k + prev * (1.0 - k)
        out[i] = prev
    return out


def calculate_ema(series: Sequence[Candle], period: int) -> Optional[float]:
    values = ema_series(closes_of(series), period)
    return values[-1] if values else None


# -------------------------
# MACD
# -------------------------
@dataclass(frozen=True)
class MacdResult:
    macd: float
    signal: float
    histogram: float
    insufficient: bool = False


def macd_series(values: Sequence[float]) -> Tuple[List[Optional[float]], List[Optional[float]]]:
    """MACD line (EMA12 - EMA26) and its EMA9 signal line, both same length as input."""
    fast = ema_series(values, MACD_FAST)
    slow = ema_series(values, MACD_SLOW)
    line: List[Optional[float]] = [
        f - s if f is not None and s is not None else None for f, s in zip(fast, slow)
    ]

    signal: List[Optional[float]] = [None] * len(values)
    start = next((i for i, v in enumerate(line) if v is not None), None)
    if start is not None:
        compact = [v for v in line[start:] if v is not None]
        for offset, v in enumerate(ema_series(compact, MACD_SIGNAL)):
            signal[start + offset] = v
    return line, signal


def calculate_macd(series: Sequence[Candle]) -> MacdResult:
    if len(series) < MACD_MIN_POINTS:
        return MacdResult(macd=0.0, signal=0.0, histogram=0.0, insufficient=True)

    line, signal = macd_series(closes_of(series))
    macd_now = line[-1]
    signal_now = signal[-1]
    if macd_now is None or signal_now is None:
        return MacdResult(macd=0.0, signal=0.0, histogram=0.0, insufficient=True)
    return MacdResult(macd=macd_now, signal=signal_now, histogram=macd_now - signal_now)


# -------------------------
# OBV
# -------------------------
def obv_series(closes: Sequence[float], volumes: Sequence[float]) -> List[float]:
    if not closes or len(closes) != len(volumes):
        return []
    obv: List[float] = [0.0]
    for i in range(1, len(closes)):
        if closes[i] > closes[i - 1]:
            obv.append(obv[-1] + volumes[i])
        elif closes[i] < closes[i - 1]:
            obv.append(obv[-1] - volumes[i])
        else:
            obv.append(obv[-1])
    return obv


def calculate_obv(series: Sequence[Candle]) -> List[float]:
    return obv_series(closes_of(series), [c.volume for c in series])


def obv_direction(obv: Sequence[float]) -> str:
    if len(obv) < 2:
        return INSUFFICIENT
    if obv[-1] > obv[-2]:
        return "rising"
    if obv[-1] < obv[-2]:
        return "falling"
    return "flat"


# -------------------------
# ATR
# -------------------------
def true_range_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> List[float]:
    if len(highs) < 2 or len(lows) < 2 or len(closes) < 2:
        return []
    tr: List[float] = []
    for i in range(1, len(highs)):
        hl = highs[i] - lows[i]
        hc = abs(highs[i] - closes[i - 1])
        lc = abs(lows[i] - closes[i - 1])
        tr.append(max(hl, hc, lc))
    return tr


def calculate_atr(series: Sequence[Candle], period: int = 14) -> Optional[float]:
    """Mean true range over the trailing `period` bars; None until period+1 bars exist."""
    if period <= 0:
        return None
    tr = true_range_series(
        [c.high for c in series],
        [c.low for c in series],
        closes_of(series),
    )
    if len(tr) < period:
        return None
    return sum(tr[-period:]) / period


# -------------------------
# Volume / trend heuristics
# -------------------------
@dataclass(frozen=True)
class VolumeAnalysis:
    avg_volume: float
    recent_volume: float
    volume_trend: str


def calculate_volume_analysis(series: Sequence[Candle]) -> VolumeAnalysis:
    """
    Latest bar volume vs. the average over the series:
      > 1.5x avg -> "high", < 0.5x avg -> "low", else "normal".
    """
    if len(series) < 10:
        return VolumeAnalysis(avg_volume=0.0, recent_volume=0.0, volume_trend=INSUFFICIENT)

    avg = sum(c.volume for c in series) / len(series)
    recent = series[-1].volume
    if recent > avg * 1.5:
        trend = "high"
    elif recent < avg * 0.5:
        trend = "low"
    else:
        trend = "normal"
    return VolumeAnalysis(avg_volume=avg, recent_volume=recent, volume_trend=trend)


@dataclass(frozen=True)
class TrendAnalysis:
    short_trend: str
    medium_trend: str
    momentum: float


def _classify_change(change: float, threshold: float) -> str:
    if change > threshold:
        return "bullish"
    if change < -threshold:
        return "bearish"
    return "sideways"


def calculate_trend_direction(series: Sequence[Candle]) -> TrendAnalysis:
    """
    short: % change across the last 5 bars, +/-2% thresholds
    medium: % change across the last 20 bars, +/-5% thresholds
    momentum: the short-term % change
    """
    if len(series) < 20:
        return TrendAnalysis(short_trend=INSUFFICIENT, medium_trend=INSUFFICIENT, momentum=0.0)

    recent = series[-5:]
    medium = series[-20:]
    short_change = _pct_change(recent[0].close, recent[-1].close)
    medium_change = _pct_change(medium[0].close, medium[-1].close)
    return TrendAnalysis(
        short_trend=_classify_change(short_change, 2.0),
        medium_trend=_classify_change(medium_change, 5.0),
        momentum=short_change,
    )
