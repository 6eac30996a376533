from __future__ import annotations

from typing import List, Sequence

from options_analyzer.indicators.engine import (
    INSUFFICIENT,
    calculate_atr,
    calculate_macd,
    calculate_obv,
    calculate_rsi,
    calculate_sma,
    calculate_trend_direction,
    calculate_volume_analysis,
    classify_rsi,
    obv_direction,
)
from options_analyzer.models.market import TIMEFRAME_LABELS, Candle, MultiTimeframeBundle

RSI_PERIOD = 14
SMA_SHORT = 20
SMA_TREND_FAST = 50
SMA_TREND_SLOW = 200
FIELD_SEPARATOR = " | "


def _price_field(series: Sequence[Candle]) -> str:
    if not series:
        return f"Price {INSUFFICIENT}"
    return f"Price ${series[-1].close:.2f}"


def _rsi_field(series: Sequence[Candle]) -> str:
    if len(series) < RSI_PERIOD + 1:
        return f"RSI {INSUFFICIENT}"
    rsi = calculate_rsi(series, RSI_PERIOD)
    return f"RSI {rsi:.1f} ({classify_rsi(rsi)})"


def _sma_field(series: Sequence[Candle]) -> str:
    if len(series) < SMA_SHORT:
        return f"SMA{SMA_SHORT} {INSUFFICIENT}"
    sma = calculate_sma(series, SMA_SHORT)
    side = "above" if series[-1].close > sma else "below"
    return f"Price {side} SMA{SMA_SHORT} (${sma:.2f})"


def _sma_trend_field(series: Sequence[Candle]) -> str:
    label = f"SMA{SMA_TREND_FAST}/SMA{SMA_TREND_SLOW}"
    if len(series) < SMA_TREND_SLOW:
        return f"{label} {INSUFFICIENT}"
    fast = calculate_sma(series, SMA_TREND_FAST)
    slow = calculate_sma(series, SMA_TREND_SLOW)
    return f"{label} {'uptrend' if fast > slow else 'downtrend'}"


def _macd_field(series: Sequence[Candle]) -> str:
    macd = calculate_macd(series)
    if macd.insufficient:
        return f"MACD {INSUFFICIENT}"
    side = "above" if macd.macd > macd.signal else "below"
    return f"MACD {macd.macd:.2f} {side} signal {macd.signal:.2f}"


def _obv_field(series: Sequence[Candle]) -> str:
    return f"OBV {obv_direction(calculate_obv(series))}"


def _atr_field(series: Sequence[Candle]) -> str:
    atr = calculate_atr(series)
    if atr is None:
        return f"ATR {INSUFFICIENT}"
    return f"ATR {atr:.2f}"


def _volume_field(series: Sequence[Candle]) -> str:
    return f"Volume {calculate_volume_analysis(series).volume_trend}"


def _trend_field(series: Sequence[Candle]) -> str:
    trend = calculate_trend_direction(series)
    if trend.short_trend == INSUFFICIENT:
        return f"Trend {INSUFFICIENT}"
    return (
        f"Trend short {trend.short_trend}, medium {trend.medium_trend}"
        f" (momentum {trend.momentum:.1f}%)"
    )


_FIELDS = (
    _price_field,
    _rsi_field,
    _sma_field,
    _sma_trend_field,
    _macd_field,
    _obv_field,
    _atr_field,
    _volume_field,
    _trend_field,
)


def generate_technical_summary(series: Sequence[Candle], label: str) -> str:
    """
    One line per timeframe, always emitted, fields in fixed order.
    Each field degrades to "insufficient data" on its own length rule.
    """
    return f"{label}: " + FIELD_SEPARATOR.join(field(series) for field in _FIELDS)


def generate_bundle_summary(bundle: MultiTimeframeBundle) -> List[str]:
    return [generate_technical_summary(series, TIMEFRAME_LABELS[tf]) for tf, series in bundle.items()]
