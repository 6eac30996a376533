from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from options_analyzer.errors import InvalidSymbolOrNoData, MalformedPayload, RateLimited
from options_analyzer.models.market import Candle

log = logging.getLogger("series_store")

# Alpha Vantage numbered field names
FIELD_OPEN = "1. open"
FIELD_HIGH = "2. high"
FIELD_LOW = "3. low"
FIELD_CLOSE = "4. close"
FIELD_VOLUME = "5. volume"

_RATE_LIMIT_HINTS = ("rate limit", "call frequency", "requests per", "premium")


def check_provider_payload(payload: Any, series_key: str) -> Mapping[str, Any]:
    """
    Raises a typed error when the provider signals a problem in the body
    instead of the HTTP status. Returns the raw time-series mapping otherwise.
    """
    if not isinstance(payload, dict):
        raise MalformedPayload(f"Unexpected payload type {type(payload).__name__}")

    if payload.get("Error Message"):
        raise InvalidSymbolOrNoData(str(payload["Error Message"]))

    if payload.get("Note"):
        raise RateLimited(str(payload["Note"]))

    # Newer responses carry the throttling notice under "Information"
    info = payload.get("Information")
    if info and series_key not in payload:
        if any(h in str(info).lower() for h in _RATE_LIMIT_HINTS):
            raise RateLimited(str(info))
        raise InvalidSymbolOrNoData(str(info))

    raw = payload.get(series_key)
    if not isinstance(raw, dict) or not raw:
        raise InvalidSymbolOrNoData(f"Missing '{series_key}' in provider response")
    return raw


def parse_day(raw: Any) -> date:
    """Accepts 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS' or epoch seconds (UTC)."""
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw, tz=timezone.utc).date()
    return date.fromisoformat(str(raw).strip().split(" ")[0].split("T")[0])


def make_candle(
    day: date,
    o: float,
    h: float,
    l: float,
    c: float,
    v: float,
) -> Optional[Candle]:
    """
    Builds a validated candle. Negative prices/volume are rejected; an inverted
    high/low envelope is clamped so that high >= max(open, close) >= min(open, close) >= low.
    """
    if min(o, h, l, c, v) < 0:
        return None
    high = max(h, o, c)
    low = min(l, o, c)
    if high != h or low != l:
        log.debug("Clamped OHLC envelope date=%s high=%s->%s low=%s->%s", day, h, high, l, low)
    return Candle(date=day, open=o, high=high, low=low, close=c, volume=v)


def normalize(candles: Sequence[Candle]) -> List[Candle]:
    """Sort ascending by date, keep the last bar for any duplicate date."""
    by_day: Dict[date, Candle] = {}
    for c in candles:
        by_day[c.date] = c
    return [by_day[d] for d in sorted(by_day)]


def parse_time_series(raw: Mapping[str, Mapping[str, Any]]) -> List[Candle]:
    """
    Converts a provider mapping {date-string: {"1. open": "...", ...}} into a
    series sorted ascending by date.
    """
    out: List[Candle] = []
    skipped = 0
    for day_raw, row in raw.items():
        if not isinstance(row, dict):
            skipped += 1
            continue

        try:
            candle = make_candle(
                parse_day(day_raw),
                float(row[FIELD_OPEN]),
                float(row[FIELD_HIGH]),
                float(row[FIELD_LOW]),
                float(row[FIELD_CLOSE]),
                float(row[FIELD_VOLUME]),
            )
        except (KeyError, TypeError, ValueError):
            skipped += 1
            continue

        if candle is None:
            skipped += 1
            continue
        out.append(candle)

    if skipped:
        log.warning("Dropped malformed rows count=%d kept=%d", skipped, len(out))
    if not out:
        raise MalformedPayload("Time series contained no usable rows")
    return normalize(out)


def candles_from_chart_arrays(timestamps: Sequence[Any], quote: Mapping[str, Sequence[Any]]) -> List[Candle]:
    """
    Parses the chart-API shape: a timestamp array plus parallel
    open/high/low/close/volume arrays. Points without a positive close are dropped.
    """
    opens = quote.get("open") or []
    highs = quote.get("high") or []
    lows = quote.get("low") or []
    closes = quote.get("close") or []
    volumes = quote.get("volume") or []

    def at(values: Sequence[Any], i: int) -> Optional[float]:
        if i >= len(values) or values[i] is None:
            return None
        return float(values[i])

    out: List[Candle] = []
    for i, ts in enumerate(timestamps):
        try:
            c = at(closes, i)
            if c is None or c <= 0:
                continue
            o = at(opens, i)
            if o is None:
                o = c
            h = at(highs, i)
            if h is None:
                h = max(o, c)
            l = at(lows, i)
            if l is None:
                l = min(o, c)
            v = at(volumes, i)
            if v is None:
                v = 0.0
            candle = make_candle(parse_day(ts), o, h, l, c, v)
        except (TypeError, ValueError, OverflowError):
            continue
        if candle is not None:
            out.append(candle)

    return normalize(out)
