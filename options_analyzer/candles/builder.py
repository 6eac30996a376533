from __future__ import annotations

from typing import Callable, Hashable, List, Sequence

from options_analyzer.models.market import Candle

FRIDAY = 4


def aggregate(bucket: Sequence[Candle]) -> Candle:
    """open=first, high=max, low=min, close=last, volume=sum; dated by the last bar."""
    first = bucket[0]
    last = bucket[-1]
    return Candle(
        date=last.date,
        open=first.open,
        high=max(x.high for x in bucket),
        low=min(x.low for x in bucket),
        close=last.close,
        volume=sum(x.volume for x in bucket),
    )


def _aggregate_by_key(daily: Sequence[Candle], key: Callable[[Candle], Hashable]) -> List[Candle]:
    out: List[Candle] = []
    bucket: List[Candle] = []

    for c in daily:
        if not bucket:
            bucket = [c]
            continue

        if key(c) == key(bucket[0]):
            bucket.append(c)
        else:
            out.append(aggregate(bucket))
            bucket = [c]

    if bucket:
        out.append(aggregate(bucket))

    return out


def weekly_from_daily(daily: Sequence[Candle]) -> List[Candle]:
    """
    Friday-terminated weekly bars. A bucket also closes when the next bar falls
    in another ISO week (holiday Fridays), and whatever remains at the end forms
    the last, possibly partial, bar.
    """
    out: List[Candle] = []
    bucket: List[Candle] = []

    for i, c in enumerate(daily):
        bucket.append(c)
        nxt = daily[i + 1] if i + 1 < len(daily) else None
        week_rolls = nxt is not None and nxt.date.isocalendar()[:2] != c.date.isocalendar()[:2]
        if c.date.weekday() == FRIDAY or nxt is None or week_rolls:
            out.append(aggregate(bucket))
            bucket = []

    return out


def monthly_from_daily(daily: Sequence[Candle]) -> List[Candle]:
    """Calendar-month bars."""
    return _aggregate_by_key(daily, lambda c: (c.date.year, c.date.month))
