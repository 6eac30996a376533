from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Callable, Optional, Sequence, Tuple

from options_analyzer.candles.builder import monthly_from_daily, weekly_from_daily
from options_analyzer.candles.cache import TTLCache
from options_analyzer.candles.store import parse_day
from options_analyzer.errors import DataUnavailable, ProviderError
from options_analyzer.models.market import Candle, MultiTimeframeBundle, QuoteStatus, utc_today
from options_analyzer.providers.base import DailySeriesProvider, MultiTimeframeProvider

log = logging.getLogger("timeframe_aggregator")

DAY_BARS = 30
WEEK_BARS = 12
MONTH_BARS = 12
THREE_MONTH_DAYS = 90
SIX_MONTH_DAYS = 180
YEAR_DAYS = 365

SATURDAY = 5


def latest_completed_trading_day(today: date) -> date:
    """
    Most recent weekday strictly before `today`.
    Saturday, Sunday and Monday all map back to the preceding Friday.
    """
    d = today - timedelta(days=1)
    while d.weekday() >= SATURDAY:
        d -= timedelta(days=1)
    return d


def is_stale(last_refreshed: str, today: date) -> bool:
    """True when the last-refreshed calendar date precedes the latest completed trading day."""
    try:
        refreshed = parse_day(last_refreshed)
    except ValueError:
        # Missing/unparseable metadata: treat as stale so analysis is gated.
        return True
    return refreshed < latest_completed_trading_day(today)


def build_bundle(
    daily: Sequence[Candle],
    weekly: Sequence[Candle],
    monthly: Sequence[Candle],
    today: date,
    source: str,
) -> MultiTimeframeBundle:
    def since(days: int) -> Tuple[Candle, ...]:
        cutoff = today - timedelta(days=days)
        return tuple(c for c in daily if c.date >= cutoff)

    return MultiTimeframeBundle(
        day=tuple(daily[-DAY_BARS:]),
        week=tuple(weekly[-WEEK_BARS:]),
        month=tuple(monthly[-MONTH_BARS:]),
        three_month=since(THREE_MONTH_DAYS),
        six_month=since(SIX_MONTH_DAYS),
        year=since(YEAR_DAYS),
        source=source,
    )


class MultiTimeframeAggregator:
    """
    Builds the six-window bundle for a symbol.

    primary: native daily/weekly/monthly series, fetched concurrently
    fallback: daily only; week/month bars are derived from it
    A failure of any primary request switches the whole bundle to the fallback.
    """

    def __init__(
        self,
        primary: MultiTimeframeProvider,
        fallback: DailySeriesProvider,
        cache: Optional[TTLCache] = None,
        today: Callable[[], date] = utc_today,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.cache = cache
        self.today = today

    async def fetch_bundle(self, symbol: str) -> Tuple[MultiTimeframeBundle, QuoteStatus]:
        symbol = symbol.strip().upper()
        if self.cache is not None:
            cached = self.cache.get(symbol)
            if cached is not None:
                return cached

        try:
            result = await self._from_primary(symbol)
        except ProviderError as e:
            log.warning("Primary provider failed symbol=%s error=%r, trying fallback", symbol, e)
            result = await self._from_fallback(symbol)

        if self.cache is not None:
            self.cache.set(symbol, result)
        return result

    async def _from_primary(self, symbol: str) -> Tuple[MultiTimeframeBundle, QuoteStatus]:
        daily, weekly, monthly = await asyncio.gather(
            self.primary.fetch_daily(symbol),
            self.primary.fetch_weekly(symbol),
            self.primary.fetch_monthly(symbol),
        )
        today = self.today()
        bundle = build_bundle(daily.candles, weekly.candles, monthly.candles, today, source="primary")
        status = QuoteStatus(
            last_refreshed=daily.last_refreshed,
            is_stale=is_stale(daily.last_refreshed, today),
        )
        return bundle, status

    async def _from_fallback(self, symbol: str) -> Tuple[MultiTimeframeBundle, QuoteStatus]:
        try:
            fetched = await self.fallback.fetch_daily(symbol)
        except ProviderError as e:
            log.error("Fallback provider failed symbol=%s error=%r", symbol, e)
            raise DataUnavailable(
                f"Unable to fetch stock data for {symbol} from any source"
            ) from e

        daily = list(fetched.candles)
        if not daily:
            raise DataUnavailable(f"No data available for {symbol}")

        today = self.today()
        bundle = build_bundle(
            daily,
            weekly_from_daily(daily),
            monthly_from_daily(daily),
            today,
            source="fallback",
        )
        status = QuoteStatus(
            last_refreshed=fetched.last_refreshed,
            is_stale=is_stale(fetched.last_refreshed, today),
        )
        log.info("Built bundle from fallback symbol=%s counts=%s", symbol, bundle.counts())
        return bundle, status
