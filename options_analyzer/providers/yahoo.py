from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote, urlencode

import httpx

from options_analyzer.candles.store import candles_from_chart_arrays
from options_analyzer.errors import InvalidSymbolOrNoData, MalformedPayload, ProviderUnavailable
from options_analyzer.models.market import FetchedSeries, Quote
from options_analyzer.providers.base import DailySeriesProvider, QuoteProvider

log = logging.getLogger("yahoo_provider")


class YahooChartProvider(DailySeriesProvider, QuoteProvider):
    """
    Yahoo Finance chart API (daily bars only, no native weekly/monthly).

    When relay_url is set the request is routed through a pass-through relay:
      GET {relay_url}{urlencoded(target_url)}
    """

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com/v8/finance/chart",
        relay_url: str = "",
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.relay_url = relay_url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _build_url(self, symbol: str) -> str:
        params = {
            "period1": "0",
            "period2": "9999999999",
            "interval": "1d",
            "includePrePost": "true",
            "events": "div,split",
        }
        target = f"{self.base_url}/{quote(symbol)}?{urlencode(params)}"
        if not self.relay_url:
            return target
        return f"{self.relay_url}{quote(target, safe='')}"

    async def _fetch_chart(self, symbol: str) -> dict:
        try:
            resp = await self._client.get(self._build_url(symbol))
            resp.raise_for_status()
            data: Any = resp.json()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Yahoo chart request failed for {symbol}: {e!r}") from e
        except ValueError as e:
            raise MalformedPayload(f"Yahoo chart returned non-JSON body for {symbol}") from e

        try:
            result = data["chart"]["result"][0]
        except (KeyError, IndexError, TypeError):
            raise InvalidSymbolOrNoData(f"Invalid Yahoo chart response for {symbol}")
        if not isinstance(result, dict):
            raise InvalidSymbolOrNoData(f"Invalid Yahoo chart response for {symbol}")
        return result

    # -------------------------
    # Public interface used by the app
    # -------------------------
    async def fetch_daily(self, symbol: str) -> FetchedSeries:
        result = await self._fetch_chart(symbol)

        timestamps = result.get("timestamp") or []
        try:
            quote_arrays = result["indicators"]["quote"][0]
        except (KeyError, IndexError, TypeError):
            quote_arrays = {}
        if not timestamps or not isinstance(quote_arrays, dict):
            raise InvalidSymbolOrNoData(f"No Yahoo chart bars for {symbol}")

        candles = candles_from_chart_arrays(timestamps, quote_arrays)
        last_refreshed = candles[-1].date.isoformat() if candles else ""
        log.info("Fetched Yahoo daily symbol=%s count=%d", symbol, len(candles))
        return FetchedSeries(candles=tuple(candles), last_refreshed=last_refreshed)

    async def get_quick_price(self, symbol: str) -> Quote:
        result = await self._fetch_chart(symbol)
        meta = result.get("meta") or {}
        if not isinstance(meta, dict):
            raise MalformedPayload(f"Malformed Yahoo chart meta for {symbol}")

        raw_price = meta.get("regularMarketPrice")
        if raw_price is None:
            raise InvalidSymbolOrNoData(f"No Yahoo quote price for {symbol}")
        prev = meta.get("chartPreviousClose") or meta.get("previousClose")
        try:
            price = float(raw_price)
            prev_f = float(prev) if prev is not None else None
        except (TypeError, ValueError) as e:
            raise MalformedPayload(f"Non-numeric Yahoo quote fields for {symbol}") from e
        if price <= 0:
            raise InvalidSymbolOrNoData(f"No Yahoo quote price for {symbol}")

        change = price - prev_f if prev_f else None
        change_pct = (change / prev_f * 100.0) if (change is not None and prev_f) else None

        return Quote(
            symbol=symbol,
            current_price=price,
            previous_close=prev_f,
            change=change,
            change_percent=change_pct,
        )
