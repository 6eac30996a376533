from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from options_analyzer.candles.store import check_provider_payload, parse_time_series
from options_analyzer.errors import InvalidSymbolOrNoData, MalformedPayload, ProviderUnavailable
from options_analyzer.models.market import FetchedSeries, Quote
from options_analyzer.providers.base import MultiTimeframeProvider, QuoteProvider

log = logging.getLogger("alpha_vantage_provider")

SERIES_KEYS = {
    "TIME_SERIES_DAILY": "Time Series (Daily)",
    "TIME_SERIES_WEEKLY": "Weekly Time Series",
    "TIME_SERIES_MONTHLY": "Monthly Time Series",
}

# Daily defaults to the latest 100 bars; the 6 month and 1 year windows need more.
SERIES_PARAMS = {
    "TIME_SERIES_DAILY": {"outputsize": "full"},
}


def _opt_float(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        return float(str(raw).rstrip("%"))
    except ValueError:
        return None


class AlphaVantageProvider(MultiTimeframeProvider, QuoteProvider):
    """
    Alpha Vantage provider (REST).

    Errors come back with HTTP 200 and an "Error Message" / "Note" /
    "Information" field, so every body is checked before parsing.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.alphavantage.co/query",
        timeout_seconds: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------
    # Public interface used by the app
    # -------------------------
    async def fetch_daily(self, symbol: str) -> FetchedSeries:
        return await self._fetch_series(symbol, "TIME_SERIES_DAILY")

    async def fetch_weekly(self, symbol: str) -> FetchedSeries:
        return await self._fetch_series(symbol, "TIME_SERIES_WEEKLY")

    async def fetch_monthly(self, symbol: str) -> FetchedSeries:
        return await self._fetch_series(symbol, "TIME_SERIES_MONTHLY")

    async def get_quick_price(self, symbol: str) -> Quote:
        """
        GLOBAL_QUOTE endpoint:
          GET {base_url}?function=GLOBAL_QUOTE&symbol=...&apikey=...
        """
        payload = await self._request("GLOBAL_QUOTE", symbol)
        if not isinstance(payload, dict):
            raise MalformedPayload(f"Unexpected quote payload type {type(payload).__name__}")
        # Reuse the body-level error checks; an empty "Global Quote" means unknown symbol.
        quote = check_provider_payload(payload, "Global Quote")

        price = _opt_float(quote.get("05. price"))
        if price is None or price <= 0:
            raise InvalidSymbolOrNoData(f"No quote price for symbol={symbol}")

        return Quote(
            symbol=symbol,
            current_price=price,
            previous_close=_opt_float(quote.get("08. previous close")),
            change=_opt_float(quote.get("09. change")),
            change_percent=_opt_float(quote.get("10. change percent")),
        )

    # -------------------------
    # REST
    # -------------------------
    async def _request(self, function: str, symbol: str, extra_params: Optional[dict] = None) -> Any:
        params = {"function": function, "symbol": symbol, "apikey": self.api_key}
        params.update(extra_params or {})
        try:
            resp = await self._client.get(self.base_url, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Alpha Vantage {function} failed for {symbol}: {e!r}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedPayload(f"Alpha Vantage {function} returned non-JSON body") from e

    async def _fetch_series(self, symbol: str, function: str) -> FetchedSeries:
        series_key = SERIES_KEYS[function]
        payload = await self._request(function, symbol, SERIES_PARAMS.get(function))
        raw = check_provider_payload(payload, series_key)

        meta = payload.get("Meta Data") or {}
        if not isinstance(meta, dict):
            raise MalformedPayload(f"Alpha Vantage {function} has malformed Meta Data for {symbol}")
        last_refreshed = str(meta.get("3. Last Refreshed", "")).strip()

        candles = parse_time_series(raw)
        log.info(
            "Fetched series symbol=%s function=%s count=%d last_refreshed=%s",
            symbol,
            function,
            len(candles),
            last_refreshed,
        )
        return FetchedSeries(candles=tuple(candles), last_refreshed=last_refreshed)
