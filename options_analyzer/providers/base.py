from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from options_analyzer.errors import ProviderError
from options_analyzer.models.market import FetchedSeries, Quote

log = logging.getLogger("providers")


class DailySeriesProvider(ABC):
    """
    Provider contract for anything that can serve a daily OHLCV history.
    """

    @abstractmethod
    async def fetch_daily(self, symbol: str) -> FetchedSeries:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class MultiTimeframeProvider(DailySeriesProvider):
    """
    Primary provider contract: daily plus native weekly/monthly series.
    """

    @abstractmethod
    async def fetch_weekly(self, symbol: str) -> FetchedSeries:
        raise NotImplementedError

    @abstractmethod
    async def fetch_monthly(self, symbol: str) -> FetchedSeries:
        raise NotImplementedError


class QuoteProvider(ABC):
    """Lightweight latest-price endpoint used by the price poller."""

    @abstractmethod
    async def get_quick_price(self, symbol: str) -> Quote:
        raise NotImplementedError


class FallbackQuoteProvider(QuoteProvider):
    """
    Tries each quote provider in order and returns the first answer.
    Raises the last provider error when all of them fail.
    """

    def __init__(self, providers: Sequence[QuoteProvider]) -> None:
        if not providers:
            raise ValueError("FallbackQuoteProvider needs at least one provider")
        self.providers = list(providers)

    async def get_quick_price(self, symbol: str) -> Quote:
        last_error: ProviderError | None = None
        for provider in self.providers:
            try:
                return await provider.get_quick_price(symbol)
            except ProviderError as e:
                log.warning(
                    "Quote provider failed provider=%s symbol=%s error=%r",
                    provider.__class__.__name__,
                    symbol,
                    e,
                )
                last_error = e
        assert last_error is not None
        raise last_error
