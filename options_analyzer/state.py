from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from options_analyzer.analysis.flow import AnalysisService
from options_analyzer.candles.cache import TTLCache
from options_analyzer.config import Settings
from options_analyzer.jobs.price_poller import PriceMonitor
from options_analyzer.oracle.client import OpenAIOracle, RecommendationOracle
from options_analyzer.providers.base import DailySeriesProvider, QuoteProvider
from options_analyzer.providers.loader import get_fallback_provider, get_primary_provider, get_quote_provider
from options_analyzer.timeframes.aggregator import MultiTimeframeAggregator
from options_analyzer.trades.ledger import TradeLedger
from options_analyzer.trades.storage import JsonFileTradeStore


@dataclass
class Services:
    """
    Everything the API process owns, constructed once at startup and hung on
    app.state. Tests build their own instance with fakes.
    """
    aggregator: MultiTimeframeAggregator
    analysis: AnalysisService
    ledger: TradeLedger
    monitor: PriceMonitor
    quotes: QuoteProvider
    poll_interval_seconds: float = 300.0
    oracle: Optional[RecommendationOracle] = None
    providers: List[DailySeriesProvider] = field(default_factory=list)

    async def aclose(self) -> None:
        self.monitor.stop_all_monitoring()
        for provider in self.providers:
            await provider.aclose()
        if self.oracle is not None:
            await self.oracle.aclose()


def build_services(settings: Settings) -> Services:
    primary = get_primary_provider(settings)
    fallback = get_fallback_provider(settings)
    quotes = get_quote_provider(primary, fallback)

    aggregator = MultiTimeframeAggregator(
        primary=primary,
        fallback=fallback,
        cache=TTLCache(default_ttl_seconds=settings.bundle_cache_ttl_seconds),
    )

    oracle: Optional[RecommendationOracle] = None
    if settings.openai_api_key:
        oracle = OpenAIOracle(
            api_key=settings.openai_api_key,
            models=settings.openai_models,
            timeout_seconds=max(settings.http_timeout_seconds, 60.0),
        )

    analysis = AnalysisService(
        aggregator=aggregator,
        oracle=oracle,
        max_attempts=settings.oracle_max_attempts,
        backoff_seconds=settings.oracle_backoff_seconds,
        symbol_delay_seconds=settings.symbol_delay_seconds,
    )

    return Services(
        aggregator=aggregator,
        analysis=analysis,
        ledger=TradeLedger(JsonFileTradeStore(settings.trades_dir)),
        monitor=PriceMonitor(quotes),
        quotes=quotes,
        poll_interval_seconds=settings.poll_interval_seconds,
        oracle=oracle,
        providers=[primary, fallback],
    )
