from options_analyzer.config import Settings
from options_analyzer.providers.alphavantage import AlphaVantageProvider
from options_analyzer.providers.base import FallbackQuoteProvider
from options_analyzer.providers.yahoo import YahooChartProvider


def get_primary_provider(settings: Settings) -> AlphaVantageProvider:
    return AlphaVantageProvider(
        api_key=settings.alpha_vantage_api_key,
        base_url=settings.alpha_vantage_base_url,
        timeout_seconds=settings.http_timeout_seconds,
    )


def get_fallback_provider(settings: Settings) -> YahooChartProvider:
    return YahooChartProvider(
        base_url=settings.yahoo_base_url,
        relay_url=settings.yahoo_relay_url,
        timeout_seconds=settings.http_timeout_seconds,
    )


def get_quote_provider(
    primary: AlphaVantageProvider,
    fallback: YahooChartProvider,
) -> FallbackQuoteProvider:
    """
    Provider loader / factory.

    Quotes come from the primary provider first; the chart API's market price
    is used when the primary is throttled or down.
    """
    return FallbackQuoteProvider([primary, fallback])
