from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from options_analyzer.charts.base import ChartImage, ChartRenderer, build_overlays
from options_analyzer.errors import AnalyzerError
from options_analyzer.indicators.engine import calculate_macd, calculate_rsi, calculate_sma
from options_analyzer.models.market import TIMEFRAME_LABELS, MultiTimeframeBundle, QuoteStatus
from options_analyzer.models.trade import Recommendation
from options_analyzer.oracle.client import OracleOutcome, OutcomeKind, RecommendationOracle
from options_analyzer.oracle.parsing import parse_recommendation
from options_analyzer.summary.engine import generate_bundle_summary
from options_analyzer.timeframes.aggregator import MultiTimeframeAggregator

log = logging.getLogger("analysis")

SOURCE_ORACLE = "oracle"
SOURCE_ORACLE_TEXT = "oracle_text"
SOURCE_TECHNICAL = "technical"
SOURCE_STALE = "stale"
SOURCE_ERROR = "error"


@dataclass(frozen=True)
class AnalysisResult:
    symbol: str
    source: str
    text: str
    quote_status: Optional[QuoteStatus] = None
    summary_lines: List[str] = field(default_factory=list)
    recommendation: Optional[Recommendation] = None
    charts: List[ChartImage] = field(default_factory=list)

    @property
    def is_stale(self) -> bool:
        return self.source == SOURCE_STALE


def stale_notice(symbol: str, status: QuoteStatus) -> str:
    return (
        f"Market data for {symbol} is stale (last refreshed {status.last_refreshed or 'unknown'}). "
        "AI analysis skipped until the latest trading session is available."
    )


def technical_only_summary(symbol: str, bundle: MultiTimeframeBundle, summary_lines: Sequence[str]) -> str:
    """Locally computed fallback used when the oracle is unavailable."""
    series = bundle.three_month
    score = 0
    if len(series) >= 15:
        rsi = calculate_rsi(series)
        if rsi < 30:
            score += 1
        elif rsi > 70:
            score -= 1
    if len(series) >= 20:
        score += 1 if series[-1].close > calculate_sma(series, 20) else -1
    macd = calculate_macd(series)
    if not macd.insufficient:
        score += 1 if macd.macd > macd.signal else -1

    if score > 0:
        bias = "bullish"
    elif score < 0:
        bias = "bearish"
    else:
        bias = "neutral"

    lines = [f"Technical-only analysis for {symbol} (AI recommendation unavailable):"]
    lines.extend(summary_lines)
    lines.append(f"3 Month bias: {bias} (score {score:+d}). No trade recommended without AI confirmation.")
    return "\n".join(lines)


class AnalysisService:
    """
    symbol -> bundle -> digest (+ charts) -> oracle -> AnalysisResult

    Data errors from the aggregator propagate. Oracle problems never do:
    the result degrades to raw oracle text, then to a technical-only summary.
    """

    def __init__(
        self,
        aggregator: MultiTimeframeAggregator,
        oracle: Optional[RecommendationOracle] = None,
        renderer: Optional[ChartRenderer] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        symbol_delay_seconds: float = 12.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.aggregator = aggregator
        self.oracle = oracle
        self.renderer = renderer
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.symbol_delay_seconds = symbol_delay_seconds
        self.sleep = sleep

    async def analyze_symbol(self, symbol: str) -> AnalysisResult:
        symbol = symbol.strip().upper()
        bundle, status = await self.aggregator.fetch_bundle(symbol)

        if status.is_stale:
            log.warning("Stale data symbol=%s last_refreshed=%s", symbol, status.last_refreshed)
            return AnalysisResult(
                symbol=symbol,
                source=SOURCE_STALE,
                text=stale_notice(symbol, status),
                quote_status=status,
            )

        summary_lines = generate_bundle_summary(bundle)
        charts = await self._render_charts(symbol, bundle)

        outcome = await self._ask_oracle(symbol, summary_lines, charts)
        if outcome is None:
            return AnalysisResult(
                symbol=symbol,
                source=SOURCE_TECHNICAL,
                text=technical_only_summary(symbol, bundle, summary_lines),
                quote_status=status,
                summary_lines=summary_lines,
                charts=charts,
            )

        recommendation = parse_recommendation(outcome.text)
        return AnalysisResult(
            symbol=symbol,
            source=SOURCE_ORACLE if recommendation is not None else SOURCE_ORACLE_TEXT,
            text=recommendation.reasoning if recommendation is not None else outcome.text,
            quote_status=status,
            summary_lines=summary_lines,
            recommendation=recommendation,
            charts=charts,
        )

    async def analyze_symbols(self, symbols: Sequence[str]) -> List[AnalysisResult]:
        """Serial analysis with a fixed delay between symbols (provider rate limits)."""
        results: List[AnalysisResult] = []
        for i, symbol in enumerate(symbols):
            try:
                results.append(await self.analyze_symbol(symbol))
            except AnalyzerError as e:
                log.error("Analysis failed symbol=%s error=%r", symbol, e)
                results.append(
                    AnalysisResult(
                        symbol=symbol.strip().upper(),
                        source=SOURCE_ERROR,
                        text=f"Error analyzing {symbol}: {e}",
                    )
                )

            if i < len(symbols) - 1:
                await self.sleep(self.symbol_delay_seconds)
        return results

    async def _render_charts(self, symbol: str, bundle: MultiTimeframeBundle) -> List[ChartImage]:
        if self.renderer is None:
            return []
        charts: List[ChartImage] = []
        for tf, series in bundle.items():
            if not series:
                continue
            try:
                charts.append(
                    await self.renderer.render(symbol, TIMEFRAME_LABELS[tf], series, build_overlays(series))
                )
            except Exception as e:
                log.warning("Chart render failed symbol=%s timeframe=%s error=%r", symbol, tf, e)
        return charts

    async def _ask_oracle(
        self,
        symbol: str,
        summary_lines: Sequence[str],
        charts: Sequence[ChartImage],
    ) -> Optional[OracleOutcome]:
        """
        Retry policy, branching on the outcome tag:
          RATE_LIMITED -> wait and retry (delay doubles), give up after max_attempts
          OTHER        -> move on to the next model in the chain
          INVALID_KEY  -> stop immediately
        Returns None when no usable answer was obtained.
        """
        if self.oracle is None:
            return None

        for model in self.oracle.models or [None]:
            delay = self.backoff_seconds
            for attempt in range(1, self.max_attempts + 1):
                outcome = await self.oracle.recommend(symbol, summary_lines, charts, model=model)
                if outcome.ok:
                    return outcome
                if outcome.kind == OutcomeKind.INVALID_KEY:
                    return None
                if outcome.kind == OutcomeKind.RATE_LIMITED:
                    if attempt == self.max_attempts:
                        log.warning("Oracle still rate limited after %d attempts symbol=%s", attempt, symbol)
                        return None
                    await self.sleep(delay)
                    delay *= 2
                    continue
                break
        return None
