from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from options_analyzer.errors import ProviderError, TradeClosed
from options_analyzer.models.market import Quote
from options_analyzer.models.trade import TrackedTrade, TradeStatus
from options_analyzer.providers.base import QuoteProvider
from options_analyzer.trades.ledger import TradeLedger

log = logging.getLogger("price_poller")

DEFAULT_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True)
class PriceUpdate:
    symbol: str
    current_price: float
    timestamp: datetime


PriceCallback = Callable[[PriceUpdate], Union[None, Awaitable[None]]]


class PriceMonitor:
    """
    Per-symbol polling loops on the running event loop.

    tasks[symbol]     -> asyncio.Task running the poll loop
    callbacks[symbol] -> callback receiving PriceUpdate
    Owned by whoever constructs it; stop_all_monitoring() on teardown.
    """

    def __init__(self, provider: QuoteProvider) -> None:
        self.provider = provider
        self.tasks: Dict[str, asyncio.Task] = {}
        self.callbacks: Dict[str, PriceCallback] = {}

    def start_monitoring(
        self,
        symbol: str,
        callback: PriceCallback,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        symbol = symbol.strip().upper()
        self.stop_monitoring(symbol)

        self.callbacks[symbol] = callback
        self.tasks[symbol] = asyncio.get_running_loop().create_task(
            self._poll_loop(symbol, callback, interval_seconds),
            name=f"price-monitor-{symbol}",
        )
        log.info("Started monitoring symbol=%s interval=%ss", symbol, interval_seconds)

    def stop_monitoring(self, symbol: str) -> None:
        symbol = symbol.strip().upper()
        task = self.tasks.pop(symbol, None)
        if task is not None:
            task.cancel()
        self.callbacks.pop(symbol, None)

    def stop_all_monitoring(self) -> None:
        for task in self.tasks.values():
            task.cancel()
        self.tasks.clear()
        self.callbacks.clear()

    def monitored_symbols(self) -> List[str]:
        return sorted(self.tasks)

    async def get_current_price(self, symbol: str) -> Optional[float]:
        try:
            quote = await self.provider.get_quick_price(symbol.strip().upper())
        except ProviderError as e:
            log.error("Failed to fetch current price symbol=%s error=%r", symbol, e)
            return None
        return quote.current_price

    async def _poll_loop(self, symbol: str, callback: PriceCallback, interval_seconds: float) -> None:
        while True:
            try:
                quote = await self.provider.get_quick_price(symbol)
                update = PriceUpdate(
                    symbol=symbol,
                    current_price=quote.current_price,
                    timestamp=datetime.now(timezone.utc),
                )
                result = callback(update)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep loop alive even if provider temporarily fails, but log the error.
                log.warning("Price poll failed symbol=%s error=%r", symbol, e)

            await asyncio.sleep(interval_seconds)


def ledger_price_callback(ledger: TradeLedger) -> Callable[[PriceUpdate], None]:
    """Feeds each price update into every active trade tracking that symbol."""

    def on_update(update: PriceUpdate) -> None:
        for trade in ledger.get_active_trades():
            if trade.symbol == update.symbol:
                ledger.update_trade_price(trade.id, update.current_price)

    return on_update


def _confirmed_active(ledger: TradeLedger) -> List[TrackedTrade]:
    return [t for t in ledger.get_active_trades() if t.status == TradeStatus.CONFIRMED]


async def refresh_active_trades(ledger: TradeLedger, monitor: PriceMonitor) -> List[TrackedTrade]:
    """
    One-shot price refresh for every confirmed active trade, one quote per
    trade in ledger order. Trades whose quote fails keep their last price.
    """
    updated: List[TrackedTrade] = []
    for trade in _confirmed_active(ledger):
        price = await monitor.get_current_price(trade.symbol)
        if price is None:
            continue
        try:
            updated.append(ledger.update_trade_price(trade.id, price))
        except TradeClosed:
            # Closed while the quote was in flight.
            continue
    log.info("Refreshed active trades updated=%d", len(updated))
    return updated


def resume_monitoring(
    ledger: TradeLedger,
    monitor: PriceMonitor,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
) -> List[str]:
    """Restarts polling for each symbol that still has a confirmed active trade."""
    symbols = sorted({t.symbol for t in _confirmed_active(ledger)})
    callback = ledger_price_callback(ledger)
    for symbol in symbols:
        monitor.start_monitoring(symbol, callback, interval_seconds)
    return symbols


async def fetch_quotes_batched(
    provider: QuoteProvider,
    symbols: Sequence[str],
    batch_size: int = 5,
    delay_seconds: float = 1.0,
) -> Dict[str, Optional[Quote]]:
    """
    Quotes for many symbols: concurrent inside a batch, sleeping between
    batches to stay under provider rate limits. Failed symbols map to None.
    """
    out: Dict[str, Optional[Quote]] = {}

    async def one(symbol: str) -> Any:
        try:
            return await provider.get_quick_price(symbol)
        except ProviderError as e:
            log.warning("Quote failed symbol=%s error=%r", symbol, e)
            return None

    batch_size = max(1, batch_size)
    batches = [list(symbols[i:i + batch_size]) for i in range(0, len(symbols), batch_size)]
    for idx, batch in enumerate(batches):
        results = await asyncio.gather(*(one(s) for s in batch))
        out.update(zip(batch, results))
        if idx < len(batches) - 1:
            await asyncio.sleep(delay_seconds)
    return out
