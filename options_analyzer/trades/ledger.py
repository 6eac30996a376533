from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from options_analyzer.errors import TradeClosed, TradeNotFound
from options_analyzer.models.trade import (
    OptionType,
    Recommendation,
    TrackedTrade,
    TradeAction,
    TradeHistory,
    TradeStatus,
)
from options_analyzer.trades.storage import TradeStore

log = logging.getLogger("trade_ledger")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def intrinsic_pnl(action: TradeAction, entry_price: float, current_price: float) -> Tuple[float, float]:
    """
    Intrinsic-value option P&L (no time value):
      call: max(0, price - strike) - entry
      put:  max(0, strike - price) - entry
    Returns (pnl, pnl_percentage); percentage is 0 when entry is 0.
    """
    if action.option_type == OptionType.CALL:
        intrinsic = max(0.0, current_price - action.strike_price)
    else:
        intrinsic = max(0.0, action.strike_price - current_price)
    pnl = intrinsic - entry_price
    pct = (pnl / entry_price) * 100.0 if entry_price > 0 else 0.0
    return pnl, pct


class TradeLedger:
    """
    Sole owner of the tracked-trade collection.

    Every mutation builds the next collection, persists it through the store,
    and only then swaps the in-memory copy. A failed write raises and leaves
    the in-memory state at the last persisted collection.
    """

    def __init__(
        self,
        store: TradeStore,
        now: Callable[[], datetime] = utcnow,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self.store = store
        self.now = now
        self.clock_ms = clock_ms
        self._last_id_ms = 0
        self._trades: Tuple[TrackedTrade, ...] = tuple(store.load())

    # -------------------------
    # Queries
    # -------------------------
    @property
    def trades(self) -> List[TrackedTrade]:
        return list(self._trades)

    def get_trade(self, trade_id: str) -> TrackedTrade:
        for t in self._trades:
            if t.id == trade_id:
                return t
        raise TradeNotFound(trade_id)

    def get_trade_history(self) -> TradeHistory:
        total = len(self._trades)
        successful = sum(1 for t in self._trades if t.pnl is not None and t.pnl > 0)
        rate = (successful / total) * 100.0 if total > 0 else 0.0
        return TradeHistory(
            trades=list(self._trades),
            total_trades=total,
            successful_trades=successful,
            success_rate=rate,
        )

    def get_active_trades(self) -> List[TrackedTrade]:
        return [t for t in self._trades if t.is_active]

    def get_trade_by_symbol(self, symbol: str) -> Optional[TrackedTrade]:
        symbol = symbol.strip().upper()
        for t in self._trades:
            if t.symbol == symbol and t.is_active:
                return t
        return None

    # -------------------------
    # Mutations
    # -------------------------
    def _commit(self, trades: Tuple[TrackedTrade, ...]) -> None:
        self.store.save(trades)
        self._trades = trades

    def _replace_trade(self, updated: TrackedTrade) -> None:
        self._commit(tuple(updated if t.id == updated.id else t for t in self._trades))

    def _next_id(self, symbol: str) -> str:
        ms = max(self.clock_ms(), self._last_id_ms + 1)
        existing = {t.id for t in self._trades}
        while f"{symbol}-{ms}" in existing:
            ms += 1
        self._last_id_ms = ms
        return f"{symbol}-{ms}"

    def confirm_trade(
        self,
        symbol: str,
        recommendation: Recommendation,
        entry_price: Optional[float] = None,
    ) -> str:
        symbol = symbol.strip().upper()
        trade = TrackedTrade(
            id=self._next_id(symbol),
            symbol=symbol,
            recommendation=recommendation,
            confirmed_at=self.now(),
            status=TradeStatus.CONFIRMED if entry_price is not None else TradeStatus.PENDING,
            entry_price=entry_price,
        )
        self._commit(self._trades + (trade,))
        log.info("Confirmed trade id=%s status=%s entry=%s", trade.id, trade.status.value, entry_price)
        return trade.id

    def update_trade_price(
        self,
        trade_id: str,
        current_price: float,
        entry_price: Optional[float] = None,
    ) -> TrackedTrade:
        trade = self.get_trade(trade_id)
        if trade.status == TradeStatus.CLOSED:
            raise TradeClosed(f"Trade {trade_id} is closed")

        updated = replace(trade, current_price=current_price)
        if entry_price is not None:
            updated = replace(updated, entry_price=entry_price)
            if updated.status == TradeStatus.PENDING:
                updated = replace(updated, status=TradeStatus.CONFIRMED)

        action = updated.recommendation.action
        if updated.entry_price is not None and action is not None:
            pnl, pct = intrinsic_pnl(action, updated.entry_price, current_price)
            updated = replace(updated, pnl=pnl, pnl_percentage=pct)

        self._replace_trade(updated)
        return updated

    def close_trade(self, trade_id: str) -> TrackedTrade:
        """Closes a trade once; closing an already-closed trade is a no-op."""
        trade = self.get_trade(trade_id)
        if trade.status == TradeStatus.CLOSED:
            log.info("Trade already closed id=%s closed_at=%s", trade_id, trade.closed_at)
            return trade

        updated = replace(trade, status=TradeStatus.CLOSED, closed_at=self.now())
        self._replace_trade(updated)
        log.info("Closed trade id=%s pnl=%s", trade_id, updated.pnl)
        return updated
