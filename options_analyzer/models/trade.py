from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class RecommendationType(str, Enum):
    CALL = "call"
    PUT = "put"
    NO_ACTION = "no_action"


class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"


class PriceType(str, Enum):
    BID = "bid"
    ASK = "ask"


class TradeStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CLOSED = "closed"


@dataclass(frozen=True)
class TradeAction:
    strike_price: float
    option_type: OptionType
    target_price: float
    price_type: PriceType
    expiration_date: str
    expiration_reason: Optional[str] = None


@dataclass(frozen=True)
class Recommendation:
    """
    Snapshot of an oracle recommendation.

    Superset of every schema the oracle has produced: `action` is absent for
    no-action answers; `confidence` and `action.expiration_reason` are absent
    for older answers.
    """
    type: RecommendationType
    reasoning: str
    action: Optional[TradeAction] = None
    confidence: Optional[float] = None


@dataclass(frozen=True)
class TrackedTrade:
    id: str
    symbol: str
    recommendation: Recommendation
    confirmed_at: datetime
    status: TradeStatus
    entry_price: Optional[float] = None
    current_price: Optional[float] = None
    pnl: Optional[float] = None
    pnl_percentage: Optional[float] = None
    closed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status != TradeStatus.CLOSED


@dataclass(frozen=True)
class TradeHistory:
    trades: List[TrackedTrade] = field(default_factory=list)
    total_trades: int = 0
    successful_trades: int = 0
    success_rate: float = 0.0
