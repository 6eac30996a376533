from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from options_analyzer.models.trade import OptionType, PriceType, RecommendationType


class TradeActionIn(BaseModel):
    strike_price: float = Field(gt=0)
    option_type: OptionType
    target_price: float = Field(ge=0)
    price_type: PriceType
    expiration_date: str
    expiration_reason: Optional[str] = None


class RecommendationIn(BaseModel):
    type: RecommendationType
    action: Optional[TradeActionIn] = None
    reasoning: str = ""
    confidence: Optional[float] = None


class ConfirmTradeIn(BaseModel):
    symbol: str = Field(min_length=1)
    recommendation: RecommendationIn
    entry_price: Optional[float] = Field(default=None, ge=0)


class PriceUpdateIn(BaseModel):
    current_price: float = Field(gt=0)
    entry_price: Optional[float] = Field(default=None, ge=0)


class BatchAnalyzeIn(BaseModel):
    tickers: List[str] = Field(min_length=1)
