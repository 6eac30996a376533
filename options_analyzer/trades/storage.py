from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from options_analyzer.errors import StorageFormatError, StorageWriteError
from options_analyzer.models.trade import (
    OptionType,
    PriceType,
    Recommendation,
    RecommendationType,
    TrackedTrade,
    TradeAction,
    TradeStatus,
)

log = logging.getLogger("trade_storage")

SCHEMA_VERSION = 1
DEFAULT_KEY = "stockanalyzer_trades"


# -------------------------
# Timestamps
# -------------------------
def encode_ts(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def decode_ts(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, (int, float)):
        # epoch millis (browser Date.now())
        return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# -------------------------
# Recommendation codec (snake_case or the browser's camelCase keys)
# -------------------------
def _pick(d: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return None


def parse_recommendation_type(raw: Any) -> RecommendationType:
    """Accepts 'call', 'Call Option Recommended', 'no_action', 'No Action Recommended', ..."""
    s = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
    if s.startswith("call"):
        return RecommendationType.CALL
    if s.startswith("put"):
        return RecommendationType.PUT
    if s.startswith("no"):
        return RecommendationType.NO_ACTION
    raise ValueError(f"Unknown recommendation type {raw!r}")


def action_from_dict(d: Mapping[str, Any], rec_type: RecommendationType) -> TradeAction:
    option_raw = _pick(d, "option_type", "optionType")
    if option_raw is None:
        if rec_type == RecommendationType.NO_ACTION:
            raise ValueError("Action without option type on a no-action recommendation")
        option_raw = rec_type.value

    strike = _pick(d, "strike_price", "strikePrice")
    target = _pick(d, "target_price", "targetPrice")
    price_type = _pick(d, "price_type", "priceType")
    expiration = _pick(d, "expiration_date", "expirationDate")
    if strike is None or target is None or price_type is None or expiration is None:
        raise ValueError("Action is missing strike/target/price type/expiration")

    return TradeAction(
        strike_price=float(strike),
        option_type=OptionType(str(option_raw).strip().lower()),
        target_price=float(target),
        price_type=PriceType(str(price_type).strip().lower()),
        expiration_date=str(expiration),
        expiration_reason=_pick(d, "expiration_reason", "expirationReason"),
    )


def recommendation_from_dict(d: Mapping[str, Any]) -> Recommendation:
    rec_type = parse_recommendation_type(_pick(d, "type", "recommendation_type", "recommendationType"))

    action_raw = d.get("action")
    action = None
    if isinstance(action_raw, Mapping) and rec_type != RecommendationType.NO_ACTION:
        action = action_from_dict(action_raw, rec_type)

    confidence = _pick(d, "confidence")
    return Recommendation(
        type=rec_type,
        reasoning=str(d.get("reasoning") or ""),
        action=action,
        confidence=float(confidence) if confidence is not None else None,
    )


def recommendation_to_dict(rec: Recommendation) -> Dict[str, Any]:
    action = None
    if rec.action is not None:
        action = {
            "strike_price": rec.action.strike_price,
            "option_type": rec.action.option_type.value,
            "target_price": rec.action.target_price,
            "price_type": rec.action.price_type.value,
            "expiration_date": rec.action.expiration_date,
            "expiration_reason": rec.action.expiration_reason,
        }
    return {
        "type": rec.type.value,
        "action": action,
        "reasoning": rec.reasoning,
        "confidence": rec.confidence,
    }


# -------------------------
# Trade codec
# -------------------------
def trade_to_dict(t: TrackedTrade) -> Dict[str, Any]:
    return {
        "id": t.id,
        "symbol": t.symbol,
        "recommendation": recommendation_to_dict(t.recommendation),
        "confirmed_at": encode_ts(t.confirmed_at),
        "status": t.status.value,
        "entry_price": t.entry_price,
        "current_price": t.current_price,
        "pnl": t.pnl,
        "pnl_percentage": t.pnl_percentage,
        "closed_at": encode_ts(t.closed_at),
    }


def trade_from_dict(d: Mapping[str, Any]) -> TrackedTrade:
    confirmed_at = decode_ts(_pick(d, "confirmed_at", "confirmedAt"))
    if confirmed_at is None:
        raise ValueError("Trade without confirmation timestamp")

    def opt_float(*keys: str) -> Optional[float]:
        v = _pick(d, *keys)
        return float(v) if v is not None else None

    return TrackedTrade(
        id=str(d["id"]),
        symbol=str(d["symbol"]).upper(),
        recommendation=recommendation_from_dict(d["recommendation"]),
        confirmed_at=confirmed_at,
        status=TradeStatus(d.get("status", TradeStatus.PENDING.value)),
        entry_price=opt_float("entry_price", "entryPrice"),
        current_price=opt_float("current_price", "currentPrice"),
        pnl=opt_float("pnl"),
        pnl_percentage=opt_float("pnl_percentage", "pnlPercentage"),
        closed_at=decode_ts(_pick(d, "closed_at", "closedAt")),
    )


def serialize_trades(trades: Sequence[TrackedTrade]) -> str:
    doc = {"version": SCHEMA_VERSION, "trades": [trade_to_dict(t) for t in trades]}
    return json.dumps(doc, indent=2)


def deserialize_trades(blob: str) -> List[TrackedTrade]:
    """
    Decodes a stored blob.

    version 1: {"version": 1, "trades": [...]}
    legacy:    bare JSON list written by the browser build (camelCase keys)
    """
    try:
        doc = json.loads(blob)
    except ValueError as e:
        raise StorageFormatError("Stored trades are not valid JSON") from e

    if isinstance(doc, list):
        rows = doc
    elif isinstance(doc, dict):
        version = doc.get("version")
        if version != SCHEMA_VERSION:
            raise StorageFormatError(f"Unsupported trade store version {version!r}")
        rows = doc.get("trades") or []
    else:
        raise StorageFormatError(f"Unexpected trade store root {type(doc).__name__}")

    try:
        return [trade_from_dict(row) for row in rows]
    except (KeyError, TypeError, ValueError) as e:
        raise StorageFormatError(f"Invalid trade record: {e}") from e


# -------------------------
# Stores
# -------------------------
class TradeStore(ABC):
    """Durable store holding the entire trade collection under one key."""

    @abstractmethod
    def load(self) -> List[TrackedTrade]:
        raise NotImplementedError

    @abstractmethod
    def save(self, trades: Sequence[TrackedTrade]) -> None:
        raise NotImplementedError


class JsonFileTradeStore(TradeStore):
    """
    One JSON file per key: {directory}/{key}.json

    save() writes a temp file in the same directory and swaps it in with
    os.replace, so readers see either the old or the new collection.
    """

    def __init__(self, directory: str | os.PathLike[str], key: str = DEFAULT_KEY) -> None:
        self.path = Path(directory) / f"{key}.json"

    def load(self) -> List[TrackedTrade]:
        if not self.path.exists():
            return []
        trades = deserialize_trades(self.path.read_text(encoding="utf-8"))
        log.info("Loaded trades path=%s count=%d", self.path, len(trades))
        return trades

    def save(self, trades: Sequence[TrackedTrade]) -> None:
        try:
            blob = serialize_trades(trades)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(blob)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageWriteError(f"Failed to persist trades to {self.path}: {e}") from e


class MemoryTradeStore(TradeStore):
    """Keeps the serialized blob in memory (tests, ephemeral runs)."""

    def __init__(self, blob: Optional[str] = None) -> None:
        self.blob = blob
        self.writes = 0

    def load(self) -> List[TrackedTrade]:
        return deserialize_trades(self.blob) if self.blob else []

    def save(self, trades: Sequence[TrackedTrade]) -> None:
        self.blob = serialize_trades(trades)
        self.writes += 1
