from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from options_analyzer.analysis.flow import AnalysisResult
from options_analyzer.api.schemas import BatchAnalyzeIn, ConfirmTradeIn, PriceUpdateIn
from options_analyzer.errors import DataUnavailable, StorageWriteError, TradeClosed, TradeNotFound
from options_analyzer.jobs.price_poller import ledger_price_callback, refresh_active_trades
from options_analyzer.models.market import QuoteStatus, candle_to_dict
from options_analyzer.state import Services
from options_analyzer.summary.engine import generate_bundle_summary
from options_analyzer.trades.storage import recommendation_from_dict, recommendation_to_dict, trade_to_dict

router = APIRouter()


def services(request: Request) -> Services:
    return request.app.state.services


def status_dict(status: Optional[QuoteStatus]) -> Optional[dict]:
    if status is None:
        return None
    return {"last_refreshed": status.last_refreshed, "is_stale": status.is_stale}


def result_dict(result: AnalysisResult) -> dict:
    return {
        "ticker": result.symbol,
        "source": result.source,
        "text": result.text,
        "quote_status": status_dict(result.quote_status),
        "summary": result.summary_lines,
        "recommendation": (
            recommendation_to_dict(result.recommendation) if result.recommendation is not None else None
        ),
        "charts": [c.timeframe for c in result.charts],
    }


async def _bundle(svc: Services, ticker: str):
    try:
        return await svc.aggregator.fetch_bundle(ticker)
    except DataUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))


# -------------------------
# Market data
# -------------------------
@router.get("/bundle")
async def bundle(
    request: Request,
    ticker: str = Query(..., description="Ticker symbol, e.g., AAPL"),
    include_candles: bool = Query(False, description="Return the bars, not just counts"),
):
    """
    Bundle snapshot:
    - bar counts per canonical window
    - data source (primary / fallback) and freshness
    """
    b, status = await _bundle(services(request), ticker)
    out = {
        "ticker": ticker.upper(),
        "source": b.source,
        "counts": b.counts(),
        "quote_status": status_dict(status),
    }
    if include_candles:
        out["candles"] = {tf: [candle_to_dict(c) for c in series] for tf, series in b.items()}
    return out


@router.get("/summary")
async def summary(request: Request, ticker: str = Query(..., description="Ticker symbol")):
    b, status = await _bundle(services(request), ticker)
    return {
        "ticker": ticker.upper(),
        "quote_status": status_dict(status),
        "summary": generate_bundle_summary(b),
    }


@router.get("/quote")
async def quote(request: Request, ticker: str = Query(..., description="Ticker symbol")):
    price = await services(request).monitor.get_current_price(ticker)
    if price is None:
        raise HTTPException(status_code=502, detail=f"No price available for {ticker.upper()}")
    return {"ticker": ticker.upper(), "current_price": price}


# -------------------------
# Analysis
# -------------------------
@router.post("/analyze")
async def analyze(request: Request, ticker: str = Query(..., description="Ticker symbol")):
    try:
        result = await services(request).analysis.analyze_symbol(ticker)
    except DataUnavailable as e:
        raise HTTPException(status_code=502, detail=str(e))
    return result_dict(result)


@router.post("/analyze/batch")
async def analyze_batch(request: Request, body: BatchAnalyzeIn):
    results = await services(request).analysis.analyze_symbols(body.tickers)
    return {"results": [result_dict(r) for r in results]}


# -------------------------
# Trade ledger
# -------------------------
@router.get("/trades")
async def trade_history(request: Request):
    history = services(request).ledger.get_trade_history()
    return {
        "trades": [trade_to_dict(t) for t in history.trades],
        "total_trades": history.total_trades,
        "successful_trades": history.successful_trades,
        "success_rate": history.success_rate,
    }


@router.get("/trades/active")
async def active_trades(request: Request):
    return {"trades": [trade_to_dict(t) for t in services(request).ledger.get_active_trades()]}


@router.post("/trades")
async def confirm_trade(request: Request, body: ConfirmTradeIn):
    ledger = services(request).ledger
    existing = ledger.get_trade_by_symbol(body.symbol)
    if existing is not None:
        raise HTTPException(status_code=409, detail=f"{body.symbol.upper()} is already tracked as {existing.id}")

    try:
        recommendation = recommendation_from_dict(body.recommendation.model_dump(mode="json"))
        trade_id = ledger.confirm_trade(body.symbol, recommendation, body.entry_price)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StorageWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return trade_to_dict(ledger.get_trade(trade_id))


@router.post("/trades/refresh")
async def refresh_trades(request: Request):
    svc = services(request)
    try:
        updated = await refresh_active_trades(svc.ledger, svc.monitor)
    except StorageWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"updated": [trade_to_dict(t) for t in updated]}


@router.post("/trades/{trade_id}/price")
async def update_trade_price(request: Request, trade_id: str, body: PriceUpdateIn):
    try:
        trade = services(request).ledger.update_trade_price(trade_id, body.current_price, body.entry_price)
    except TradeNotFound:
        raise HTTPException(status_code=404, detail=f"Unknown trade {trade_id}")
    except TradeClosed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return trade_to_dict(trade)


@router.post("/trades/{trade_id}/close")
async def close_trade(request: Request, trade_id: str):
    svc = services(request)
    try:
        trade = svc.ledger.close_trade(trade_id)
    except TradeNotFound:
        raise HTTPException(status_code=404, detail=f"Unknown trade {trade_id}")
    except StorageWriteError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if svc.ledger.get_trade_by_symbol(trade.symbol) is None:
        svc.monitor.stop_monitoring(trade.symbol)
    return trade_to_dict(trade)


@router.post("/monitor")
async def start_monitor(request: Request, ticker: str = Query(..., description="Ticker symbol")):
    svc = services(request)
    svc.monitor.start_monitoring(ticker, ledger_price_callback(svc.ledger), svc.poll_interval_seconds)
    return {"ok": True, "monitored": svc.monitor.monitored_symbols()}


@router.delete("/monitor")
async def stop_monitor(request: Request, ticker: str = Query(..., description="Ticker symbol")):
    svc = services(request)
    svc.monitor.stop_monitoring(ticker)
    return {"ok": True, "monitored": svc.monitor.monitored_symbols()}
