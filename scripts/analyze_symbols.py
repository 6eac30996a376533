import argparse
import asyncio
import json
import logging

from options_analyzer.config import get_settings
from options_analyzer.jobs.price_poller import fetch_quotes_batched
from options_analyzer.state import build_services

MOST_TRADED = [
    "TSLA", "NVDA", "AMZN", "META", "MSFT", "AAPL", "AMD", "PLTR", "COIN", "HOOD",
    "MSTR", "UNH", "AVGO", "GOOG", "NFLX", "LLY", "ORCL", "COST", "BA", "BAC",
]


async def run_analysis(tickers: list[str], as_json: bool) -> None:
    settings = get_settings()
    services = build_services(settings)
    try:
        results = await services.analysis.analyze_symbols(tickers)
    finally:
        await services.aclose()

    for r in results:
        if as_json:
            print(json.dumps({
                "ticker": r.symbol,
                "source": r.source,
                "text": r.text,
                "last_refreshed": r.quote_status.last_refreshed if r.quote_status else None,
            }))
            continue

        print(f"=== {r.symbol} [{r.source}]")
        for line in r.summary_lines:
            print(f"  {line}")
        print(r.text)
        print()


async def run_quotes(tickers: list[str], batch_size: int, delay: float) -> None:
    services = build_services(get_settings())
    try:
        quotes = await fetch_quotes_batched(services.quotes, tickers, batch_size=batch_size, delay_seconds=delay)
    finally:
        await services.aclose()

    for symbol, q in quotes.items():
        if q is None:
            print(f"{symbol:6s} n/a")
            continue
        pct = f"{q.change_percent:+.2f}%" if q.change_percent is not None else ""
        print(f"{symbol:6s} {q.current_price:10.2f} {pct}")


def main():
    parser = argparse.ArgumentParser(description="Serial multi-timeframe analysis for a list of tickers")
    parser.add_argument("tickers", nargs="*", help="Tickers, e.g., AAPL MSFT")
    parser.add_argument("--quotes", action="store_true", help="Only print latest quotes")
    parser.add_argument("--most-traded", action="store_true", help="Use the built-in most-traded list")
    parser.add_argument("--batch-size", type=int, default=5, help="Quote batch size")
    parser.add_argument("--batch-delay", type=float, default=1.0, help="Seconds between quote batches")
    parser.add_argument("--json", action="store_true", help="One JSON object per ticker")
    args = parser.parse_args()

    logging.basicConfig(level=get_settings().log_level.upper())

    tickers = [t.upper() for t in args.tickers] or (MOST_TRADED if args.most_traded else [])
    if not tickers:
        parser.error("no tickers given (pass tickers or --most-traded)")

    if args.quotes:
        asyncio.run(run_quotes(tickers, args.batch_size, args.batch_delay))
    else:
        asyncio.run(run_analysis(tickers, args.json))


if __name__ == "__main__":
    main()
