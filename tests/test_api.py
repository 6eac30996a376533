import unittest

from fakes import FailingAggregator, FakeQuotes, recording_sleep, sample_aggregator
from fastapi.testclient import TestClient

from options_analyzer.analysis.flow import AnalysisService
from options_analyzer.errors import ProviderUnavailable
from options_analyzer.jobs.price_poller import PriceMonitor
from options_analyzer.main import create_app
from options_analyzer.state import Services
from options_analyzer.trades.ledger import TradeLedger
from options_analyzer.trades.storage import MemoryTradeStore

CALL_RECOMMENDATION = {
    "type": "call",
    "action": {
        "strike_price": 100,
        "option_type": "call",
        "target_price": 2.0,
        "price_type": "ask",
        "expiration_date": "2024-07-19",
    },
    "reasoning": "Breakout",
    "confidence": 0.6,
}


def make_services(aggregator=None, quotes=None) -> Services:
    agg = aggregator or FailingAggregator(sample_aggregator(), {"BAD"})
    quotes = quotes or FakeQuotes([101.0])
    return Services(
        aggregator=agg,
        analysis=AnalysisService(agg, sleep=recording_sleep([])),
        ledger=TradeLedger(MemoryTradeStore()),
        monitor=PriceMonitor(quotes),
        quotes=quotes,
        poll_interval_seconds=60,
    )


class TestApi(unittest.TestCase):
    def setUp(self):
        self.services = make_services()
        self.client_cm = TestClient(create_app(services=self.services))
        self.client = self.client_cm.__enter__()

    def tearDown(self):
        self.client_cm.__exit__(None, None, None)

    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["status"], "ok")
        self.assertFalse(body["oracle_configured"])
        self.assertEqual(body["monitored"], [])

    def test_bundle_counts(self):
        r = self.client.get("/bundle", params={"ticker": "aapl"})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["ticker"], "AAPL")
        self.assertEqual(body["source"], "primary")
        self.assertEqual(body["counts"]["day"], 30)
        self.assertEqual(body["quote_status"], {"last_refreshed": "2024-06-11", "is_stale": False})
        self.assertNotIn("candles", body)

        r = self.client.get("/bundle", params={"ticker": "AAPL", "include_candles": "true"})
        self.assertEqual(r.json()["candles"]["day"][-1]["date"], "2024-06-11")

    def test_bundle_unavailable(self):
        r = self.client.get("/bundle", params={"ticker": "BAD"})
        self.assertEqual(r.status_code, 502)

    def test_summary(self):
        r = self.client.get("/summary", params={"ticker": "AAPL"})
        lines = r.json()["summary"]
        self.assertEqual(len(lines), 6)
        self.assertTrue(lines[0].startswith("1 Day: Price $"))

    def test_quote(self):
        r = self.client.get("/quote", params={"ticker": "aapl"})
        self.assertEqual(r.json(), {"ticker": "AAPL", "current_price": 101.0})

    def test_analyze_without_oracle(self):
        r = self.client.post("/analyze", params={"ticker": "AAPL"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["source"], "technical")

        r = self.client.post("/analyze", params={"ticker": "BAD"})
        self.assertEqual(r.status_code, 502)

    def test_batch_analyze(self):
        r = self.client.post("/analyze/batch", json={"tickers": ["AAPL", "BAD"]})
        self.assertEqual([x["source"] for x in r.json()["results"]], ["technical", "error"])

        r = self.client.post("/analyze/batch", json={"tickers": []})
        self.assertEqual(r.status_code, 422)

    def test_trade_flow(self):
        r = self.client.post("/trades", json={"symbol": "aapl", "recommendation": CALL_RECOMMENDATION, "entry_price": 2.0})
        self.assertEqual(r.status_code, 200)
        trade = r.json()
        self.assertEqual(trade["symbol"], "AAPL")
        self.assertEqual(trade["status"], "confirmed")
        trade_id = trade["id"]

        r = self.client.post("/trades", json={"symbol": "AAPL", "recommendation": CALL_RECOMMENDATION})
        self.assertEqual(r.status_code, 409)

        r = self.client.post(f"/trades/{trade_id}/price", json={"current_price": 105.0})
        self.assertEqual(r.status_code, 200)
        self.assertAlmostEqual(r.json()["pnl"], 3.0)
        self.assertAlmostEqual(r.json()["pnl_percentage"], 150.0)

        r = self.client.post(f"/trades/{trade_id}/price", json={"current_price": 0})
        self.assertEqual(r.status_code, 422)

        self.assertEqual(len(self.client.get("/trades/active").json()["trades"]), 1)

        r = self.client.post(f"/trades/{trade_id}/close")
        self.assertEqual(r.json()["status"], "closed")

        r = self.client.post(f"/trades/{trade_id}/price", json={"current_price": 110.0})
        self.assertEqual(r.status_code, 409)

        history = self.client.get("/trades").json()
        self.assertEqual(history["total_trades"], 1)
        self.assertEqual(history["successful_trades"], 1)
        self.assertEqual(history["success_rate"], 100.0)
        self.assertEqual(self.client.get("/trades/active").json()["trades"], [])

    def test_unknown_trade(self):
        self.assertEqual(self.client.post("/trades/NOPE-1/close").status_code, 404)
        self.assertEqual(self.client.post("/trades/NOPE-1/price", json={"current_price": 1.0}).status_code, 404)

    def test_monitor_start_stop(self):
        r = self.client.post("/monitor", params={"ticker": "msft"})
        self.assertEqual(r.json()["monitored"], ["MSFT"])

        r = self.client.delete("/monitor", params={"ticker": "MSFT"})
        self.assertEqual(r.json()["monitored"], [])

    def test_closing_last_trade_stops_monitoring(self):
        trade_id = self.client.post("/trades", json={"symbol": "TSLA", "recommendation": CALL_RECOMMENDATION}).json()["id"]
        self.client.post("/monitor", params={"ticker": "TSLA"})

        self.client.post(f"/trades/{trade_id}/close")
        self.assertEqual(self.client.get("/health").json()["monitored"], [])


class TestActiveTradesOnStartup(unittest.TestCase):
    def setUp(self):
        self.services = make_services(quotes=FakeQuotes([104.0]))
        # Leaves a confirmed, a pending and a closed trade behind, as a reloaded store would.
        with TestClient(create_app(services=self.services)) as client:
            self.confirmed = client.post(
                "/trades", json={"symbol": "AAPL", "recommendation": CALL_RECOMMENDATION, "entry_price": 2.0}
            ).json()["id"]
            self.pending = client.post("/trades", json={"symbol": "MSFT", "recommendation": CALL_RECOMMENDATION}).json()["id"]
            closed = client.post(
                "/trades", json={"symbol": "TSLA", "recommendation": CALL_RECOMMENDATION, "entry_price": 1.0}
            ).json()["id"]
            client.post(f"/trades/{closed}/close")

    def test_monitoring_resumes_for_confirmed_trades(self):
        with TestClient(create_app(services=self.services)) as client:
            self.assertEqual(client.get("/health").json()["monitored"], ["AAPL"])
        self.assertEqual(self.services.monitor.monitored_symbols(), [])

    def test_refresh_prices(self):
        with TestClient(create_app(services=self.services)) as client:
            r = client.post("/trades/refresh")
            active = {t["id"]: t for t in client.get("/trades/active").json()["trades"]}

        self.assertEqual(r.status_code, 200)
        self.assertEqual([t["id"] for t in r.json()["updated"]], [self.confirmed])
        self.assertAlmostEqual(r.json()["updated"][0]["pnl"], 2.0)
        self.assertIsNone(active[self.pending]["current_price"])


class TestQuoteUnavailable(unittest.TestCase):
    def test_quote_502(self):
        services = make_services(quotes=FakeQuotes([ProviderUnavailable("down")]))
        with TestClient(create_app(services=services)) as client:
            r = client.get("/quote", params={"ticker": "AAPL"})
        self.assertEqual(r.status_code, 502)


if __name__ == "__main__":
    unittest.main()
