import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from options_analyzer.errors import StorageFormatError, StorageWriteError, TradeClosed, TradeNotFound
from options_analyzer.models.trade import (
    OptionType,
    PriceType,
    Recommendation,
    RecommendationType,
    TradeAction,
    TradeStatus,
)
from options_analyzer.trades.ledger import TradeLedger, intrinsic_pnl
from options_analyzer.trades.storage import (
    JsonFileTradeStore,
    MemoryTradeStore,
    deserialize_trades,
    serialize_trades,
)

T0 = datetime(2024, 6, 10, 15, 30, tzinfo=timezone.utc)


def call_rec(strike=100.0) -> Recommendation:
    return Recommendation(
        type=RecommendationType.CALL,
        reasoning="Breakout above resistance",
        action=TradeAction(
            strike_price=strike,
            option_type=OptionType.CALL,
            target_price=2.0,
            price_type=PriceType.ASK,
            expiration_date="2024-07-19",
            expiration_reason="Covers next earnings",
        ),
        confidence=0.7,
    )


def put_rec(strike=100.0) -> Recommendation:
    return Recommendation(
        type=RecommendationType.PUT,
        reasoning="Breakdown",
        action=TradeAction(strike, OptionType.PUT, 2.0, PriceType.BID, "2024-07-19"),
    )


def no_action_rec() -> Recommendation:
    return Recommendation(type=RecommendationType.NO_ACTION, reasoning="Mixed signals")


class Clock:
    def __init__(self, start=T0):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kw):
        self.current = self.current + timedelta(**kw)


class FailingStore(MemoryTradeStore):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, trades):
        if self.fail:
            raise StorageWriteError("disk full")
        super().save(trades)


def new_ledger(store=None, clock=None):
    return TradeLedger(store or MemoryTradeStore(), now=clock or Clock(), clock_ms=lambda: 1718033400000)


class TestIntrinsicPnl(unittest.TestCase):
    def test_call_in_the_money(self):
        pnl, pct = intrinsic_pnl(call_rec().action, 2.0, 105.0)
        self.assertAlmostEqual(pnl, 3.0)
        self.assertAlmostEqual(pct, 150.0)

    def test_put_out_of_the_money(self):
        pnl, pct = intrinsic_pnl(put_rec().action, 2.0, 105.0)
        self.assertAlmostEqual(pnl, -2.0)
        self.assertAlmostEqual(pct, -100.0)

    def test_put_in_the_money(self):
        pnl, _ = intrinsic_pnl(put_rec().action, 1.5, 96.0)
        self.assertAlmostEqual(pnl, 2.5)

    def test_zero_entry(self):
        pnl, pct = intrinsic_pnl(call_rec().action, 0.0, 105.0)
        self.assertAlmostEqual(pnl, 5.0)
        self.assertEqual(pct, 0.0)


class TestTradeLedger(unittest.TestCase):
    def test_confirm_without_entry_is_pending(self):
        ledger = new_ledger()
        trade_id = ledger.confirm_trade("aapl", call_rec())

        trade = ledger.get_trade(trade_id)
        self.assertEqual(trade.symbol, "AAPL")
        self.assertTrue(trade_id.startswith("AAPL-"))
        self.assertEqual(trade.status, TradeStatus.PENDING)
        self.assertIsNone(trade.pnl)
        self.assertEqual(trade.confirmed_at, T0)

    def test_confirm_with_entry_is_confirmed(self):
        ledger = new_ledger()
        trade = ledger.get_trade(ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0))
        self.assertEqual(trade.status, TradeStatus.CONFIRMED)
        self.assertEqual(trade.entry_price, 2.0)

    def test_price_update_computes_pnl(self):
        ledger = new_ledger()
        trade_id = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)
        trade = ledger.update_trade_price(trade_id, 105.0)

        self.assertEqual(trade.current_price, 105.0)
        self.assertAlmostEqual(trade.pnl, 3.0)
        self.assertAlmostEqual(trade.pnl_percentage, 150.0)
        self.assertEqual(ledger.get_trade(trade_id), trade)

    def test_entry_price_on_update_promotes_pending(self):
        ledger = new_ledger()
        trade_id = ledger.confirm_trade("AAPL", call_rec())

        trade = ledger.update_trade_price(trade_id, 101.0)
        self.assertEqual(trade.status, TradeStatus.PENDING)
        self.assertIsNone(trade.pnl)

        trade = ledger.update_trade_price(trade_id, 103.0, entry_price=1.0)
        self.assertEqual(trade.status, TradeStatus.CONFIRMED)
        self.assertAlmostEqual(trade.pnl, 2.0)

    def test_no_action_never_gets_pnl(self):
        ledger = new_ledger()
        trade_id = ledger.confirm_trade("SPY", no_action_rec(), entry_price=1.0)
        trade = ledger.update_trade_price(trade_id, 500.0)
        self.assertIsNone(trade.pnl)
        self.assertIsNone(trade.pnl_percentage)

    def test_history(self):
        ledger = new_ledger()
        winner = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)
        loser = ledger.confirm_trade("MSFT", put_rec(), entry_price=2.0)
        ledger.confirm_trade("TSLA", call_rec())
        ledger.update_trade_price(winner, 105.0)
        ledger.update_trade_price(loser, 105.0)

        history = ledger.get_trade_history()
        self.assertEqual(history.total_trades, 3)
        self.assertEqual(history.successful_trades, 1)
        self.assertAlmostEqual(history.success_rate, 100.0 / 3.0)

    def test_empty_history(self):
        history = new_ledger().get_trade_history()
        self.assertEqual((history.total_trades, history.success_rate), (0, 0.0))

    def test_close_is_idempotent(self):
        clock = Clock()
        ledger = new_ledger(clock=clock)
        trade_id = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)

        clock.advance(hours=1)
        first = ledger.close_trade(trade_id)
        clock.advance(hours=1)
        second = ledger.close_trade(trade_id)

        self.assertEqual(first.status, TradeStatus.CLOSED)
        self.assertEqual(second.closed_at, T0 + timedelta(hours=1))
        self.assertEqual(ledger.get_active_trades(), [])

    def test_price_update_on_closed_trade(self):
        ledger = new_ledger()
        trade_id = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)
        ledger.update_trade_price(trade_id, 105.0)
        ledger.close_trade(trade_id)

        with self.assertRaises(TradeClosed):
            ledger.update_trade_price(trade_id, 120.0)
        self.assertEqual(ledger.get_trade(trade_id).current_price, 105.0)

    def test_unknown_trade(self):
        ledger = new_ledger()
        with self.assertRaises(TradeNotFound):
            ledger.update_trade_price("AAPL-1", 1.0)
        with self.assertRaises(TradeNotFound):
            ledger.close_trade("AAPL-1")

    def test_get_trade_by_symbol_only_active(self):
        ledger = new_ledger()
        trade_id = ledger.confirm_trade("AAPL", call_rec())
        self.assertEqual(ledger.get_trade_by_symbol("aapl").id, trade_id)

        ledger.close_trade(trade_id)
        self.assertIsNone(ledger.get_trade_by_symbol("AAPL"))

    def test_ids_unique_under_constant_clock(self):
        ledger = new_ledger()
        ids = [ledger.confirm_trade("AAPL", call_rec()) for _ in range(5)]
        self.assertEqual(len(set(ids)), 5)

    def test_failed_write_keeps_previous_state(self):
        store = FailingStore()
        ledger = new_ledger(store=store)
        trade_id = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)

        store.fail = True
        with self.assertRaises(StorageWriteError):
            ledger.update_trade_price(trade_id, 105.0)
        with self.assertRaises(StorageWriteError):
            ledger.confirm_trade("MSFT", put_rec())

        self.assertIsNone(ledger.get_trade(trade_id).current_price)
        self.assertEqual(len(ledger.trades), 1)

    def test_reload_from_store(self):
        store = MemoryTradeStore()
        ledger = new_ledger(store=store)
        trade_id = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)
        ledger.update_trade_price(trade_id, 105.0)

        reloaded = new_ledger(store=MemoryTradeStore(store.blob))
        self.assertEqual(reloaded.trades, ledger.trades)


class TestTradeStorage(unittest.TestCase):
    def test_json_file_round_trip(self):
        with tempfile.TemporaryDirectory() as d:
            store = JsonFileTradeStore(d)
            ledger = new_ledger(store=store)
            a = ledger.confirm_trade("AAPL", call_rec(), entry_price=2.0)
            ledger.confirm_trade("SPY", no_action_rec())
            ledger.close_trade(a)

            doc = json.loads(Path(d, "stockanalyzer_trades.json").read_text(encoding="utf-8"))
            self.assertEqual(doc["version"], 1)
            self.assertEqual(len(doc["trades"]), 2)
            self.assertEqual(doc["trades"][0]["confirmed_at"], "2024-06-10T15:30:00+00:00")

            reloaded = JsonFileTradeStore(d).load()
            self.assertEqual(reloaded, ledger.trades)
            self.assertEqual(list(Path(d).glob("*.tmp")), [])

    def test_missing_file_is_empty(self):
        with tempfile.TemporaryDirectory() as d:
            self.assertEqual(JsonFileTradeStore(d).load(), [])

    def test_unwritable_directory(self):
        with tempfile.TemporaryDirectory() as d:
            blocker = Path(d, "blocker")
            blocker.write_text("not a directory", encoding="utf-8")
            store = JsonFileTradeStore(blocker / "nested")
            with self.assertRaises(StorageWriteError):
                store.save([])

    def test_legacy_browser_list(self):
        legacy = [{
            "id": "AAPL-1717000000000",
            "symbol": "aapl",
            "recommendation": {
                "type": "Call Option Recommended",
                "action": {
                    "strikePrice": 190,
                    "targetPrice": 3.2,
                    "priceType": "ask",
                    "expirationDate": "2024-06-21",
                },
                "reasoning": "Momentum",
            },
            "confirmedAt": 1717000000000,
            "status": "confirmed",
            "entryPrice": 3.2,
            "currentPrice": 195,
            "pnl": 1.8,
            "pnlPercentage": 56.25,
        }]
        trades = deserialize_trades(json.dumps(legacy))

        self.assertEqual(len(trades), 1)
        t = trades[0]
        self.assertEqual(t.symbol, "AAPL")
        self.assertEqual(t.recommendation.type, RecommendationType.CALL)
        self.assertEqual(t.recommendation.action.option_type, OptionType.CALL)
        self.assertIsNone(t.recommendation.action.expiration_reason)
        self.assertEqual(t.confirmed_at, datetime.fromtimestamp(1717000000, tz=timezone.utc))
        self.assertEqual(t.entry_price, 3.2)

        upgraded = json.loads(serialize_trades(trades))
        self.assertEqual(upgraded["version"], 1)

    def test_unknown_version(self):
        with self.assertRaises(StorageFormatError):
            deserialize_trades(json.dumps({"version": 99, "trades": []}))

    def test_garbage(self):
        with self.assertRaises(StorageFormatError):
            deserialize_trades("{not json")
        with self.assertRaises(StorageFormatError):
            deserialize_trades(json.dumps([{"id": "x"}]))


if __name__ == "__main__":
    unittest.main()
