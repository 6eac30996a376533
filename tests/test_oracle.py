import json
import unittest

import httpx
from openai import AsyncOpenAI

from options_analyzer.charts.base import ChartImage
from options_analyzer.errors import MalformedOracleResponse
from options_analyzer.models.trade import OptionType, RecommendationType
from options_analyzer.oracle.client import OpenAIOracle, OutcomeKind, build_prompt
from options_analyzer.oracle.parsing import decode_recommendation, parse_recommendation, strip_code_fence


class TestParsing(unittest.TestCase):
    def test_strip_fences(self):
        self.assertEqual(strip_code_fence('```json\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fence('Here you go:\n```json\n{"a": 1}\n```\nGood luck'), '{"a": 1}')
        self.assertEqual(strip_code_fence('```\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fence(' {"a": 1} '), '{"a": 1}')

    def test_decode_no_action(self):
        rec = decode_recommendation('{"type": "no_action", "action": null, "reasoning": "Mixed"}')
        self.assertEqual(rec.type, RecommendationType.NO_ACTION)
        self.assertIsNone(rec.action)
        self.assertIsNone(rec.confidence)

    def test_decode_infers_option_type(self):
        raw = json.dumps({
            "type": "put",
            "action": {"strike_price": 95, "target_price": 1.1, "price_type": "bid", "expiration_date": "2024-07-12"},
            "reasoning": "Breakdown",
        })
        rec = decode_recommendation(raw)
        self.assertEqual(rec.action.option_type, OptionType.PUT)

    def test_decode_rejects(self):
        for raw in ("not json", "[1, 2]", '{"type": "hold"}', '{"type": "call", "action": {"strike_price": 1}}'):
            with self.assertRaises(MalformedOracleResponse):
                decode_recommendation(raw)

    def test_lenient_parse(self):
        self.assertIsNone(parse_recommendation("Buy calls, trust me."))


def completion(content):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1718200000,
        "model": "gpt-4o",
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }


class TestOpenAIOracle(unittest.IsolatedAsyncioTestCase):
    def oracle(self, handler):
        self.requests = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(json.loads(request.content))
            return handler(request)

        client = AsyncOpenAI(
            api_key="sk-test",
            base_url="http://oracle.test/v1",
            max_retries=0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(record)),
        )
        return OpenAIOracle(api_key="sk-test", models=["gpt-4o", "gpt-4o-mini"], client=client)

    async def test_ok(self):
        oracle = self.oracle(lambda r: httpx.Response(200, json=completion('{"type": "no_action"}')))
        charts = [ChartImage("1 Day", "data:image/png;base64,AAAA")]
        outcome = await oracle.recommend("AAPL", ["1 Day: Price $1.00"], charts)
        await oracle.aclose()

        self.assertEqual(outcome.kind, OutcomeKind.OK)
        self.assertEqual(outcome.text, '{"type": "no_action"}')
        self.assertEqual(outcome.model, "gpt-4o")

        body = self.requests[0]
        self.assertEqual(body["model"], "gpt-4o")
        parts = body["messages"][0]["content"]
        self.assertEqual(parts[0]["type"], "text")
        self.assertIn("1 Day: Price $1.00", parts[0]["text"])
        self.assertEqual(parts[1]["image_url"]["url"], "data:image/png;base64,AAAA")

    async def test_status_codes_map_to_outcomes(self):
        cases = {429: OutcomeKind.RATE_LIMITED, 401: OutcomeKind.INVALID_KEY, 500: OutcomeKind.OTHER}
        for status, kind in cases.items():
            oracle = self.oracle(lambda r, s=status: httpx.Response(s, json={"error": {"message": "nope"}}))
            outcome = await oracle.recommend("AAPL", [], [], model="gpt-4o-mini")
            await oracle.aclose()
            self.assertEqual(outcome.kind, kind, status)
            self.assertEqual(outcome.model, "gpt-4o-mini")

    async def test_empty_answer_is_other(self):
        oracle = self.oracle(lambda r: httpx.Response(200, json=completion(None)))
        outcome = await oracle.recommend("AAPL", [], [])
        await oracle.aclose()
        self.assertEqual(outcome.kind, OutcomeKind.OTHER)

    def test_prompt_mentions_symbol_and_schema(self):
        prompt = build_prompt("TSLA", ["1 Day: Price $200.00"])
        self.assertIn("Stock: TSLA", prompt)
        self.assertIn('"no_action"', prompt)


if __name__ == "__main__":
    unittest.main()
