"""
Recommendation oracle: an LLM chat-completion endpoint that turns the
technical digest plus chart images into a structured option recommendation.

The adapter never raises for provider problems. It returns an OracleOutcome
tagged with the failure kind so callers branch on the tag, not on messages.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import httpx
import openai
from openai import AsyncOpenAI

from options_analyzer.charts.base import ChartImage

log = logging.getLogger("oracle_client")


class OutcomeKind(str, Enum):
    OK = "ok"
    RATE_LIMITED = "rate_limited"
    INVALID_KEY = "invalid_key"
    OTHER = "other"


@dataclass(frozen=True)
class OracleOutcome:
    kind: OutcomeKind
    text: str = ""
    model: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.OK


RESPONSE_SCHEMA = """Respond with a single JSON object and nothing else:
{
  "type": "call" | "put" | "no_action",
  "action": {
    "strike_price": number,
    "option_type": "call" | "put",
    "target_price": number,
    "price_type": "bid" | "ask",
    "expiration_date": "YYYY-MM-DD",
    "expiration_reason": string
  } | null,
  "reasoning": string,
  "confidence": number between 0 and 1
}"""


def build_prompt(symbol: str, summary_lines: Sequence[str]) -> str:
    digest = "\n".join(summary_lines)
    return (
        f"Stock: {symbol}\n\n"
        "This is for PAPER TRADING SIMULATION. Using the technical digest below and the "
        "attached charts, decide whether to buy a call or a put option expiring in the next "
        "2-4 weeks. Only recommend a trade when the indicators give strong, evidence-based "
        "support; otherwise answer no_action.\n\n"
        f"TECHNICAL DIGEST:\n{digest}\n\n"
        f"{RESPONSE_SCHEMA}"
    )


class RecommendationOracle(ABC):
    @abstractmethod
    async def recommend(
        self,
        symbol: str,
        summary_lines: Sequence[str],
        charts: Sequence[ChartImage],
        model: Optional[str] = None,
    ) -> OracleOutcome:
        raise NotImplementedError

    @property
    def models(self) -> List[str]:
        return []

    async def aclose(self) -> None:
        return None


class OpenAIOracle(RecommendationOracle):
    """OpenAI chat completions (text + image_url parts)."""

    def __init__(
        self,
        api_key: str,
        models: Sequence[str] = ("gpt-4o",),
        max_tokens: int = 600,
        temperature: float = 0.7,
        timeout_seconds: float = 60.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        if not models:
            raise ValueError("OpenAIOracle needs at least one model")
        self._models = list(models)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            http_client=httpx.AsyncClient(timeout=timeout_seconds),
        )

    @property
    def models(self) -> List[str]:
        return list(self._models)

    async def aclose(self) -> None:
        await self._client.close()

    async def recommend(
        self,
        symbol: str,
        summary_lines: Sequence[str],
        charts: Sequence[ChartImage],
        model: Optional[str] = None,
    ) -> OracleOutcome:
        model = model or self._models[0]
        content: list = [{"type": "text", "text": build_prompt(symbol, summary_lines)}]
        content.extend({"type": "image_url", "image_url": {"url": c.data_url}} for c in charts)

        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": content}],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except openai.RateLimitError as e:
            log.warning("oracle_rate_limited: model=%s error=%s", model, e)
            return OracleOutcome(kind=OutcomeKind.RATE_LIMITED, model=model)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            log.error("oracle_invalid_key: model=%s error=%s", model, e)
            return OracleOutcome(kind=OutcomeKind.INVALID_KEY, model=model)
        except openai.OpenAIError as e:
            log.error("oracle_call_failed: model=%s error_type=%s error=%s", model, type(e).__name__, e)
            return OracleOutcome(kind=OutcomeKind.OTHER, model=model)

        if not response.choices or not response.choices[0].message.content:
            log.error("oracle_empty_response: model=%s", model)
            return OracleOutcome(kind=OutcomeKind.OTHER, model=model)

        return OracleOutcome(kind=OutcomeKind.OK, text=response.choices[0].message.content, model=model)
