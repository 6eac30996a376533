from __future__ import annotations

import json
import logging
from typing import Optional

from options_analyzer.errors import MalformedOracleResponse
from options_analyzer.models.trade import Recommendation
from options_analyzer.trades.storage import recommendation_from_dict

log = logging.getLogger("oracle_parsing")


def strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if "```json" in text:
        text = text.split("```json", 1)[1].split("```", 1)[0]
    elif text.startswith("```"):
        text = text[3:].split("```", 1)[0]
    return text.strip()


def decode_recommendation(raw: str) -> Recommendation:
    """
    Strict decode of an oracle answer. Tolerates markdown code fences around
    the JSON object; anything else raises MalformedOracleResponse.
    """
    text = strip_code_fence(raw)
    try:
        data = json.loads(text)
    except ValueError as e:
        raise MalformedOracleResponse("Oracle answer is not JSON") from e
    if not isinstance(data, dict):
        raise MalformedOracleResponse(f"Oracle answer is a JSON {type(data).__name__}, expected object")

    try:
        return recommendation_from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedOracleResponse(f"Oracle answer does not match the recommendation schema: {e}") from e


def parse_recommendation(raw: str) -> Optional[Recommendation]:
    """Lenient variant: None when the answer is not a valid recommendation."""
    try:
        return decode_recommendation(raw)
    except MalformedOracleResponse as e:
        log.info("Oracle answer not structured, passing text through: %s", e)
        return None
