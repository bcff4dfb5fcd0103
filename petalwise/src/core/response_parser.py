"""
Petalwise - Response Parser
============================
Turns untrusted model text into a prediction tier.

``parse_strict``
    Fence-stripping + string-aware brace matching + JSON decode.
    Requires a numeric ``prediction.totalHours``.
``salvage``
    Regex extraction from malformed prose: first number as days,
    a labelled reasoning span, bullet lines as recommendations.

Both raise ``ResponseParseError`` when they cannot produce a
plausible prediction; the orchestrator decides what happens next.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from pydantic import ValidationError

from petalwise.config.prompt_templates import DEFAULT_REASONING, SALVAGE_DEFAULT_RECOMMENDATIONS
from petalwise.src.core.errors import ResponseParseError
from petalwise.src.models.prediction import DetailedPrediction, FinancialRecommendation, ParsedPrediction, SalvagedPrediction
from petalwise.src.utils.logger import get_logger
from petalwise.src.utils.text_utils import strip_code_fences

logger = get_logger(__name__)

DEFAULT_CONFIDENCE: float = 0.8
SALVAGED_CONFIDENCE: float = 0.7
SALVAGE_DEFAULT_HOURS: float = 48.0
MAX_PLAUSIBLE_DAYS: float = 365.0

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_REASONING_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"reasoning[\"\s]*:[\"\s]*([^\"\n]+)", re.IGNORECASE),
    re.compile(r"explanation[\"\s]*:[\"\s]*([^\"\n]+)", re.IGNORECASE),
    re.compile(r"because[\"\s]*([^\"\n]+)", re.IGNORECASE),
)
_BULLET_RE = re.compile(r"^[ \t]*[-•*][ \t]+(.+?)[ \t]*$", re.MULTILINE)

# camelCase keys the model is asked for → model field names
_FINANCIAL_KEYS: dict[str, str] = {"title": "title", "type": "type", "urgency": "urgency", "timeWindow": "time_window", "discountPercentage": "discount_percentage", "suggestedPrice": "suggested_price", "description": "description", "justification": "justification", "actionItems": "action_items"}
_URGENCIES = {"low", "medium", "high", "critical"}


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════


def extract_json_object(text: str) -> str | None:
    """
    Return the first balanced ``{...}`` substring of *text*.

    Braces inside JSON string literals (including escaped quotes) do
    not count towards the balance.  Returns ``None`` if no balanced
    object exists.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _coerce_recommendations(value: Any) -> list[str]:
    items = value if isinstance(value, list) else [value]
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def _parse_financial(value: Any) -> list[FinancialRecommendation]:
    if not isinstance(value, list):
        return []

    parsed: list[FinancialRecommendation] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        payload = {field: raw[key] for key, field in _FINANCIAL_KEYS.items() if raw.get(key) is not None}
        urgency = str(payload.get("urgency", "medium")).strip().lower()
        payload["urgency"] = urgency if urgency in _URGENCIES else "medium"
        if "action_items" in payload:
            payload["action_items"] = _coerce_recommendations(payload["action_items"])
        try:
            parsed.append(FinancialRecommendation(**payload))
        except ValidationError as exc:
            logger.debug("[PARSE] Dropping malformed financial recommendation: %s", exc.errors()[0].get("msg", exc))
    return parsed


# ══════════════════════════════════════════════════════════════════════
#  TIER 1: STRICT
# ══════════════════════════════════════════════════════════════════════


def parse_strict(text: str) -> ParsedPrediction:
    """
    Parse a well-formed JSON reply.

    Raises
    ------
    ResponseParseError
        If no JSON object is found, it does not decode, or
        ``prediction.totalHours`` is missing or non-numeric.
    """
    if not text or not text.strip():
        raise ResponseParseError("Empty model response.")

    candidate = extract_json_object(strip_code_fences(text))
    if candidate is None:
        raise ResponseParseError("No JSON object found in model response.")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON in model response: {exc}") from exc

    prediction = data.get("prediction") if isinstance(data, dict) else None
    total_hours = prediction.get("totalHours") if isinstance(prediction, dict) else None
    if not _is_number(total_hours):
        raise ResponseParseError("Missing numeric prediction.totalHours in model response.")

    total_hours = max(float(total_hours), 0.0)
    confidence = data.get("confidence")
    confidence = min(max(float(confidence), 0.0), 1.0) if _is_number(confidence) else DEFAULT_CONFIDENCE
    reasoning = data.get("reasoning")
    reasoning = reasoning.strip() if isinstance(reasoning, str) and reasoning.strip() else DEFAULT_REASONING

    result = ParsedPrediction(prediction=total_hours / 24, confidence=confidence, reasoning=reasoning, recommendations=_coerce_recommendations(data.get("recommendations")), financial_recommendations=_parse_financial(data.get("financialRecommendations")), detailed_prediction=DetailedPrediction.from_total_hours(total_hours))
    logger.debug("[PARSE] Strict parse OK: %.2f days, confidence=%.2f", result.prediction, result.confidence)
    return result


# ══════════════════════════════════════════════════════════════════════
#  TIER 2: SALVAGE
# ══════════════════════════════════════════════════════════════════════


def salvage(text: str) -> SalvagedPrediction:
    """
    Best-effort extraction from a reply that is not valid JSON.

    Raises
    ------
    ResponseParseError
        If *text* is blank or its first number is not a plausible
        number of days.
    """
    if not text or not text.strip():
        raise ResponseParseError("Nothing to salvage from an empty response.")

    match = _NUMBER_RE.search(text)
    if match:
        days = float(match.group())
        if days > MAX_PLAUSIBLE_DAYS:
            raise ResponseParseError(f"Implausible day count in response: {match.group()}")
        total_hours = days * 24
    else:
        total_hours = SALVAGE_DEFAULT_HOURS

    reasoning = DEFAULT_REASONING
    for pattern in _REASONING_RES:
        found = pattern.search(text)
        if found and found.group(1).strip():
            reasoning = found.group(1).strip()
            break

    recommendations = [line.strip() for line in _BULLET_RE.findall(text) if line.strip()]
    if not recommendations:
        recommendations = list(SALVAGE_DEFAULT_RECOMMENDATIONS)

    logger.info("[PARSE] Salvaged %.1fh and %d recommendation(s) from malformed response.", total_hours, len(recommendations))
    return SalvagedPrediction(prediction=total_hours / 24, confidence=SALVAGED_CONFIDENCE, reasoning=reasoning, recommendations=recommendations, detailed_prediction=DetailedPrediction.from_total_hours(total_hours))
