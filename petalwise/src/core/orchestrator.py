"""
Petalwise - PredictionOrchestrator
===================================
Runs one spoilage prediction end to end with a three-tier
degradation path.  Each transition is an explicit branch:

    validate → retrieve → build prompt → call model
        ├── parse_strict OK          → ParsedPrediction   (+ sources, rag_context)
        ├── ResponseParseError
        │     ├── salvage OK         → SalvagedPrediction (+ sources, rag_context)
        │     └── ResponseParseError → RuleBasedPrediction
        └── ModelCallError / other   → RuleBasedPrediction (no sources)

``predict`` raises only ``BatchValidationError``, and only before any
external call is made.

Usage:
    from petalwise.src.core.orchestrator import PredictionOrchestrator
    orchestrator = PredictionOrchestrator(retriever, completion_client)
    result       = await orchestrator.predict(batch)
"""

from __future__ import annotations

import math
import time
from datetime import datetime

from petalwise.config.prompt_templates import SYSTEM_PROMPT
from petalwise.config.settings import settings
from petalwise.src.core.completion_client import CompletionClient
from petalwise.src.core.errors import BatchValidationError, ModelCallError, ResponseParseError
from petalwise.src.core.fallback_estimator import estimate
from petalwise.src.core.prompt_builder import build_prediction_prompt
from petalwise.src.core.response_parser import parse_strict, salvage
from petalwise.src.core.retriever import ContextRetriever
from petalwise.src.models.knowledge import RetrievalResult
from petalwise.src.models.prediction import BatchQuery, PredictionResult, TierPrediction
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)


def validate_batch(batch: BatchQuery) -> None:
    """Fail fast on input no tier can predict for."""
    if not batch.flower_type or not batch.flower_type.strip():
        raise BatchValidationError("flower_type must not be empty.")
    for name in ("expected_shelf_life", "quantity"):
        value = getattr(batch, name)
        if value is not None and not math.isfinite(value):
            raise BatchValidationError(f"{name} must be a finite number, got {value}.")


class PredictionOrchestrator:
    """
    Retrieval-augmented spoilage prediction.

    Parameters
    ----------
    retriever
        ``ContextRetriever`` (injected).
    completion_client
        Any ``CompletionClient`` (injected).
    temperature, max_tokens
        Sampling settings.  Default to ``settings.LLM_TEMPERATURE`` /
        ``settings.LLM_MAX_TOKENS``.
    """

    __slots__ = ("_retriever", "_completion", "_temperature", "_max_tokens")

    def __init__(self, retriever: ContextRetriever, completion_client: CompletionClient, temperature: float | None = None, max_tokens: int | None = None) -> None:
        self._retriever = retriever
        self._completion = completion_client
        self._temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self._max_tokens = max_tokens or settings.LLM_MAX_TOKENS


    async def predict(self, batch: BatchQuery, now: datetime | None = None) -> PredictionResult:
        """
        Predict remaining lifespan for *batch*.

        Raises
        ------
        BatchValidationError
            If ``flower_type`` is empty or a numeric field is not finite.
            Nothing else escapes.
        """
        validate_batch(batch)
        t_start = time.perf_counter()

        try:
            retrieval = await self._retriever.retrieve(batch)
            tier = await self._generate(batch, retrieval, now)
        except ModelCallError as exc:
            logger.warning("[PREDICT] Model unavailable (%s) — using rule-based estimate.", exc)
            return self._rule_based(batch, t_start)
        except Exception:
            logger.exception("[PREDICT] Unexpected failure — using rule-based estimate.")
            return self._rule_based(batch, t_start)

        result = tier.to_result(sources=retrieval.sources, rag_context=retrieval.best_context())
        logger.info("[PREDICT] %s: %.2f days (tier=%s, confidence=%.2f, sources=%d) in %.1fms", batch.flower_type, result.prediction, result.tier, result.confidence, len(result.sources), (time.perf_counter() - t_start) * 1000)
        return result


    async def _generate(self, batch: BatchQuery, retrieval: RetrievalResult, now: datetime | None) -> TierPrediction:
        prompt = build_prediction_prompt(batch, retrieval.contexts, now=now)
        reply = await self._completion.complete(SYSTEM_PROMPT, prompt, temperature=self._temperature, max_tokens=self._max_tokens)

        try:
            return parse_strict(reply)
        except ResponseParseError as exc:
            logger.warning("[PARSE] Strict parse failed (%s) — attempting salvage.", exc)

        try:
            return salvage(reply)
        except ResponseParseError as exc:
            logger.warning("[PARSE] Salvage failed (%s) — using rule-based estimate.", exc)
        return estimate(batch)


    @staticmethod
    def _rule_based(batch: BatchQuery, t_start: float) -> PredictionResult:
        result = estimate(batch).to_result()
        logger.info("[PREDICT] %s: %.2f days (tier=rule_based) in %.1fms", batch.flower_type, result.prediction, (time.perf_counter() - t_start) * 1000)
        return result


    def __repr__(self) -> str:
        return f"PredictionOrchestrator(completion={type(self._completion).__name__}, temperature={self._temperature}, max_tokens={self._max_tokens})"
