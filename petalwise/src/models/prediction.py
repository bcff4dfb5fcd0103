"""
Petalwise - Prediction Models
==============================
Input and output shapes of the prediction pipeline.

The three fallback tiers are an explicit tagged union keyed on
``tier``; each one normalises to the single ``PredictionResult``
shape through ``to_result``:

    ============  ==============================  ==========
    tier          produced by                     confidence
    ============  ==============================  ==========
    parsed        strict JSON parse               model / 0.8
    salvaged      regex salvage of malformed text 0.7
    rule_based    deterministic estimator         0.6
    ============  ==============================  ==========
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from petalwise.src.models.knowledge import RetrievedContext, Source

Tier = Literal["parsed", "salvaged", "rule_based"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════
#  INPUT
# ══════════════════════════════════════════════════════════════════════


class BatchQuery(BaseModel):
    """
    A flower batch as seen by retrieval, prompting and the rule-based
    estimator.  Only ``flower_type`` is required.
    """

    flower_type: str
    variety: str | None = None
    storage_environment: str | None = None
    initial_condition: str | None = None
    floral_food_used: bool = False

    batch_id: str | None = None
    expected_shelf_life: float | None = Field(default=None, allow_inf_nan=False)
    shelf_life_unit: str = "Days"
    quantity: float | None = Field(default=None, allow_inf_nan=False)
    unit_of_measure: str | None = None
    supplier: str | None = None
    vase_cleanliness: str | None = None
    water_type: str | None = None
    humidity_level: str | None = None
    dynamic_spoilage_date: str | None = None
    created_at: datetime | None = None

    def shelf_life_days(self) -> float | None:
        """Expected shelf life converted to days (``Weeks`` × 7)."""
        if self.expected_shelf_life is None:
            return None
        if self.shelf_life_unit.strip().casefold().startswith("week"):
            return self.expected_shelf_life * 7
        return self.expected_shelf_life


# ══════════════════════════════════════════════════════════════════════
#  BUILDING BLOCKS
# ══════════════════════════════════════════════════════════════════════


class DetailedPrediction(BaseModel):
    """Display breakdown; ``total_hours`` is authoritative."""

    days: int
    hours: int
    minutes: int
    total_hours: float

    @classmethod
    def from_total_hours(cls, total_hours: float) -> DetailedPrediction:
        total_hours = max(total_hours, 0.0)
        return cls(days=math.floor(total_hours / 24), hours=math.floor(total_hours % 24), minutes=math.floor((total_hours % 1) * 60), total_hours=total_hours)

    @classmethod
    def from_days(cls, days: float) -> DetailedPrediction:
        return cls.from_total_hours(days * 24)


class FinancialRecommendation(BaseModel):
    """A structured pricing / discount action suggested by the model."""

    title: str
    type: str = "discount"
    urgency: Literal["low", "medium", "high", "critical"] = "medium"
    time_window: str = ""
    discount_percentage: float | None = Field(default=None, ge=0, le=100)
    suggested_price: float | None = Field(default=None, ge=0)
    description: str = ""
    justification: str = ""
    action_items: list[str] = Field(default_factory=list)


class _TierPrediction(BaseModel):
    prediction: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    recommendations: list[str] = Field(default_factory=list)
    financial_recommendations: list[FinancialRecommendation] = Field(default_factory=list)
    detailed_prediction: DetailedPrediction

    def to_result(self, sources: list[Source] | None = None, rag_context: RetrievedContext | None = None) -> PredictionResult:
        """Normalise any tier to the single caller-visible result shape."""
        return PredictionResult(tier=self.tier, prediction=self.prediction, confidence=self.confidence, reasoning=self.reasoning, recommendations=list(self.recommendations), financial_recommendations=list(self.financial_recommendations), detailed_prediction=self.detailed_prediction, sources=list(sources or []), rag_context=rag_context)  # type: ignore[attr-defined]


class ParsedPrediction(_TierPrediction):
    tier: Literal["parsed"] = "parsed"


class SalvagedPrediction(_TierPrediction):
    tier: Literal["salvaged"] = "salvaged"


class RuleBasedPrediction(_TierPrediction):
    tier: Literal["rule_based"] = "rule_based"

    def to_result(self, sources: list[Source] | None = None, rag_context: RetrievedContext | None = None) -> PredictionResult:
        # Heuristic output is never attributed to retrieved knowledge.
        return super().to_result(sources=None, rag_context=None)


TierPrediction = Annotated[Union[ParsedPrediction, SalvagedPrediction, RuleBasedPrediction], Field(discriminator="tier")]


# ══════════════════════════════════════════════════════════════════════
#  OUTPUT
# ══════════════════════════════════════════════════════════════════════


class PredictionResult(BaseModel):
    """Caller-visible prediction; always well-formed whatever tier produced it."""

    tier: Tier
    prediction: float = Field(ge=0.0)
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    recommendations: list[str] = Field(default_factory=list)
    financial_recommendations: list[FinancialRecommendation] = Field(default_factory=list)
    detailed_prediction: DetailedPrediction | None = None
    sources: list[Source] = Field(default_factory=list)
    rag_context: RetrievedContext | None = None
    generated_at: datetime = Field(default_factory=_utc_now)


class CachedPrediction(BaseModel):
    """A prediction read back from the batch record, with its timestamp."""

    result: PredictionResult
    last_updated: datetime
