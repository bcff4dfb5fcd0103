"""
Petalwise - Rule-based Estimator
=================================
Deterministic last-resort prediction.  No I/O, no model, no
retrieval: the result depends only on the batch attributes.

    prediction = max(0, shelf_life_days + condition + storage + floral_food)

Labels are compared after ``canonical_label`` so ``"Room Temperature"``,
``"room_temperature"`` and ``"RoomTemp"`` all hit the same rule.
"""

from __future__ import annotations

from petalwise.config.prompt_templates import FALLBACK_REASONING_TEMPLATE, FALLBACK_RECOMMENDATIONS, NOT_SPECIFIED
from petalwise.config.settings import settings
from petalwise.src.models.prediction import BatchQuery, DetailedPrediction, RuleBasedPrediction
from petalwise.src.utils.text_utils import canonical_label

RULE_BASED_CONFIDENCE: float = 0.6
FLORAL_FOOD_BONUS: float = 0.5

CONDITION_ADJUSTMENTS: dict[str, float] = {"excellent": 1.0, "good": 0.5, "fair": -0.5, "poor": -1.0}

STORAGE_ADJUSTMENTS: dict[str, float] = {"refrigerated": 1.0, "roomtemperature": -0.5, "roomtemp": -0.5}


def condition_adjustment(initial_condition: str | None) -> float:
    return CONDITION_ADJUSTMENTS.get(canonical_label(initial_condition), 0.0)


def storage_adjustment(storage_environment: str | None) -> float:
    return STORAGE_ADJUSTMENTS.get(canonical_label(storage_environment), 0.0)


def estimate(batch: BatchQuery) -> RuleBasedPrediction:
    """Return the heuristic prediction for *batch* (confidence 0.6, never negative)."""
    base_days = batch.shelf_life_days()
    if base_days is None:
        base_days = settings.DEFAULT_SHELF_LIFE_DAYS

    adjustment = condition_adjustment(batch.initial_condition) + storage_adjustment(batch.storage_environment)
    if batch.floral_food_used:
        adjustment += FLORAL_FOOD_BONUS

    prediction = max(0.0, base_days + adjustment)
    reasoning = FALLBACK_REASONING_TEMPLATE.format(base_days=base_days, condition=batch.initial_condition or NOT_SPECIFIED, storage=batch.storage_environment or NOT_SPECIFIED, floral_food="Yes" if batch.floral_food_used else "No")

    return RuleBasedPrediction(prediction=prediction, confidence=RULE_BASED_CONFIDENCE, reasoning=reasoning, recommendations=list(FALLBACK_RECOMMENDATIONS), detailed_prediction=DetailedPrediction.from_days(prediction))
