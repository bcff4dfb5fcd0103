"""Tests for the deterministic rule-based estimator."""

import pytest

from petalwise.config.prompt_templates import FALLBACK_RECOMMENDATIONS
from petalwise.src.core.fallback_estimator import condition_adjustment, estimate, storage_adjustment
from petalwise.src.models.prediction import BatchQuery


@pytest.mark.parametrize("label, expected", [("Excellent", 1.0), ("good", 0.5), ("FAIR", -0.5), ("Poor", -1.0), ("Unknown", 0.0), (None, 0.0)])
def test_condition_adjustment(label, expected):
    assert condition_adjustment(label) == expected


@pytest.mark.parametrize("label, expected", [("Refrigerated", 1.0), ("Room Temperature", -0.5), ("room_temperature", -0.5), ("RoomTemp", -0.5), ("Greenhouse", 0.0), ("", 0.0)])
def test_storage_adjustment(label, expected):
    assert storage_adjustment(label) == expected


def test_best_case_adds_every_bonus():
    result = estimate(BatchQuery(flower_type="Rose", expected_shelf_life=7, initial_condition="Excellent", storage_environment="Refrigerated", floral_food_used=True))

    assert result.tier == "rule_based"
    assert result.prediction == pytest.approx(9.5)
    assert result.confidence == pytest.approx(0.6)
    assert result.detailed_prediction.total_hours == pytest.approx(228.0)
    assert result.recommendations == list(FALLBACK_RECOMMENDATIONS)
    assert "7 days" in result.reasoning


def test_weeks_are_converted_to_days():
    result = estimate(BatchQuery(flower_type="Orchid", expected_shelf_life=2, shelf_life_unit="Weeks"))
    assert result.prediction == pytest.approx(14.0)


def test_missing_shelf_life_uses_default():
    result = estimate(BatchQuery(flower_type="Tulip", initial_condition="Poor", storage_environment="Room Temperature"))
    assert result.prediction == pytest.approx(5.5)


def test_prediction_is_never_negative():
    result = estimate(BatchQuery(flower_type="Tulip", expected_shelf_life=1, initial_condition="Poor", storage_environment="Room Temperature"))

    assert result.prediction == 0.0
    assert result.detailed_prediction.total_hours == 0.0


def test_rule_based_result_carries_no_sources():
    result = estimate(BatchQuery(flower_type="Rose", expected_shelf_life=5)).to_result(sources=None)
    assert result.sources == []
    assert result.rag_context is None
