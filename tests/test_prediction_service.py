"""Tests for PredictionService cache policy and batch mapping."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import FakeBatchStore, FakeCompletionClient

from petalwise.src.core.errors import BatchNotFoundError, BatchValidationError
from petalwise.src.core.orchestrator import PredictionOrchestrator
from petalwise.src.core.prediction_service import PredictionService, batch_query_from_record
from petalwise.src.core.retriever import ContextRetriever
from petalwise.src.models.prediction import CachedPrediction, DetailedPrediction, PredictionResult

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
REPLY = '{"prediction":{"totalHours":96},"confidence":0.9,"reasoning":"fresh","recommendations":["Keep cold"]}'


def _record(created_at=NOW - timedelta(days=1), **overrides):
    record = {"_id": "b1", "flower_type": "Rose", "variety": "Red Naomi", "storage_environment": "Refrigerated", "initial_condition": "Good", "floral_food_used": True, "expected_shelf_life": 7, "created_at": created_at}
    record.update(overrides)
    return record


def _cached(age):
    result = PredictionResult(tier="parsed", prediction=1.0, confidence=0.5, reasoning="cached", detailed_prediction=DetailedPrediction.from_days(1.0), generated_at=NOW - age)
    return CachedPrediction(result=result, last_updated=NOW - age)


def _service(store, batches, completion=None):
    completion = completion or FakeCompletionClient(reply=REPLY)
    orchestrator = PredictionOrchestrator(ContextRetriever(store, None), completion)
    return PredictionService(orchestrator, batches, cache_ttl_s=3600, new_batch_window_s=300), completion


def test_record_mapping():
    query = batch_query_from_record(_record(unit_of_measure=None))

    assert query.batch_id == "b1"
    assert query.flower_type == "Rose"
    assert query.floral_food_used is True
    assert query.unit_of_measure is None


@pytest.mark.parametrize("record", [{"_id": "b2"}, {"_id": "b3", "flower_type": "  "}, {"_id": "b4", "flower_type": "Rose", "expected_shelf_life": "a week"}, {"_id": "b5", "flower_type": "Rose", "expected_shelf_life": float("inf")}, {"_id": "b6", "flower_type": "Rose", "quantity": float("nan")}])
def test_record_mapping_rejects_unusable_batches(record):
    with pytest.raises(BatchValidationError):
        batch_query_from_record(record)


@pytest.mark.asyncio
async def test_fresh_cache_is_served_without_model_call(store):
    batches = FakeBatchStore({"b1": _record()})
    batches.cached["b1"] = _cached(timedelta(minutes=10))
    service, completion = _service(store, batches)

    result = await service.get_prediction("b1", now=NOW)

    assert result.reasoning == "cached"
    assert completion.calls == []
    assert batches.saved == []


@pytest.mark.asyncio
async def test_stale_cache_is_recomputed_and_saved(store):
    batches = FakeBatchStore({"b1": _record()})
    batches.cached["b1"] = _cached(timedelta(hours=2))
    service, completion = _service(store, batches)

    result = await service.get_prediction("b1", now=NOW)

    assert result.reasoning == "fresh"
    assert result.prediction == pytest.approx(4.0)
    assert len(completion.calls) == 1
    assert batches.saved[0][0] == "b1"


@pytest.mark.asyncio
async def test_zero_ttl_never_serves_the_cache(store):
    batches = FakeBatchStore({"b1": _record()})
    batches.cached["b1"] = _cached(timedelta(seconds=1))
    completion = FakeCompletionClient(reply=REPLY)
    orchestrator = PredictionOrchestrator(ContextRetriever(store, None), completion)
    service = PredictionService(orchestrator, batches, cache_ttl_s=0, new_batch_window_s=300)

    result = await service.get_prediction("b1", now=NOW)

    assert result.reasoning == "fresh"
    assert len(completion.calls) == 1


@pytest.mark.asyncio
async def test_force_refresh_bypasses_fresh_cache(store):
    batches = FakeBatchStore({"b1": _record()})
    batches.cached["b1"] = _cached(timedelta(minutes=1))
    service, completion = _service(store, batches)

    result = await service.get_prediction("b1", force_refresh=True, now=NOW)

    assert result.reasoning == "fresh"
    assert len(completion.calls) == 1


@pytest.mark.asyncio
async def test_new_batch_is_always_recomputed(store):
    batches = FakeBatchStore({"b1": _record(created_at=NOW - timedelta(minutes=2))})
    batches.cached["b1"] = _cached(timedelta(minutes=1))
    service, completion = _service(store, batches)

    result = await service.get_prediction("b1", now=NOW)

    assert result.reasoning == "fresh"


@pytest.mark.asyncio
async def test_missing_batch_raises(store):
    service, _ = _service(store, FakeBatchStore())
    with pytest.raises(BatchNotFoundError):
        await service.get_prediction("nope", now=NOW)


@pytest.mark.asyncio
async def test_save_failure_still_returns_result(store):
    batches = FakeBatchStore({"b1": _record()}, save_error=ConnectionError("mongo down"))
    service, _ = _service(store, batches)

    result = await service.get_prediction("b1", now=NOW)

    assert result.reasoning == "fresh"
    assert batches.saved == []
