"""
Petalwise - PredictionService
==============================
Caller-facing entry point: predict for a stored batch, serving a
cached result when it is still fresh.

Cache policy:
    • A forced refresh always recomputes.
    • A batch created within ``NEW_BATCH_WINDOW_S`` always recomputes.
    • Otherwise a cached prediction younger than
      ``PREDICTION_CACHE_TTL_S`` is returned as-is.

Persisting a fresh result is best-effort: a write failure is logged
and the result is still returned.

Usage:
    from petalwise.src.core.prediction_service import PredictionService
    service = PredictionService(orchestrator, batch_store)
    result  = await service.get_prediction("batch-123", force_refresh=True)
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from petalwise.config.settings import settings
from petalwise.src.core.errors import BatchNotFoundError, BatchValidationError
from petalwise.src.core.orchestrator import PredictionOrchestrator
from petalwise.src.database.batch_store import BatchStore
from petalwise.src.models.prediction import BatchQuery, PredictionResult
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)

_QUERY_FIELDS: tuple[str, ...] = ("flower_type", "variety", "storage_environment", "initial_condition", "expected_shelf_life", "shelf_life_unit", "quantity", "unit_of_measure", "supplier", "vase_cleanliness", "water_type", "humidity_level", "dynamic_spoilage_date", "created_at")


def batch_query_from_record(record: Mapping[str, Any]) -> BatchQuery:
    """
    Map a stored batch document to a ``BatchQuery``.

    Raises
    ------
    BatchValidationError
        If the document lacks a usable ``flower_type`` or carries
        values of the wrong type.
    """
    payload: dict[str, Any] = {name: record[name] for name in _QUERY_FIELDS if record.get(name) is not None}
    payload["floral_food_used"] = bool(record.get("floral_food_used"))
    batch_id = record.get("_id", record.get("id"))
    if batch_id is not None:
        payload["batch_id"] = str(batch_id)

    if not str(payload.get("flower_type") or "").strip():
        raise BatchValidationError(f"Batch '{batch_id}' has no flower_type.")
    try:
        return BatchQuery(**payload)
    except ValidationError as exc:
        raise BatchValidationError(f"Batch '{batch_id}' is malformed: {exc}") from exc


class PredictionService:
    """
    Cache-aware prediction for stored batches.

    Parameters
    ----------
    orchestrator
        ``PredictionOrchestrator`` (injected).
    batch_store
        Any ``BatchStore`` implementation (injected).
    cache_ttl_s, new_batch_window_s
        Override the cache settings.
    """

    __slots__ = ("_orchestrator", "_batches", "_ttl", "_new_window")

    def __init__(self, orchestrator: PredictionOrchestrator, batch_store: BatchStore, cache_ttl_s: int | None = None, new_batch_window_s: int | None = None) -> None:
        self._orchestrator = orchestrator
        self._batches = batch_store
        self._ttl = timedelta(seconds=settings.PREDICTION_CACHE_TTL_S if cache_ttl_s is None else cache_ttl_s)
        self._new_window = timedelta(seconds=settings.NEW_BATCH_WINDOW_S if new_batch_window_s is None else new_batch_window_s)


    async def get_prediction(self, batch_id: str, force_refresh: bool = False, now: datetime | None = None) -> PredictionResult:
        """
        Return a prediction for *batch_id*, cached or fresh.

        Raises
        ------
        BatchNotFoundError
            If no batch record exists.
        BatchValidationError
            If the record cannot be turned into a valid ``BatchQuery``.
        """
        now = now or datetime.now(timezone.utc)
        record = await self._batches.get_batch(batch_id)
        if record is None:
            raise BatchNotFoundError(batch_id)

        query = batch_query_from_record(record)
        is_new = self._is_new_batch(query, now)

        if not force_refresh and not is_new:
            cached = await self._load_cached(batch_id)
            if cached is not None and now - cached.last_updated < self._ttl:
                logger.info("[CACHE] Serving cached prediction for '%s' (age=%.0fs).", batch_id, (now - cached.last_updated).total_seconds())
                return cached.result

        logger.info("[CACHE] Generating fresh prediction for '%s' (new=%s, force_refresh=%s).", batch_id, is_new, force_refresh)
        result = await self._orchestrator.predict(query, now=now)

        try:
            await self._batches.save_prediction(batch_id, result)
        except Exception:
            logger.exception("[CACHE] Failed to persist prediction for '%s' — returning it uncached.", batch_id)
        return result


    def _is_new_batch(self, query: BatchQuery, now: datetime) -> bool:
        created_at = query.created_at
        if created_at is None:
            return False
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return now - created_at < self._new_window


    async def _load_cached(self, batch_id: str):
        try:
            return await self._batches.load_cached_prediction(batch_id)
        except Exception:
            logger.exception("[CACHE] Could not read cached prediction for '%s'.", batch_id)
            return None


    def __repr__(self) -> str:
        return f"PredictionService(ttl={self._ttl.total_seconds():.0f}s, new_window={self._new_window.total_seconds():.0f}s)"
