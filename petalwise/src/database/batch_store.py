"""
Petalwise - MongoBatchStore
============================
Async access to flower batch records via ``motor``.

Only two concerns live here: reading a batch document and caching a
``PredictionResult`` on it so a view does not recompute on every load.

Batch document (``flower_batches``)::

    {
        "_id": str,                         # batch id
        "flower_type": str, "variety": str, ...,
        "created_at": datetime,
        "ai_prediction": float,
        "ai_confidence": float,
        "ai_reasoning": str,
        "ai_recommendations": [str],
        "ai_financial_recommendations": [dict],
        "ai_last_updated": datetime,
        "ai_detailed_prediction": str       # JSON: ragContext, sources, detailedPrediction, tier
    }

Lambda readiness: the client is a **module-level singleton**, so it
survives warm invocations.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import motor.motor_asyncio
from pydantic import ValidationError

from petalwise.config.settings import settings
from petalwise.src.models.knowledge import RetrievedContext, Source
from petalwise.src.models.prediction import CachedPrediction, DetailedPrediction, FinancialRecommendation, PredictionResult
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)

BatchRecord = dict[str, Any]

_CACHE_PROJECTION: dict[str, int] = {"ai_prediction": 1, "ai_confidence": 1, "ai_reasoning": 1, "ai_recommendations": 1, "ai_financial_recommendations": 1, "ai_last_updated": 1, "ai_detailed_prediction": 1}


# ══════════════════════════════════════════════════════════════════════
#  SHARED MOTOR CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def _get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Lazily build the process-wide ``AsyncIOMotorClient`` from ``settings.MONGO_URI``."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value(), tz_aware=True)
        logger.info("[CACHE] MongoDB async client created (singleton).")
    return _mongo_client


def _as_utc(value: Any) -> datetime | None:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ══════════════════════════════════════════════════════════════════════
#  ENCODING
# ══════════════════════════════════════════════════════════════════════


def encode_prediction(result: PredictionResult, now: datetime | None = None) -> BatchRecord:
    """Map a ``PredictionResult`` to the ``ai_*`` fields of a batch document."""
    blob = {
        "tier": result.tier,
        "ragContext": result.rag_context.model_dump(mode="json") if result.rag_context else None,
        "sources": [source.model_dump(mode="json") for source in result.sources],
        "detailedPrediction": result.detailed_prediction.model_dump(mode="json") if result.detailed_prediction else None,
    }
    return {
        "ai_prediction": result.prediction,
        "ai_confidence": result.confidence,
        "ai_reasoning": result.reasoning,
        "ai_recommendations": list(result.recommendations),
        "ai_financial_recommendations": [rec.model_dump(mode="json") for rec in result.financial_recommendations],
        "ai_last_updated": now or datetime.now(timezone.utc),
        "ai_detailed_prediction": json.dumps(blob),
    }


def decode_prediction(doc: BatchRecord) -> CachedPrediction | None:
    """
    Rebuild a cached prediction from a batch document.

    Returns ``None`` when no prediction has been stored.  A corrupt
    JSON blob degrades to no sources / no context rather than failing.
    """
    last_updated = _as_utc(doc.get("ai_last_updated"))
    if doc.get("ai_prediction") is None or last_updated is None:
        return None

    try:
        blob = json.loads(doc.get("ai_detailed_prediction") or "{}")
    except (TypeError, json.JSONDecodeError):
        logger.warning("[CACHE] Corrupt ai_detailed_prediction blob — ignoring stored context.")
        blob = {}
    if not isinstance(blob, dict):
        blob = {}

    rag_context = None
    if blob.get("ragContext"):
        try:
            rag_context = RetrievedContext(**blob["ragContext"])
        except (TypeError, ValidationError):
            logger.warning("[CACHE] Stored ragContext is invalid — dropping it.")

    sources: list[Source] = []
    for raw in blob.get("sources") or []:
        try:
            sources.append(Source(**raw))
        except (TypeError, ValidationError):
            continue

    detailed = None
    if blob.get("detailedPrediction"):
        try:
            detailed = DetailedPrediction(**blob["detailedPrediction"])
        except (TypeError, ValidationError):
            detailed = None
    if detailed is None:
        detailed = DetailedPrediction.from_days(float(doc["ai_prediction"]))

    financial: list[FinancialRecommendation] = []
    for raw in doc.get("ai_financial_recommendations") or []:
        try:
            financial.append(FinancialRecommendation(**raw))
        except (TypeError, ValidationError):
            continue

    tier = blob.get("tier") if blob.get("tier") in ("parsed", "salvaged", "rule_based") else "parsed"
    result = PredictionResult(tier=tier, prediction=max(float(doc["ai_prediction"]), 0.0), confidence=min(max(float(doc.get("ai_confidence") or 0.0), 0.0), 1.0), reasoning=doc.get("ai_reasoning") or "", recommendations=list(doc.get("ai_recommendations") or []), financial_recommendations=financial, detailed_prediction=detailed, sources=sources, rag_context=rag_context, generated_at=last_updated)
    return CachedPrediction(result=result, last_updated=last_updated)


# ══════════════════════════════════════════════════════════════════════
#  STORE
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class BatchStore(Protocol):
    """Batch record collaborator used by the prediction service."""

    async def get_batch(self, batch_id: str) -> BatchRecord | None: ...

    async def save_prediction(self, batch_id: str, result: PredictionResult) -> None: ...

    async def load_cached_prediction(self, batch_id: str) -> CachedPrediction | None: ...


class MongoBatchStore:
    """
    ``BatchStore`` backed by a MongoDB collection.

    Parameters
    ----------
    collection
        Optional pre-built (or mocked) motor collection.  Defaults to
        ``settings.BATCH_COLLECTION`` in ``settings.MONGO_DB_NAME``.
    """

    __slots__ = ("_collection",)

    def __init__(self, collection: Any = None) -> None:
        if collection is None:
            client = _get_mongo_client()
            collection = client[settings.MONGO_DB_NAME][settings.BATCH_COLLECTION]
        self._collection = collection


    async def get_batch(self, batch_id: str) -> BatchRecord | None:
        return await self._collection.find_one({"_id": batch_id})


    async def save_prediction(self, batch_id: str, result: PredictionResult) -> None:
        """Write the ``ai_*`` fields for *batch_id* in a single update."""
        fields = encode_prediction(result)
        await self._collection.update_one({"_id": batch_id}, {"$set": fields})
        logger.info("[CACHE] Stored %s prediction for batch '%s'.", result.tier, batch_id)


    async def load_cached_prediction(self, batch_id: str) -> CachedPrediction | None:
        doc = await self._collection.find_one({"_id": batch_id}, _CACHE_PROJECTION)
        if doc is None:
            return None
        return decode_prediction(doc)


    def __repr__(self) -> str:
        return f"MongoBatchStore(collection='{getattr(self._collection, 'name', '?')}')"
