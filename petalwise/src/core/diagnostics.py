"""
Petalwise - RAG Diagnostics
============================
Health checks for the knowledge base and prediction pipeline.

Each check reports ``success`` / ``warning`` / ``error`` and never
raises, so a broken dependency shows up as a row in the report
instead of aborting the run.

Checks (in order):
    1. Knowledge Table       — store reachable, row count
    2. Knowledge Base        — populated? (stats)
    3. Embedding Service     — one live embedding call
    4. RAG Retrieval         — Rose / Red Naomi retrieves attributed context
    5. Enhanced Prediction   — end-to-end prediction carries sources
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Literal

from pydantic import BaseModel

from petalwise.src.core.embedding_client import EmbeddingClient
from petalwise.src.core.knowledge_manager import KnowledgeManager
from petalwise.src.core.orchestrator import PredictionOrchestrator
from petalwise.src.core.retriever import ContextRetriever
from petalwise.src.database.knowledge_store import KnowledgeStore
from petalwise.src.models.prediction import BatchQuery
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)

Status = Literal["success", "warning", "error"]

PROBE_BATCH = BatchQuery(flower_type="Rose", variety="Red Naomi", storage_environment="Refrigerated", initial_condition="Excellent", floral_food_used=True)


class DiagnosticResult(BaseModel):
    name: str
    status: Status
    message: str
    details: str = ""


class RAGDiagnostics:
    """
    Run all health checks against an assembled object graph.

    Parameters
    ----------
    store, manager, embedding_client, retriever, orchestrator
        The components under test (injected).
    """

    __slots__ = ("_store", "_manager", "_embedding", "_retriever", "_orchestrator")

    def __init__(self, store: KnowledgeStore, manager: KnowledgeManager, embedding_client: EmbeddingClient, retriever: ContextRetriever, orchestrator: PredictionOrchestrator) -> None:
        self._store = store
        self._manager = manager
        self._embedding = embedding_client
        self._retriever = retriever
        self._orchestrator = orchestrator


    async def run(self) -> list[DiagnosticResult]:
        checks: list[tuple[str, Callable[[], Awaitable[DiagnosticResult]]]] = [
            ("Knowledge Table", self._check_table),
            ("Knowledge Base", self._check_knowledge_base),
            ("Embedding Service", self._check_embedding),
            ("RAG Retrieval", self._check_retrieval),
            ("Enhanced Prediction", self._check_prediction),
        ]

        results: list[DiagnosticResult] = []
        for name, check in checks:
            t0 = time.perf_counter()
            try:
                result = await check()
            except Exception as exc:
                logger.exception("[DIAG] %s check failed.", name)
                result = DiagnosticResult(name=name, status="error", message=f"{name} check failed", details=str(exc))
            logger.info("[DIAG] %-20s %-8s %s (%.1fms)", name, result.status, result.message, (time.perf_counter() - t0) * 1000)
            results.append(result)
        return results

    # ── Individual checks ─────────────────────────────────────────────

    async def _check_table(self) -> DiagnosticResult:
        rows = self._store.count()
        return DiagnosticResult(name="Knowledge Table", status="success", message="Knowledge table is reachable", details=f"{rows} row(s)")


    async def _check_knowledge_base(self) -> DiagnosticResult:
        stats = self._manager.stats()
        if stats.total_entries == 0:
            return DiagnosticResult(name="Knowledge Base", status="warning", message="Knowledge base is empty", details="Run setup_db to seed it")
        return DiagnosticResult(name="Knowledge Base", status="success", message=f"{stats.total_entries} flower entries found", details=f"Types: {', '.join(stats.flower_types)}")


    async def _check_embedding(self) -> DiagnosticResult:
        vector = await self._embedding.embed("rose care requirements")
        return DiagnosticResult(name="Embedding Service", status="success", message="Embedding service is working", details=f"{len(vector)} dimensions")


    async def _check_retrieval(self) -> DiagnosticResult:
        result = await self._retriever.retrieve(PROBE_BATCH)
        if not result.contexts:
            return DiagnosticResult(name="RAG Retrieval", status="warning", message="No relevant knowledge found", details=f"strategy={result.strategy}")
        return DiagnosticResult(name="RAG Retrieval", status="success", message="Successfully retrieved flower knowledge", details=f"{len(result.contexts)} context(s), {len(result.sources)} source(s) via {result.strategy}")


    async def _check_prediction(self) -> DiagnosticResult:
        result = await self._orchestrator.predict(PROBE_BATCH)
        details = f"{len(result.sources)} source(s), {result.confidence * 100:.1f}% confidence, tier={result.tier}"
        if result.sources:
            return DiagnosticResult(name="Enhanced Prediction", status="success", message="Enhanced prediction working", details=details)
        return DiagnosticResult(name="Enhanced Prediction", status="warning", message="Prediction working without sources", details=details)


def summarize(results: list[DiagnosticResult]) -> dict[str, int]:
    """Count results per status."""
    counts = {"success": 0, "warning": 0, "error": 0}
    for result in results:
        counts[result.status] += 1
    return counts
