"""
Petalwise - Bootstrap
======================
Builds the default object graph from ``settings``.

Nothing in the core reaches for a global service instance; this is
the one place where concrete collaborators are chosen.  Every argument
can be overridden, which is how scripts and tests swap in fakes.

Usage:
    from petalwise.src.core.bootstrap import build_services
    services = build_services()
    result   = await services.prediction_service.get_prediction("batch-123")
"""

from __future__ import annotations

from petalwise.src.core.completion_client import CompletionClient, GeminiCompletionClient
from petalwise.src.core.diagnostics import RAGDiagnostics
from petalwise.src.core.embedding_client import Embedder, EmbeddingClient, build_default_embedder
from petalwise.src.core.knowledge_loader import KnowledgeLoader
from petalwise.src.core.knowledge_manager import KnowledgeManager
from petalwise.src.core.orchestrator import PredictionOrchestrator
from petalwise.src.core.prediction_service import PredictionService
from petalwise.src.core.retriever import ContextRetriever
from petalwise.src.database.batch_store import BatchStore, MongoBatchStore
from petalwise.src.database.knowledge_store import KnowledgeStore, LanceKnowledgeStore
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)


class PetalwiseServices:
    """Fully wired components, ready to use."""

    __slots__ = ("store", "embedding_client", "manager", "loader", "retriever", "orchestrator", "batch_store", "prediction_service", "diagnostics")

    def __init__(self, store: KnowledgeStore, embedding_client: EmbeddingClient, completion_client: CompletionClient, batch_store: BatchStore) -> None:
        self.store = store
        self.embedding_client = embedding_client
        self.manager = KnowledgeManager(store, embedding_client)
        self.loader = KnowledgeLoader(self.manager)
        self.retriever = ContextRetriever(store, embedding_client)
        self.orchestrator = PredictionOrchestrator(self.retriever, completion_client)
        self.batch_store = batch_store
        self.prediction_service = PredictionService(self.orchestrator, batch_store)
        self.diagnostics = RAGDiagnostics(store, self.manager, embedding_client, self.retriever, self.orchestrator)


    def __repr__(self) -> str:
        return f"PetalwiseServices(store={self.store!r}, batch_store={self.batch_store!r})"


def build_services(store: KnowledgeStore | None = None, embedder: Embedder | None = None, completion_client: CompletionClient | None = None, batch_store: BatchStore | None = None) -> PetalwiseServices:
    """Wire the default Gemini / LanceDB / MongoDB stack, honouring overrides."""
    services = PetalwiseServices(
        store=store or LanceKnowledgeStore(),
        embedding_client=EmbeddingClient(embedder or build_default_embedder()),
        completion_client=completion_client or GeminiCompletionClient(),
        batch_store=batch_store or MongoBatchStore(),
    )
    logger.info("Petalwise services ready: %r", services)
    return services
