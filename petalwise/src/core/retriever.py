"""
Petalwise - ContextRetriever
=============================
Best-effort retrieval of flower care knowledge for one batch.

Flow:
    1. Embed a synthesised query and run a cosine vector search.
    2. Map hits to ``RetrievedContext``, keeping attributed entries
       that textually relate to the query.
    3. No vector context left (nothing above threshold, everything
       filtered, or embedding unavailable) → layered text search,
       filtered the same way.
    4. De-duplicate sources by (name, url), first seen wins.
    5. Render the prompt block.

``retrieve`` never raises: an unexpected failure degrades to an empty
``RetrievalResult`` with ``strategy="none"``.

Usage:
    from petalwise.src.core.retriever import ContextRetriever
    retriever = ContextRetriever(store, embedding_client)
    result    = await retriever.retrieve(BatchQuery(flower_type="Rose", variety="Red Naomi"))
"""

from __future__ import annotations

import time

from petalwise.config.prompt_templates import RETRIEVAL_QUERY_TEMPLATE
from petalwise.config.settings import settings
from petalwise.src.core.embedding_client import EmbeddingClient
from petalwise.src.core.errors import EmbeddingServiceError
from petalwise.src.core.prompt_builder import format_context_block
from petalwise.src.database.knowledge_store import KnowledgeStore, ScoredEntry
from petalwise.src.models.knowledge import KnowledgeEntry, RetrievalResult, RetrievedContext, Source
from petalwise.src.models.prediction import BatchQuery
from petalwise.src.utils.logger import get_logger
from petalwise.src.utils.text_utils import clean_text, text_relates

logger = get_logger(__name__)


def retrieval_query_text(query: BatchQuery) -> str:
    """The synthesised text embedded for vector search."""
    return clean_text(RETRIEVAL_QUERY_TEMPLATE.format(flower_type=query.flower_type, variety=query.variety or ""))


def _relates_to_query(entry: KnowledgeEntry, query: BatchQuery) -> bool:
    if text_relates(entry.flower_type, query.flower_type):
        return True
    return bool(query.variety) and text_relates(entry.variety, query.variety)


def _usable_contexts(scored: list[ScoredEntry], query: BatchQuery) -> list[RetrievedContext]:
    contexts = [RetrievedContext.from_entry(entry, score) for entry, score in scored if entry.has_attribution and _relates_to_query(entry, query)]
    if len(contexts) < len(scored):
        logger.debug("[RAG] Dropped %d unattributed or unrelated candidate(s).", len(scored) - len(contexts))
    return contexts


def _dedupe_sources(contexts: list[RetrievedContext]) -> list[Source]:
    unique: dict[Source, None] = {}
    for ctx in contexts:
        for source in ctx.sources:
            unique.setdefault(source, None)
    return list(unique)


class ContextRetriever:
    """
    Vector-first, text-fallback knowledge retrieval.

    Parameters
    ----------
    store
        Any ``KnowledgeStore`` implementation (injected).
    embedding_client
        Optional ``EmbeddingClient``.  When ``None`` the retriever goes
        straight to text search.
    threshold
        Minimum cosine similarity.  Defaults to ``settings.SIMILARITY_THRESHOLD``.
    limit
        Maximum contexts returned.  Defaults to ``settings.RETRIEVAL_LIMIT``.
    """

    __slots__ = ("_store", "_embedding", "_threshold", "_limit")

    def __init__(self, store: KnowledgeStore, embedding_client: EmbeddingClient | None = None, threshold: float | None = None, limit: int | None = None) -> None:
        self._store = store
        self._embedding = embedding_client
        self._threshold = settings.SIMILARITY_THRESHOLD if threshold is None else threshold
        self._limit = limit or settings.RETRIEVAL_LIMIT


    async def retrieve(self, query: BatchQuery) -> RetrievalResult:
        """Return ranked contexts, unique sources and the prompt block for *query*."""
        t_start = time.perf_counter()
        try:
            result = await self._retrieve(query)
        except Exception:
            logger.exception("[RAG] Retrieval failed for '%s' — continuing without context.", query.flower_type)
            return RetrievalResult.empty()

        logger.info("[RAG] Retrieved %d context(s), %d source(s) via %s in %.1fms", len(result.contexts), len(result.sources), result.strategy, (time.perf_counter() - t_start) * 1000)
        return result


    async def _retrieve(self, query: BatchQuery) -> RetrievalResult:
        strategy = "none"
        scored = await self._vector_candidates(query)
        contexts = _usable_contexts(scored, query)
        if scored:
            strategy = "vector"

        if not contexts:
            if scored:
                logger.info("[RAG] No vector hit survived filtering for '%s' — trying text search.", query.flower_type)
            text_scored = self._text_candidates(query)
            if text_scored:
                strategy = "text"
                contexts = _usable_contexts(text_scored, query)

        if not contexts:
            return RetrievalResult(strategy=strategy)

        return RetrievalResult(contexts=contexts, sources=_dedupe_sources(contexts), prompt_block=format_context_block(contexts), strategy=strategy)


    async def _vector_candidates(self, query: BatchQuery) -> list[ScoredEntry]:
        if self._embedding is None:
            return []
        try:
            vector = await self._embedding.embed(retrieval_query_text(query))
        except EmbeddingServiceError as exc:
            logger.warning("[RAG] Embedding unavailable (%s) — falling back to text search.", exc)
            return []
        return self._store.vector_search(vector, threshold=self._threshold, limit=self._limit)


    def _text_candidates(self, query: BatchQuery) -> list[ScoredEntry]:
        entries = self._store.text_search(query.flower_type, query.variety, limit=self._limit)
        return [(entry, settings.TEXT_MATCH_RELEVANCE) for entry in entries]


    def __repr__(self) -> str:
        return f"ContextRetriever(store={type(self._store).__name__}, threshold={self._threshold}, limit={self._limit})"
