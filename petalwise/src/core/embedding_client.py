"""
Petalwise - EmbeddingClient
============================
Turns arbitrary text into a fixed-length vector through an injected,
LangChain-compatible embedder.

Design decisions:
  • **Injected model**: any object with ``embed_query`` /
    ``embed_documents`` works, which lets tests pass a fixed-vector fake.
  • **Bounded calls**: every request runs under ``asyncio.wait_for``;
    a timeout is just another ``EmbeddingServiceError``.
  • **Per-process memoisation**: a small LRU keyed on the cleaned
    text bounds repeated cost for identical queries.

Callers on the prediction path must treat ``EmbeddingServiceError`` as
recoverable and fall back to text search.

Usage:
    from petalwise.src.core.embedding_client import EmbeddingClient, build_default_embedder
    client = EmbeddingClient(build_default_embedder())
    vector = await client.embed("Rose Red Naomi care requirements")
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Protocol, runtime_checkable

from petalwise.config.settings import settings
from petalwise.src.core.errors import EmbeddingServiceError
from petalwise.src.utils.logger import get_logger
from petalwise.src.utils.text_utils import clean_text

logger = get_logger(__name__)


# ── Embedding model shape ────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """What the client needs from an embedding model (LangChain ``Embeddings`` fits)."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...

    async def aembed_query(self, text: str) -> list[float]: ...


def build_default_embedder() -> Embedder:
    """Create the Gemini embedding model configured in ``settings``."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    return GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


class EmbeddingClient:
    """
    Async wrapper around an ``Embedder`` with timeout and LRU cache.

    Parameters
    ----------
    embedder
        Any object satisfying the ``Embedder`` protocol.
    timeout_s
        Upper bound per embedding call.  Defaults to ``settings.EMBEDDING_TIMEOUT_S``.
    cache_size
        Maximum memoised vectors.  ``0`` disables the cache.
    """

    __slots__ = ("_embedder", "_timeout_s", "_cache_size", "_cache")

    def __init__(self, embedder: Embedder, timeout_s: float | None = None, cache_size: int | None = None) -> None:
        self._embedder = embedder
        self._timeout_s = timeout_s if timeout_s is not None else settings.EMBEDDING_TIMEOUT_S
        self._cache_size = cache_size if cache_size is not None else settings.EMBEDDING_CACHE_SIZE
        self._cache: OrderedDict[str, list[float]] = OrderedDict()


    async def embed(self, text: str) -> list[float]:
        """
        Embed *text* and return its vector.

        Raises
        ------
        EmbeddingServiceError
            On empty input, timeout, any embedder failure, or an empty
            vector in the response.
        """
        key = clean_text(text or "")
        if not key:
            raise EmbeddingServiceError("Cannot embed empty text.")

        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            logger.debug("[EMBED] Cache hit (%d chars).", len(key))
            return list(cached)

        try:
            vector = await asyncio.wait_for(self._embedder.aembed_query(key), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.warning("[EMBED] Embedding call timed out after %.1fs.", self._timeout_s)
            raise EmbeddingServiceError(f"Embedding call timed out after {self._timeout_s}s") from exc
        except Exception as exc:
            logger.warning("[EMBED] Embedding call failed: %s", exc)
            raise EmbeddingServiceError(f"Embedding call failed: {exc}") from exc

        if not vector:
            raise EmbeddingServiceError("Embedding service returned an empty vector.")

        vector = [float(v) for v in vector]
        self._remember(key, vector)
        logger.debug("[EMBED] Embedded %d chars → %d dims.", len(key), len(vector))
        return list(vector)


    def clear_cache(self) -> None:
        self._cache.clear()


    def _remember(self, key: str, vector: list[float]) -> None:
        if self._cache_size <= 0:
            return
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)


    def __repr__(self) -> str:
        return f"EmbeddingClient(embedder={type(self._embedder).__name__}, cached={len(self._cache)})"
