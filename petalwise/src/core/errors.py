"""
Petalwise - Error Taxonomy
===========================
Every failure the RAG core distinguishes.  Hot-path errors
(embedding, store, model, parsing) are recovered locally by the
fallback chain; administrative errors (validation, not-found)
propagate to the caller.

Hierarchy::

    PetalwiseError
    ├── EmbeddingServiceError      → text-search fallback
    ├── KnowledgeStoreError        → transient: retry once / structural: skip
    │   └── KnowledgeNotFoundError
    ├── ModelCallError             → rule-based fallback (never retried)
    ├── ResponseParseError         → regex salvage, then rule-based
    ├── KnowledgeValidationError   → surfaced to the admin caller
    ├── BatchValidationError       → fail fast before any external call
    └── BatchNotFoundError
"""

from __future__ import annotations


class PetalwiseError(Exception):
    """Base class for all Petalwise errors."""


class EmbeddingServiceError(PetalwiseError):
    """The embedding service failed, timed out, or was given empty input."""


class KnowledgeStoreError(PetalwiseError):
    """
    A knowledge store operation failed.

    Parameters
    ----------
    message
        Human-readable description.
    transient
        ``True`` for failures worth one retry (connection reset,
        timeout); ``False`` for structural failures (missing table,
        schema or dimension mismatch) that must not be retried.
    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class KnowledgeNotFoundError(KnowledgeStoreError):
    """No knowledge entry exists with the requested id."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Knowledge entry '{entry_id}' not found.", transient=False)
        self.entry_id = entry_id


class ModelCallError(PetalwiseError):
    """The generative model call failed (network, auth, timeout, empty reply)."""


class ResponseParseError(PetalwiseError):
    """The model replied, but the payload could not be interpreted."""


class KnowledgeValidationError(PetalwiseError, ValueError):
    """A knowledge payload is missing required text or has unknown fields."""


class BatchValidationError(PetalwiseError, ValueError):
    """A batch query cannot be predicted on (e.g. empty flower type)."""


class BatchNotFoundError(PetalwiseError):
    """No batch record exists with the requested id."""

    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch '{batch_id}' not found.")
        self.batch_id = batch_id
