"""
Petalwise - Knowledge Models
=============================
Records stored in the knowledge base and the projections handed to
the prediction pipeline.

``KnowledgeEntry``
    One stored fact record about a flower type / variety.
``KnowledgeInput``
    Creation payload (no id, no embedding).
``RetrievedContext``
    Read-time projection of an entry with attribution and relevance.
``RetrievalResult``
    What the ``ContextRetriever`` returns for one query.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Free-text fields, in the order they are embedded.
FREE_TEXT_FIELDS: tuple[str, ...] = ("care_requirements", "optimal_temperature", "optimal_humidity", "water_requirements", "ethylene_sensitivity", "common_issues", "vase_life_tips")

# Every field whose text feeds the embedding.
EMBEDDED_FIELDS: tuple[str, ...] = ("flower_type", "variety", *FREE_TEXT_FIELDS)

# Fields a caller may change through an update.
EDITABLE_FIELDS: frozenset[str] = frozenset((*EMBEDDED_FIELDS, "source_name", "source_url"))


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Source(BaseModel):
    """Attribution for a knowledge snippet; equal when (name, url) match."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str = ""


class KnowledgeInput(BaseModel):
    """Payload accepted by ``KnowledgeManager.add_entry``."""

    flower_type: str
    variety: str | None = None
    care_requirements: str = ""
    optimal_temperature: str = ""
    optimal_humidity: str = ""
    water_requirements: str = ""
    ethylene_sensitivity: str = ""
    common_issues: str = ""
    vase_life_tips: str = ""
    source_name: str = ""
    source_url: str = ""


class KnowledgeEntry(KnowledgeInput):
    """A stored knowledge record.  ``embedding`` is ``None`` until computed."""

    id: str = Field(default_factory=_new_id)
    embedding: list[float] | None = None
    created_at: str = Field(default_factory=_utc_now_iso)

    @property
    def label(self) -> str:
        return f"{self.flower_type} ({self.variety})" if self.variety else self.flower_type

    @property
    def has_attribution(self) -> bool:
        return bool(self.source_name.strip())

    def source(self) -> Source:
        return Source(name=self.source_name.strip(), url=self.source_url.strip())


class RetrievedContext(BaseModel):
    """Projection of a ``KnowledgeEntry`` surfaced to the orchestrator."""

    flower_type: str
    variety: str | None = None
    care_requirements: str = ""
    optimal_conditions: str = ""
    common_issues: str = ""
    vase_life_tips: str = ""
    sources: list[Source] = Field(min_length=1)
    relevance_score: float = Field(ge=0.0, le=1.0)

    @classmethod
    def from_entry(cls, entry: KnowledgeEntry, relevance_score: float) -> RetrievedContext:
        """Compose ``optimal_conditions`` from the three raw condition fields."""
        conditions = f"Temperature: {entry.optimal_temperature}, Humidity: {entry.optimal_humidity}, Water: {entry.water_requirements}"
        return cls(flower_type=entry.flower_type, variety=entry.variety, care_requirements=entry.care_requirements, optimal_conditions=conditions, common_issues=entry.common_issues, vase_life_tips=entry.vase_life_tips, sources=[entry.source()], relevance_score=min(max(relevance_score, 0.0), 1.0))


class RetrievalResult(BaseModel):
    """Ranked contexts, de-duplicated sources and the assembled prompt block."""

    contexts: list[RetrievedContext] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    prompt_block: str = ""
    strategy: Literal["vector", "text", "none"] = "none"

    @classmethod
    def empty(cls) -> RetrievalResult:
        return cls()

    def best_context(self) -> RetrievedContext | None:
        """Highest-relevance context; ties keep retrieval order."""
        if not self.contexts:
            return None
        return max(self.contexts, key=lambda ctx: ctx.relevance_score)


class KnowledgeStats(BaseModel):
    total_entries: int = 0
    flower_types: list[str] = Field(default_factory=list)
    varieties: list[str] = Field(default_factory=list)


class BulkLoadFailure(BaseModel):
    index: int
    flower_type: str = ""
    error: str


class BulkLoadReport(BaseModel):
    """Outcome of a sequential bulk operation; partial success is normal."""

    added: list[str] = Field(default_factory=list)
    failures: list[BulkLoadFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.added)

    @property
    def failed(self) -> int:
        return len(self.failures)
