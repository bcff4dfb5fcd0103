"""
Petalwise - KnowledgeManager
=============================
Administrative CRUD over the flower knowledge base.

Every write that touches embedded text keeps the stored vector
consistent with the stored text: the manager composes the embedding
text, calls the ``EmbeddingClient`` and hands fields + vector to the
store in a single write.

Errors are **not** swallowed here.  Validation problems raise
``KnowledgeValidationError``; embedding and store failures propagate
to the admin caller.  The only exception is the bulk path
(``add_many`` / ``regenerate_all_embeddings``), which records
per-item failures in a ``BulkLoadReport`` and carries on.

Usage:
    from petalwise.src.core.knowledge_manager import KnowledgeManager
    manager = KnowledgeManager(store, embedding_client)
    entry   = await manager.add_entry({"flower_type": "Rose", ...})
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from petalwise.config.settings import settings
from petalwise.src.core.embedding_client import EmbeddingClient
from petalwise.src.core.errors import KnowledgeNotFoundError, KnowledgeValidationError
from petalwise.src.database.knowledge_store import KnowledgeStore
from petalwise.src.models.knowledge import EDITABLE_FIELDS, EMBEDDED_FIELDS, BulkLoadFailure, BulkLoadReport, KnowledgeEntry, KnowledgeInput, KnowledgeStats
from petalwise.src.utils.logger import get_logger
from petalwise.src.utils.text_utils import clean_text

logger = get_logger(__name__)


def compose_embedding_text(data: KnowledgeInput) -> str:
    """
    Space-join the embedded fields in their fixed order.

    Order: flower_type, variety, care_requirements, optimal_temperature,
    optimal_humidity, water_requirements, ethylene_sensitivity,
    common_issues, vase_life_tips.  Empty parts are skipped.
    """
    parts = (clean_text(getattr(data, name) or "") for name in EMBEDDED_FIELDS)
    return " ".join(part for part in parts if part)


def _validate_payload(data: KnowledgeInput | Mapping[str, Any]) -> KnowledgeInput:
    if isinstance(data, Mapping):
        unknown = set(data) - EDITABLE_FIELDS
        if unknown:
            raise KnowledgeValidationError(f"Unknown knowledge fields: {sorted(unknown)}")
        try:
            data = KnowledgeInput(**data)
        except ValidationError as exc:
            raise KnowledgeValidationError(str(exc)) from exc
    else:
        # Stored entries carry id, embedding and created_at; keep only input fields.
        data = KnowledgeInput.model_validate(data.model_dump(include=set(EDITABLE_FIELDS)))

    if not data.flower_type or not data.flower_type.strip():
        raise KnowledgeValidationError("flower_type must not be empty.")
    if not data.care_requirements or not data.care_requirements.strip():
        raise KnowledgeValidationError("care_requirements must not be empty.")
    return data


class KnowledgeManager:
    """
    Add / update / delete / list knowledge entries.

    Parameters
    ----------
    store
        Any ``KnowledgeStore`` implementation (injected).
    embedding_client
        ``EmbeddingClient`` used for every embedded write (injected).
    """

    __slots__ = ("_store", "_embedding")

    def __init__(self, store: KnowledgeStore, embedding_client: EmbeddingClient) -> None:
        self._store = store
        self._embedding = embedding_client

    # ══════════════════════════════════════════════════════════════════
    #  WRITES
    # ══════════════════════════════════════════════════════════════════

    async def add_entry(self, data: KnowledgeInput | Mapping[str, Any]) -> KnowledgeEntry:
        """
        Validate, embed and insert one entry.

        A ``KnowledgeEntry`` is accepted as input; its ``id``, ``embedding``
        and ``created_at`` are ignored and a new row is written.

        Raises
        ------
        KnowledgeValidationError
            If ``flower_type`` or ``care_requirements`` is empty, or the
            payload carries unknown fields.
        EmbeddingServiceError, KnowledgeStoreError
            Propagated unchanged.
        """
        payload = _validate_payload(data)
        vector = await self._embedding.embed(compose_embedding_text(payload))
        entry = KnowledgeEntry(**payload.model_dump(), embedding=vector)
        self._store.insert(entry)
        logger.info("[KNOWLEDGE] Added %s (id=%s).", entry.label, entry.id)
        return entry


    async def add_many(self, entries: Iterable[KnowledgeInput | Mapping[str, Any]], delay: float | None = None) -> BulkLoadReport:
        """
        Insert entries one at a time with a pause between calls.

        A failing entry is logged and recorded in the report; the
        remaining entries are still processed.
        """
        delay = settings.BULK_INSERT_DELAY_S if delay is None else delay
        report = BulkLoadReport()
        t0 = time.perf_counter()

        for index, data in enumerate(entries):
            if index and delay > 0:
                await asyncio.sleep(delay)
            try:
                entry = await self.add_entry(data)
                report.added.append(entry.id)
            except Exception as exc:
                flower_type = data.get("flower_type", "") if isinstance(data, Mapping) else data.flower_type
                logger.warning("[KNOWLEDGE] Entry #%d (%s) failed: %s", index, flower_type or "?", exc)
                report.failures.append(BulkLoadFailure(index=index, flower_type=str(flower_type or ""), error=str(exc)))

        logger.info("[KNOWLEDGE] Bulk add: %d added, %d failed in %.2fs.", report.succeeded, report.failed, time.perf_counter() - t0)
        return report


    async def update_entry(self, entry_id: str, partial: Mapping[str, Any]) -> KnowledgeEntry:
        """
        Apply *partial* to an existing entry.

        If any embedded field is present the merged record is
        re-validated and re-embedded, and text + vector are written
        together.  Otherwise the embedding is left untouched.
        """
        unknown = set(partial) - EDITABLE_FIELDS
        if unknown:
            raise KnowledgeValidationError(f"Unknown knowledge fields: {sorted(unknown)}")

        current = self._store.get(entry_id)
        if current is None:
            raise KnowledgeNotFoundError(entry_id)

        fields: dict[str, Any] = dict(partial)
        if not any(name in fields for name in EMBEDDED_FIELDS):
            updated = self._store.update(entry_id, fields)
            logger.info("[KNOWLEDGE] Updated %s without re-embedding (fields=%s).", entry_id, sorted(fields))
            return updated

        merged = _validate_payload(current.model_copy(update=fields))
        fields["embedding"] = await self._embedding.embed(compose_embedding_text(merged))
        updated = self._store.update(entry_id, fields)
        logger.info("[KNOWLEDGE] Updated %s and regenerated its embedding.", entry_id)
        return updated


    def delete_entry(self, entry_id: str) -> bool:
        deleted = self._store.delete(entry_id)
        if deleted:
            logger.info("[KNOWLEDGE] Deleted %s.", entry_id)
        return deleted


    async def regenerate_all_embeddings(self, delay: float | None = None) -> BulkLoadReport:
        """Re-embed every stored entry sequentially; failures are recorded, not raised."""
        delay = settings.BULK_INSERT_DELAY_S if delay is None else delay
        report = BulkLoadReport()
        entries = self._store.list_all()
        logger.info("[KNOWLEDGE] Regenerating embeddings for %d entries…", len(entries))

        for index, entry in enumerate(entries):
            if index and delay > 0:
                await asyncio.sleep(delay)
            try:
                vector = await self._embedding.embed(compose_embedding_text(entry))
                self._store.update(entry.id, {"embedding": vector})
                report.added.append(entry.id)
            except Exception as exc:
                logger.warning("[KNOWLEDGE] Could not re-embed %s: %s", entry.label, exc)
                report.failures.append(BulkLoadFailure(index=index, flower_type=entry.flower_type, error=str(exc)))

        logger.info("[KNOWLEDGE] Regeneration done: %d ok, %d failed.", report.succeeded, report.failed)
        return report

    # ══════════════════════════════════════════════════════════════════
    #  READS
    # ══════════════════════════════════════════════════════════════════

    def get_entry(self, entry_id: str) -> KnowledgeEntry | None:
        return self._store.get(entry_id)


    def list_entries(self) -> list[KnowledgeEntry]:
        return self._store.list_all()


    def search_entries(self, flower_type: str) -> list[KnowledgeEntry]:
        return self._store.find_by_flower_type(flower_type)


    def stats(self) -> KnowledgeStats:
        """Entry count plus distinct flower types and varieties (first-seen order)."""
        entries = self._store.list_all()
        flower_types = list(dict.fromkeys(e.flower_type for e in entries))
        varieties = list(dict.fromkeys(e.variety for e in entries if e.variety))
        return KnowledgeStats(total_entries=len(entries), flower_types=flower_types, varieties=varieties)


    def __repr__(self) -> str:
        return f"KnowledgeManager(store={type(self._store).__name__})"
