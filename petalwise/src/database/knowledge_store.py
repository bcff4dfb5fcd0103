"""
Petalwise - LanceKnowledgeStore
================================
OOP wrapper around LanceDB providing the knowledge base's storage
interface:
  • ``flower_knowledge`` table bootstrapped from a fixed PyArrow schema
  • Single-row insert / update / delete and listing
  • Cosine vector search that fails softly
  • Layered case-insensitive text search used as the fallback path

Design decisions:
  • **One connection per directory**: ``_get_connection()`` keeps the
    ``lancedb.DBConnection`` in a module-level dict keyed by path.
  • **Nullable vectors**: ``vector`` is a fixed-size list that stays
    null until the ``KnowledgeManager`` computes an embedding.
  • **Soft vector search**: any backend error yields ``[]`` so the
    retriever can fall back.  Transient errors (connection reset,
    timeout) are retried once; structural ones (missing table,
    dimension mismatch) are not.
  • **Atomic single-row writes**: updates go through
    ``merge_insert`` keyed on ``id``; there are no multi-row
    transactions.

Usage:
    from petalwise.src.database.knowledge_store import LanceKnowledgeStore
    store = LanceKnowledgeStore()
    store.insert(entry)
    hits = store.vector_search(query_vector, threshold=0.5, limit=5)
    rows = store.text_search("Rose", "Red Naomi")
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from typing import Protocol, runtime_checkable

import lancedb
import pyarrow as pa
import pyarrow.compute as pc

from petalwise.config.settings import settings
from petalwise.src.core.errors import KnowledgeNotFoundError, KnowledgeStoreError
from petalwise.src.models.knowledge import FREE_TEXT_FIELDS, KnowledgeEntry
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Row shapes ──────────────────────────────────────────────────────
KnowledgeRecord = dict[str, str | list[float] | None]
ScoredEntry = tuple[KnowledgeEntry, float]

# ── Module state ────────────────────────────────────────────────────
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError)
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def knowledge_schema(dimensions: int) -> pa.Schema:
    """PyArrow schema of the knowledge table for a given embedding size."""
    return pa.schema([
        pa.field("id", pa.utf8(), nullable=False),
        pa.field("flower_type", pa.utf8(), nullable=False),
        pa.field("variety", pa.utf8()),
        *(pa.field(name, pa.utf8()) for name in FREE_TEXT_FIELDS),
        pa.field("source_name", pa.utf8()),
        pa.field("source_url", pa.utf8()),
        pa.field("created_at", pa.utf8()),
        pa.field("vector", pa.list_(pa.float32(), dimensions)),
    ])


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Connect to *db_path* once and hand back the cached connection afterwards.

    Thread-safe via ``_DB_LOCK``.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("[STORE] Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _quote(value: str) -> str:
    """Quote a string literal for a LanceDB SQL predicate."""
    return "'" + value.replace("'", "''") + "'"


# ── Store Protocol ────────────────────────────────────────────────────

@runtime_checkable
class KnowledgeStore(Protocol):
    """Storage interface the manager and retriever depend on."""

    def insert(self, entry: KnowledgeEntry) -> KnowledgeEntry: ...

    def get(self, entry_id: str) -> KnowledgeEntry | None: ...

    def update(self, entry_id: str, fields: Mapping[str, object]) -> KnowledgeEntry: ...

    def delete(self, entry_id: str) -> bool: ...

    def list_all(self) -> list[KnowledgeEntry]: ...

    def find_by_flower_type(self, substring: str) -> list[KnowledgeEntry]: ...

    def count(self) -> int: ...

    def vector_search(self, query_vector: list[float], threshold: float, limit: int) -> list[ScoredEntry]: ...

    def text_search(self, flower_type: str, variety: str | None = None, limit: int = 5) -> list[KnowledgeEntry]: ...


class LanceKnowledgeStore:
    """
    Knowledge base backed by a LanceDB table.

    Parameters
    ----------
    db_path
        LanceDB directory; ``settings.LANCEDB_PATH`` when omitted.
    table_name
        Knowledge table; ``settings.LANCEDB_TABLE_NAME`` when omitted.
    dimensions
        Embedding length of the ``vector`` column.  Defaults to
        ``settings.EMBEDDING_DIMENSIONS``.
    """

    __slots__ = ("_db_path", "_table_name", "_dimensions", "_schema", "db", "table")

    def __init__(self, db_path: str | None = None, table_name: str | None = None, dimensions: int | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._dimensions: int = dimensions or settings.EMBEDDING_DIMENSIONS
        self._schema: pa.Schema = knowledge_schema(self._dimensions)
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Attach to the shared connection and open the knowledge table, creating it when absent."""
        try:
            self.db = _get_connection(self._db_path)
            if self._table_name in self.db.table_names():
                self.table = self.db.open_table(self._table_name)
                logger.info("[STORE] Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
            else:
                self.table = self.db.create_table(self._table_name, schema=self._schema)
                logger.info("[STORE] Created new table '%s' (vector dims=%d).", self._table_name, self._dimensions)
        except OSError as exc:
            logger.error("[STORE] LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise
        except Exception:
            logger.exception("[STORE] Unexpected error connecting to LanceDB.")
            raise

    # ══════════════════════════════════════════════════════════════════
    #  CRUD
    # ══════════════════════════════════════════════════════════════════

    def insert(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Persist one entry.  Raises ``KnowledgeStoreError`` on failure."""
        self._write(lambda table: table.add(self._to_arrow([entry])), f"insert '{entry.id}'")
        logger.info("[STORE] Inserted %s (id=%s, embedded=%s).", entry.label, entry.id, entry.embedding is not None)
        return entry


    def get(self, entry_id: str) -> KnowledgeEntry | None:
        data = self._require_table().to_arrow()
        rows = data.filter(pc.equal(data["id"], entry_id)).slice(0, 1).to_pylist()
        return self._to_entry(rows[0]) if rows else None


    def update(self, entry_id: str, fields: Mapping[str, object]) -> KnowledgeEntry:
        """
        Overwrite the given fields of one entry and return the stored result.

        ``fields`` may carry ``embedding`` alongside text fields; the row
        is written in a single ``merge_insert`` so text and vector never
        diverge.
        """
        current = self.get(entry_id)
        if current is None:
            raise KnowledgeNotFoundError(entry_id)

        merged = current.model_copy(update=dict(fields))
        self._write(lambda table: table.merge_insert("id").when_matched_update_all().when_not_matched_insert_all().execute(self._to_arrow([merged])), f"update '{entry_id}'")
        logger.info("[STORE] Updated %s (fields=%s).", entry_id, sorted(fields))
        return merged


    def delete(self, entry_id: str) -> bool:
        """Delete one entry.  Returns ``False`` if it did not exist."""
        if self.get(entry_id) is None:
            logger.warning("[STORE] Delete skipped — entry '%s' does not exist.", entry_id)
            return False
        self._write(lambda table: table.delete(f"id = {_quote(entry_id)}"), f"delete '{entry_id}'")
        logger.info("[STORE] Deleted %s.", entry_id)
        return True


    def list_all(self) -> list[KnowledgeEntry]:
        """All entries, ordered by flower type."""
        rows = self._require_table().to_arrow().to_pylist()
        return sorted((self._to_entry(r) for r in rows), key=lambda e: e.flower_type.casefold())


    def find_by_flower_type(self, substring: str) -> list[KnowledgeEntry]:
        """Case-insensitive substring match on ``flower_type``, ordered by flower type."""
        data = self._require_table().to_arrow()
        rows = data.filter(pc.match_substring(data["flower_type"], substring.strip(), ignore_case=True)).to_pylist()
        return sorted((self._to_entry(r) for r in rows), key=lambda e: e.flower_type.casefold())


    def count(self) -> int:
        """Number of stored knowledge entries (0 before the table exists)."""
        if self.table is None:
            return 0
        return self.table.count_rows()

    # ══════════════════════════════════════════════════════════════════
    #  VECTOR SEARCH (soft-failing, one retry for transient errors)
    # ══════════════════════════════════════════════════════════════════

    def vector_search(self, query_vector: list[float], threshold: float, limit: int) -> list[ScoredEntry]:
        """
        Cosine-similarity search.

        Returns entries whose similarity exceeds *threshold*, sorted
        descending and truncated to *limit*.  Never raises: any backend
        failure yields an empty list.
        """
        if len(query_vector) != self._dimensions:
            logger.warning("[STORE] Vector search skipped — query has %d dims, table expects %d.", len(query_vector), self._dimensions)
            return []

        rows: list[dict] = []
        for attempt in (1, 2):
            try:
                rows = self._run_vector_query(query_vector, limit)
                break
            except Exception as exc:
                error = self._classify(exc)
                if error.transient and attempt == 1:
                    logger.warning("[STORE] Transient vector search failure (%s) — retrying once.", exc)
                    continue
                logger.warning("[STORE] Vector search unavailable (%s, transient=%s) — returning no results.", exc, error.transient)
                return []

        scored: list[ScoredEntry] = []
        for row in rows:
            distance = row.get("_distance")
            if distance is None:
                continue
            score = 1.0 - float(distance)
            if score > threshold:
                scored.append((self._to_entry(row), score))

        scored.sort(key=lambda item: item[1], reverse=True)
        logger.info("[STORE] Vector search: %d row(s) → %d above threshold %.2f.", len(rows), len(scored), threshold)
        return scored[:limit]


    def _run_vector_query(self, query_vector: list[float], limit: int) -> list[dict]:
        table = self._require_table()
        return table.search(list(query_vector), vector_column_name="vector").distance_type("cosine").limit(limit).to_list()


    @staticmethod
    def _classify(exc: BaseException) -> KnowledgeStoreError:
        if isinstance(exc, KnowledgeStoreError):
            return exc
        return KnowledgeStoreError(str(exc), transient=isinstance(exc, _TRANSIENT_ERRORS))

    # ══════════════════════════════════════════════════════════════════
    #  TEXT SEARCH (layered fallback)
    # ══════════════════════════════════════════════════════════════════

    def text_search(self, flower_type: str, variety: str | None = None, limit: int = 5) -> list[KnowledgeEntry]:
        """
        Layered case-insensitive search, unioned and de-duplicated by id.

        Strategy order:
            1. Exact match on ``flower_type``.
            2. Substring match on ``flower_type``.
            3. Substring match on ``variety`` (if supplied).
            4. ``"<flower_type> <variety>"`` as a substring of either field.

        Each strategy is capped at *limit*, and so is the union.
        Backend failures are logged and yield an empty list.
        """
        flower_type = flower_type.strip()
        variety = variety.strip() if variety else None

        try:
            data = self._require_table().to_arrow()
        except Exception as exc:
            logger.warning("[STORE] Text search unavailable: %s", exc)
            return []

        strategies: list[tuple[str, pa.ChunkedArray]] = [
            ("exact", pc.equal(pc.utf8_lower(data["flower_type"]), flower_type.lower())),
            ("partial", pc.match_substring(data["flower_type"], flower_type, ignore_case=True)),
        ]
        if variety:
            combined = f"{flower_type} {variety}"
            strategies.append(("variety", pc.match_substring(data["variety"], variety, ignore_case=True)))
            strategies.append(("combined", pc.or_kleene(pc.match_substring(data["flower_type"], combined, ignore_case=True), pc.match_substring(data["variety"], combined, ignore_case=True))))

        results: list[KnowledgeEntry] = []
        seen: set[str] = set()
        for name, mask in strategies:
            rows = data.filter(mask).slice(0, limit).to_pylist()
            logger.debug("[STORE] Text strategy '%s' matched %d row(s).", name, len(rows))
            for row in rows:
                if row["id"] not in seen:
                    seen.add(row["id"])
                    results.append(self._to_entry(row))

        logger.info("[STORE] Text search for '%s'/'%s' → %d unique row(s).", flower_type, variety or "-", len(results))
        return results[:limit]

    # ══════════════════════════════════════════════════════════════════
    #  MAINTENANCE & HELPERS
    # ══════════════════════════════════════════════════════════════════

    def drop_table(self) -> None:
        """Drop the knowledge table (useful for testing / re-seeding)."""
        if self.db is None:
            logger.warning("[STORE] No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            self.table = None
            logger.info("[STORE] Dropped table '%s'.", self._table_name)
        except (ValueError, FileNotFoundError):
            logger.warning("[STORE] Table '%s' does not exist — nothing to drop.", self._table_name)
        except OSError as exc:
            logger.error("[STORE] Filesystem error dropping table '%s': %s", self._table_name, exc)
            raise


    def _require_table(self) -> lancedb.table.Table:
        if self.table is None:
            raise KnowledgeStoreError("Knowledge table is not initialised. Call _connect() first.", transient=False)
        return self.table


    def _write(self, operation: Callable[[lancedb.table.Table], object], description: str) -> None:
        table = self._require_table()
        try:
            operation(table)
        except KnowledgeStoreError:
            raise
        except Exception as exc:
            logger.error("[STORE] Failed to %s: %s", description, exc)
            raise KnowledgeStoreError(f"Failed to {description}: {exc}", transient=isinstance(exc, _TRANSIENT_ERRORS)) from exc


    def _to_arrow(self, entries: list[KnowledgeEntry]) -> pa.Table:
        records: list[KnowledgeRecord] = []
        for entry in entries:
            if entry.embedding is not None and len(entry.embedding) != self._dimensions:
                raise KnowledgeStoreError(f"Embedding for '{entry.id}' has {len(entry.embedding)} dims, table expects {self._dimensions}.", transient=False)
            record: KnowledgeRecord = entry.model_dump(exclude={"embedding"})
            record["vector"] = entry.embedding
            records.append(record)
        return pa.Table.from_pylist(records, schema=self._schema)


    @staticmethod
    def _to_entry(row: Mapping[str, object]) -> KnowledgeEntry:
        vector = row.get("vector")
        payload = {key: value for key, value in row.items() if key != "vector" and not key.startswith("_")}
        payload = {key: ("" if value is None and key not in ("variety",) else value) for key, value in payload.items()}
        return KnowledgeEntry(**payload, embedding=[float(v) for v in vector] if vector is not None else None)


    def __repr__(self) -> str:
        return f"LanceKnowledgeStore(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"
