"""
Petalwise - setup_db
=====================
Create, seed and maintain the flower knowledge base.

Phases (each one timed):
    settings   → validate secrets and knobs before touching anything
    stack      → Gemini embedder + LanceDB table
    maintain   → optional drop / purge of table and seed hash cache
    work       → seed from ``data/knowledge``, re-embed, or print stats

Flags:
    --drop                   Drop the table, then seed every file again.
    --purge                  Like --drop, and also forget the seed hash cache.
    --drop-only              Drop the table and stop.
    --force                  Seed every file even when its hash is unchanged.
    --regenerate-embeddings  Re-embed all stored entries instead of seeding.
    --stats                  Print entry / flower type / variety counts and stop.

Usage:
    python -m petalwise.scripts.setup_db
    python -m petalwise.scripts.setup_db --purge
    python -m petalwise.scripts.setup_db --stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Any

_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

_RULE = "=" * 60
_THIN = "-" * 60


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="Create, seed and maintain the Petalwise flower knowledge base.")
    parser.add_argument("--drop", action="store_true", help="Drop the knowledge table, then seed every file again.")
    parser.add_argument("--purge", action="store_true", help="Drop the knowledge table and forget the seed hash cache.")
    parser.add_argument("--drop-only", action="store_true", help="Drop the knowledge table and stop.")
    parser.add_argument("--force", action="store_true", help="Seed every file even if its hash is unchanged.")
    parser.add_argument("--regenerate-embeddings", action="store_true", help="Re-embed all stored entries instead of seeding.")
    parser.add_argument("--stats", action="store_true", help="Print knowledge base statistics and stop.")
    return parser.parse_args(argv)


class _PhaseTimer:
    """Collects wall-clock durations per named phase."""

    __slots__ = ("started", "phases")

    def __init__(self) -> None:
        self.started = time.perf_counter()
        self.phases: dict[str, float] = {}


    def record(self, name: str, since: float) -> None:
        self.phases[name] = time.perf_counter() - since


    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    timer = _PhaseTimer()

    t0 = time.perf_counter()
    try:
        from petalwise.config.settings import settings
    except Exception as exc:
        print(f"\n[FATAL] Invalid Petalwise configuration (environment or petalwise/.env):\n\n  {exc}\n")
        sys.exit(1)
    timer.record("settings", t0)

    from petalwise.src.utils.logger import get_logger
    logger = get_logger(__name__)
    _print_banner(settings)

    summary = asyncio.run(_run(args, settings, timer, logger))
    if summary is not None:
        _print_summary(summary, timer)


async def _run(args: argparse.Namespace, settings: Any, timer: _PhaseTimer, logger: Any) -> dict[str, Any] | None:
    from petalwise.src.core.embedding_client import EmbeddingClient, build_default_embedder
    from petalwise.src.core.knowledge_loader import KnowledgeLoader
    from petalwise.src.core.knowledge_manager import KnowledgeManager
    from petalwise.src.database.knowledge_store import LanceKnowledgeStore

    t0 = time.perf_counter()
    try:
        embedding_client = EmbeddingClient(build_default_embedder())
    except Exception:
        logger.exception("[SETUP] Could not build the embedding model.")
        sys.exit(1)
    store = LanceKnowledgeStore()
    manager = KnowledgeManager(store, embedding_client)
    loader = KnowledgeLoader(manager)
    timer.record("stack", t0)

    if args.stats:
        _print_stats(manager.stats())
        return None

    if args.drop or args.purge or args.drop_only:
        t0 = time.perf_counter()
        logger.warning("[SETUP] Dropping knowledge table '%s'.", settings.LANCEDB_TABLE_NAME)
        store.drop_table()
        if args.purge:
            loader.clear_hash_cache()
            logger.warning("[SETUP] Seed hash cache cleared.")
        timer.record("maintain", t0)
        if args.drop_only:
            return {}
        store = LanceKnowledgeStore()
        manager = KnowledgeManager(store, embedding_client)
        loader = KnowledgeLoader(manager)

    logger.info("[SETUP] Table '%s' holds %d entries before this run.", settings.LANCEDB_TABLE_NAME, store.count())

    t0 = time.perf_counter()
    if args.regenerate_embeddings:
        report = await manager.regenerate_all_embeddings()
        summary: dict[str, Any] = {"entries_added": report.succeeded, "entries_failed": report.failed}
    else:
        # Cached hashes describe rows that a drop has just removed.
        summary = await loader.run(force=args.force or args.drop)
    timer.record("work", t0)
    return summary


def _print_banner(settings: Any) -> None:
    key = settings.GOOGLE_API_KEY.get_secret_value()
    print()
    print(_RULE)
    print("  PETALWISE  knowledge base setup")
    print(_RULE)
    print(f"  Mode         : {settings.ENV}")
    print(f"  Embeddings   : {settings.EMBEDDING_MODEL} / {settings.EMBEDDING_DIMENSIONS} dims")
    print(f"  Knowledge DB : {settings.LANCEDB_PATH} :: {settings.LANCEDB_TABLE_NAME}")
    print(f"  Seed files   : {settings.KNOWLEDGE_SEED_DIR}")
    print(f"  Google key   : ****{key[-4:] if len(key) > 4 else ''}")
    print(_RULE)
    print()


def _print_stats(stats: Any) -> None:
    print()
    print(_RULE)
    print("  KNOWLEDGE BASE STATISTICS")
    print(_THIN)
    print(f"  Total entries : {stats.total_entries}")
    print(f"  Flower types  : {', '.join(stats.flower_types) or '-'}")
    print(f"  Varieties     : {', '.join(stats.varieties) or '-'}")
    print(_RULE)
    print()


def _print_summary(summary: dict[str, Any], timer: _PhaseTimer) -> None:
    rows = [
        ("Seed files scanned", summary.get("total_files", 0)),
        ("Files loaded", summary.get("files_processed", 0)),
        ("Files skipped (cache)", summary.get("files_skipped", 0)),
        ("Entries written", summary.get("entries_added", 0)),
        ("Entries failed", summary.get("entries_failed", 0)),
    ]
    print()
    print(_RULE)
    print("  RUN SUMMARY")
    print(_THIN)
    for label, value in rows:
        print(f"  {label:<21}: {value}")
    print(_THIN)
    for phase, seconds in timer.phases.items():
        print(f"  {phase + ' phase':<21}: {seconds * 1000:>9.1f}ms")
    print(f"  {'Total elapsed':<21}: {timer.elapsed:>9.2f}s")
    print(_RULE)
    print()


if __name__ == "__main__":
    main()
