"""
Petalwise - KnowledgeLoader
============================
Seeds the knowledge base from JSON files.

Each ``*.json`` file in the seed directory holds a list of entry
payloads (``KnowledgeInput`` fields).  Files are loaded one at a time
through ``KnowledgeManager.add_many`` so embedding calls stay
sequential and rate-limited.

Key design decisions:
    • **Dependency Injection** – receives a ``KnowledgeManager``.
    • **Caching** – MD5-based file hashing skips unchanged files.  A
      file is marked as loaded once processed, even if some of its
      entries failed; use ``force=True`` to reload it.
    • **Initialise-if-empty** – ``only_if_empty=True`` leaves a
      populated knowledge base untouched.

Usage:
    from petalwise.src.core.knowledge_loader import KnowledgeLoader
    loader  = KnowledgeLoader(manager)
    summary = await loader.run(only_if_empty=True)
"""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Any

from petalwise.config.settings import settings
from petalwise.src.core.knowledge_manager import KnowledgeManager
from petalwise.src.utils.logger import get_logger

logger = get_logger(__name__)

_SUPPORTED_EXTENSIONS = {".json"}


class KnowledgeLoader:
    """
    Load seed files → ``add_many`` → knowledge store.

    Parameters
    ----------
    manager
        An initialised ``KnowledgeManager`` (injected).
    source_dir
        Override the seed directory.  Defaults to ``settings.KNOWLEDGE_SEED_DIR``.
    hash_cache_path
        Override where file hashes are remembered.  Defaults to
        ``settings.DATA_PROCESSED_DIR / "knowledge_hashes.json"``.
    delay
        Pause between entries, forwarded to ``add_many``.
    """

    def __init__(self, manager: KnowledgeManager, source_dir: Path | None = None, hash_cache_path: Path | None = None, delay: float | None = None) -> None:
        self._manager = manager
        self._source_dir = Path(source_dir or settings.KNOWLEDGE_SEED_DIR)
        self._hash_cache_path = Path(hash_cache_path or settings.DATA_PROCESSED_DIR / "knowledge_hashes.json")
        self._delay = delay
        self._hash_cache: dict[str, str] = self._load_hash_cache()

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def run(self, only_if_empty: bool = False, force: bool = False) -> dict[str, Any]:
        """
        Seed the knowledge base.

        Parameters
        ----------
        only_if_empty
            Skip everything when the store already has entries.
        force
            Ignore the hash cache and reload every file.

        Returns
        -------
        dict
            ``total_files``, ``files_processed``, ``files_skipped``,
            ``entries_added``, ``entries_failed``, ``elapsed_seconds``.
        """
        t_start = time.perf_counter()

        if only_if_empty:
            existing = self._manager.stats().total_entries
            if existing:
                logger.info("[KNOWLEDGE] Knowledge base already has %d entries — skipping seed.", existing)
                return self._summary(0, 0, 0, 0, 0, time.perf_counter() - t_start)

        if not self._source_dir.exists():
            logger.warning("[KNOWLEDGE] Seed directory does not exist: %s", self._source_dir)
            return self._summary(0, 0, 0, 0, 0, time.perf_counter() - t_start)

        files = sorted(f for f in self._source_dir.iterdir() if f.suffix.lower() in _SUPPORTED_EXTENSIONS)
        if not files:
            logger.warning("[KNOWLEDGE] No seed files found in %s", self._source_dir)
            return self._summary(0, 0, 0, 0, 0, time.perf_counter() - t_start)

        logger.info("[KNOWLEDGE] Seeding from %d file(s) in %s", len(files), self._source_dir)
        processed = skipped = added = failed = 0

        for filepath in files:
            file_hash = self._compute_file_hash(filepath)
            if not force and self._hash_cache.get(filepath.name) == file_hash:
                logger.info("[KNOWLEDGE] CACHE_HIT — Skipping unchanged file: %s", filepath.name)
                skipped += 1
                continue

            try:
                payloads = self._read_file(filepath)
            except (OSError, ValueError):
                logger.exception("[KNOWLEDGE] Failed to read seed file: %s", filepath.name)
                continue

            t_file = time.perf_counter()
            report = await self._manager.add_many(payloads, delay=self._delay)
            logger.info("[KNOWLEDGE] File '%s' → %d added, %d failed in %.2fs.", filepath.name, report.succeeded, report.failed, time.perf_counter() - t_file)

            added += report.succeeded
            failed += report.failed
            processed += 1
            self._hash_cache[filepath.name] = file_hash

        self._save_hash_cache()
        elapsed = time.perf_counter() - t_start
        logger.info("[KNOWLEDGE] Seeding complete — %d file(s) processed, %d skipped, %d entries added, %d failed in %.2fs.", processed, skipped, added, failed, elapsed)
        return self._summary(len(files), processed, skipped, added, failed, elapsed)

    # ══════════════════════════════════════════════════════════════════
    #  FILE READING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _read_file(filepath: Path) -> list[dict[str, Any]]:
        """Read a seed file; it must contain a JSON list of objects."""
        data = json.loads(filepath.read_text(encoding="utf-8"))
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise ValueError(f"{filepath.name} must contain a JSON list of objects")
        return data

    # ══════════════════════════════════════════════════════════════════
    #  HASH CACHE
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _compute_file_hash(filepath: Path) -> str:
        return hashlib.md5(filepath.read_bytes()).hexdigest()


    def _load_hash_cache(self) -> dict[str, str]:
        if self._hash_cache_path.exists():
            try:
                return json.loads(self._hash_cache_path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("[KNOWLEDGE] Corrupt hash cache — starting fresh.")
        return {}


    def _save_hash_cache(self) -> None:
        self._hash_cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._hash_cache_path.write_text(json.dumps(self._hash_cache, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug("[KNOWLEDGE] Hash cache saved to %s", self._hash_cache_path)


    def clear_hash_cache(self) -> None:
        """Forget every loaded file (used after the table is dropped)."""
        self._hash_cache = {}
        if self._hash_cache_path.exists():
            self._hash_cache_path.unlink()

    # ── Run report ──────────────────────────────────────────────────────

    @staticmethod
    def _summary(total: int, processed: int, skipped: int, added: int, failed: int, elapsed: float) -> dict[str, Any]:
        return {"total_files": total, "files_processed": processed, "files_skipped": skipped, "entries_added": added, "entries_failed": failed, "elapsed_seconds": round(elapsed, 2)}
