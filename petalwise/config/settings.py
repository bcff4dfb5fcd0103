"""
Petalwise - Settings
=====================
Every tunable of the prediction pipeline in one ``pydantic-settings``
model, read from the process environment and ``petalwise/.env``.

Secrets
-------
``GOOGLE_API_KEY`` and ``MONGO_URI`` are ``SecretStr`` without defaults:
a missing value stops the process at import time, and neither value
shows up in ``repr()`` or log output.  Use ``.get_secret_value()`` at
the single call site that needs the raw string.

Groups
------
* paths: seed files, processed-state files, the LanceDB directory
* Gemini: embedding and chat model names, sampling, timeouts
* retrieval: similarity threshold, context limit, text-match relevance
* prediction cache: TTL and the new-batch window
* rule-based fallback: default shelf life
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Petalwise configuration.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        Google AI Studio key used for both embeddings and generation.
    MONGO_URI : SecretStr
        Connection string of the MongoDB holding flower batches.
    MONGO_DB_NAME, BATCH_COLLECTION : str
        Where batch records and their cached predictions live.
    ENV : Literal["dev", "prod"]
        Selects the default log level (DEBUG / WARNING).
    LOG_LEVEL : str | None
        Explicit level name that overrides ``ENV`` (e.g. ``"INFO"``).
    EMBEDDING_MODEL, EMBEDDING_DIMENSIONS : str, int
        Gemini embedding model and the fixed width of the ``vector`` column.
    EMBEDDING_TIMEOUT_S, EMBEDDING_CACHE_SIZE : float, int
        Per-call bound and LRU size (``0`` disables the cache).
    LLM_MODEL, LLM_TEMPERATURE, LLM_MAX_TOKENS, LLM_TIMEOUT_S
        Chat model used for predictions.
    LANCEDB_PATH, LANCEDB_TABLE_NAME
        On-disk knowledge base.
    SIMILARITY_THRESHOLD : float
        Vector hits must score strictly above this cosine similarity.
    RETRIEVAL_LIMIT : int
        Maximum contexts per retrieval.
    TEXT_MATCH_RELEVANCE : float
        Relevance assigned to text-search hits.
    BULK_INSERT_DELAY_S : float
        Pause between sequential embedding calls in bulk operations.
    PREDICTION_CACHE_TTL_S, NEW_BATCH_WINDOW_S : int
        Cached predictions older than the TTL, or on batches younger
        than the window, are recomputed.
    DEFAULT_SHELF_LIFE_DAYS : float
        Used by the rule-based estimator when a batch has none.
    """

    # ── Secrets ───────────────────────────────────────────────────────
    GOOGLE_API_KEY: SecretStr
    MONGO_URI: SecretStr

    # ── Runtime mode ──────────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None

    # ── Filesystem ────────────────────────────────────────────────────
    KNOWLEDGE_SEED_DIR: Path = _PACKAGE_DIR / "data" / "knowledge"
    DATA_PROCESSED_DIR: Path = _PACKAGE_DIR / "data" / "processed"
    LANCEDB_PATH: Path = _PACKAGE_DIR / "data" / "lancedb"
    LANCEDB_TABLE_NAME: str = "flower_knowledge"

    # ── Batch records ─────────────────────────────────────────────────
    MONGO_DB_NAME: str = "petalwise"
    BATCH_COLLECTION: str = "flower_batches"

    # ── Gemini ────────────────────────────────────────────────────────
    EMBEDDING_MODEL: str = "gemini-embedding-001"
    EMBEDDING_DIMENSIONS: int = 3072
    EMBEDDING_TIMEOUT_S: float = 15.0
    EMBEDDING_CACHE_SIZE: int = 256
    LLM_MODEL: str = "gemini-2.0-flash"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 800
    LLM_TIMEOUT_S: float = 30.0

    # ── Retrieval ─────────────────────────────────────────────────────
    SIMILARITY_THRESHOLD: float = 0.5
    RETRIEVAL_LIMIT: int = 5
    TEXT_MATCH_RELEVANCE: float = 0.8
    BULK_INSERT_DELAY_S: float = 0.1

    # ── Prediction cache ──────────────────────────────────────────────
    PREDICTION_CACHE_TTL_S: int = 3600
    NEW_BATCH_WINDOW_S: int = 300

    # ── Rule-based fallback ───────────────────────────────────────────
    DEFAULT_SHELF_LIFE_DAYS: float = 7.0

    model_config = SettingsConfigDict(env_file=_PACKAGE_DIR / ".env", env_file_encoding="utf-8", extra="ignore")


    @field_validator("SIMILARITY_THRESHOLD", "TEXT_MATCH_RELEVANCE")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Value must be within 0–1, got {v}")
        return v


    @field_validator("RETRIEVAL_LIMIT", "EMBEDDING_DIMENSIONS", "LLM_MAX_TOKENS", "PREDICTION_CACHE_TTL_S")
    @classmethod
    def _positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be ≥ 1, got {v}")
        return v


    @field_validator("EMBEDDING_TIMEOUT_S", "LLM_TIMEOUT_S")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeout must be > 0, got {v}")
        return v


    @field_validator("NEW_BATCH_WINDOW_S", "EMBEDDING_CACHE_SIZE")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Value must be ≥ 0, got {v}")
        return v


settings = Settings()
