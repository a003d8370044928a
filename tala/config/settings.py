"""
Tala - Centralized Configuration
=================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``MONGO_URI`` is typed as ``SecretStr`` and has **no default value**.
  Connection strings contain credentials and must never leak into logs.
  If it is missing at startup, Pydantic raises a ``ValidationError``.
- ``GOOGLE_API_KEYS`` is a comma-separated credential pool, also a
  ``SecretStr``.  It may be empty: the embedder then degrades to the
  deterministic hashing strategy and the generation client refuses calls.

Scheduling
----------
``CACHE_CLEAR_TIMES`` is a comma-separated list of ``HH:MM`` wall-clock
times at which the context cache is flushed.  Entries are never expired
by age.  ``CORPUS_SYNC_INTERVAL_SECONDS`` drives the corpus resync loop.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**; the app will refuse
    to start until they are provided.

    Attributes
    ----------
    MONGO_URI : SecretStr
        MongoDB connection string for the corpus, calendar and cache
        mirror collections.  **Required.**
    GOOGLE_API_KEYS : SecretStr
        Comma-separated Gemini API keys.  The first key backs the
        embedding model; all of them rotate for generation calls.
    EMBEDDING_DIMENSION : int
        Fixed vector length D for the lifetime of the process.
    CACHE_CLEAR_TIMES : str
        Scheduled flush times, e.g. ``"00:00,06:00,12:00,18:00"``.
    CORPUS_SYNC_INTERVAL_SECONDS : int
        Seconds between full corpus pulls.
    CORPUS_PULL_BATCH_SIZE : int
        Cursor batch size used when pulling the corpus.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── MongoDB (REQUIRED, no default) ────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "tala"
    CHUNKS_COLLECTION: str = "knowledge_chunks"
    EVENTS_COLLECTION: str = "schedule_events"
    RESPONSE_CACHE_COLLECTION: str = "ai_response_cache"

    # ── API Keys ───────────────────────────────────────────────────────
    GOOGLE_API_KEYS: SecretStr = SecretStr("")

    # ── Embedding ──────────────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBEDDING_DIMENSION: int = 384
    EMBEDDING_TIMEOUT_SECONDS: float = 5.0

    # ── External Collaborators ─────────────────────────────────────────
    EXTERNAL_CALL_TIMEOUT_SECONDS: float = 10.0

    # ── Cache Layer ────────────────────────────────────────────────────
    CACHE_CLEAR_TIMES: str = "00:00,06:00,12:00,18:00"
    CONTEXT_CACHE_MAX_KEYS: int = 5000
    SESSION_CACHE_MAX_KEYS: int = 1000
    CACHE_KEY_MAX_LENGTH: int = 200
    RESPONSE_CACHE_TTL_SECONDS: int = 86400

    # ── Corpus Sync ────────────────────────────────────────────────────
    CORPUS_SYNC_INTERVAL_SECONDS: int = 30
    CORPUS_PULL_BATCH_SIZE: int = 500

    # ── Context Assembly ───────────────────────────────────────────────
    DEFAULT_MAX_TOKENS: int = 500
    DEFAULT_MAX_SECTIONS: int = 10

    # ── Calendar ───────────────────────────────────────────────────────
    CALENDAR_TIMEZONE: str = "Asia/Manila"
    CALENDAR_LOOKBACK_DAYS: int = 30
    CALENDAR_LOOKAHEAD_DAYS: int = 365
    CALENDAR_EVENT_LIMIT: int = 100

    # ── Generation Client ──────────────────────────────────────────────
    LLM_MODELS: str = "gemini-2.0-flash,gemini-2.0-flash-lite"
    LLM_TEMPERATURE: float = 0.2
    CREDENTIAL_COOLDOWN_SECONDS: int = 3600
    MODEL_COOLDOWN_SECONDS: int = 60

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("EMBEDDING_DIMENSION")
    @classmethod
    def _dimension_range(cls, v: int) -> int:
        if not 8 <= v <= 4096:
            raise ValueError(f"EMBEDDING_DIMENSION must be 8–4096, got {v}")
        return v


    @field_validator("CONTEXT_CACHE_MAX_KEYS", "SESSION_CACHE_MAX_KEYS", "CORPUS_PULL_BATCH_SIZE", "CORPUS_SYNC_INTERVAL_SECONDS")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("CACHE_KEY_MAX_LENGTH")
    @classmethod
    def _key_length(cls, v: int) -> int:
        if v < 16:
            raise ValueError(f"CACHE_KEY_MAX_LENGTH must be ≥ 16, got {v}")
        return v

    # ── Derived Values ─────────────────────────────────────────────────

    @property
    def api_keys(self) -> list[str]:
        """Return the non-empty API keys from ``GOOGLE_API_KEYS`` in order."""
        raw = self.GOOGLE_API_KEYS.get_secret_value()
        return [key.strip() for key in raw.split(",") if key.strip()]


    @property
    def llm_models(self) -> list[str]:
        """Return the generation models in priority order."""
        return [model.strip() for model in self.LLM_MODELS.split(",") if model.strip()]

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from tala.config.settings import settings
settings = Settings()
