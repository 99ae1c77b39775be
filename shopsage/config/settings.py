"""
ShopSage - Centralized Configuration
=====================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr``.  It has no usable default;
  ``missing_credentials()`` reports it and the chat engine refuses to
  build (``ConfigurationError``) until it is provided.  The raw value is
  never exposed in repr, logs, or tracebacks.
- ``MONGO_URI`` is also ``SecretStr`` — connection strings contain
  credentials and must never leak into logs.  It is optional: without it
  the interaction log is disabled.

Limits
------
``MAX_HISTORY_TURNS`` counts user+model *pairs*; the stored history never
exceeds ``2 * MAX_HISTORY_TURNS`` turns.  ``MAX_CONTEXT_ITEMS`` caps the
retrieved items *per kind* (products, articles).

Timeouts
--------
Every outbound call carries its own bound: embedding, each retrieval
query, the LLM call and the interaction-log write.
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

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr | None
        API key for Google AI Studio (Gemini).  Required for a working
        service.  Access the raw value with
        ``settings.GOOGLE_API_KEY.get_secret_value()``.
    MONGO_URI : SecretStr | None
        MongoDB connection string for the interaction log.  Optional.
    MONGO_DB_NAME : str
        MongoDB database name for the interaction log.
    INTERACTIONS_COLLECTION : str
        Collection receiving one document per answered turn.
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    LLM_MODEL : str
        Model identifier for the chat model.
    LLM_TEMPERATURE : float
        Sampling temperature for the chat model.
    PRODUCTS_TABLE, ARTICLES_TABLE : str
        LanceDB table names of the content store.
    MATCH_THRESHOLD : float
        Minimum cosine similarity for a retrieved item.
    MAX_CONTEXT_ITEMS : int
        Items kept per kind in the context block.
    MAX_HISTORY_TURNS : int
        User+model pairs kept per session.
    DEFAULT_BLOG_HANDLE : str
        Blog handle assumed when an article snippet carries none.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"
    CATALOG_DIR: Path = BASE_DIR / "data" / "catalog"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str | None = None

    # ── API Keys ───────────────────────────────────────────────────────
    GOOGLE_API_KEY: SecretStr | None = None

    # ── MongoDB (interaction log, optional) ────────────────────────────
    MONGO_URI: SecretStr | None = None
    MONGO_DB_NAME: str = "shopsage"
    INTERACTIONS_COLLECTION: str = "chat_interactions"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/text-embedding-004"
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_TEMPERATURE: float = 0.7

    # ── LanceDB ────────────────────────────────────────────────────────
    PRODUCTS_TABLE: str = "products"
    ARTICLES_TABLE: str = "articles"

    # ── Retrieval & Memory ─────────────────────────────────────────────
    MATCH_THRESHOLD: float = 0.75
    MAX_CONTEXT_ITEMS: int = 3
    MAX_HISTORY_TURNS: int = 10

    # ── Timeouts (seconds) ─────────────────────────────────────────────
    EMBEDDING_TIMEOUT_S: float = 10.0
    RETRIEVAL_TIMEOUT_S: float = 5.0
    LLM_TIMEOUT_S: float = 60.0
    LOG_WRITE_TIMEOUT_S: float = 5.0

    # ── Store links ────────────────────────────────────────────────────
    DEFAULT_BLOG_HANDLE: str = "news"

    # ── HTTP ───────────────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: list[str] = ["*"]

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("MATCH_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"MATCH_THRESHOLD must be 0.0–1.0, got {v}")
        return v


    @field_validator("MAX_CONTEXT_ITEMS")
    @classmethod
    def _context_items_range(cls, v: int) -> int:
        if not 1 <= v <= 20:
            raise ValueError(f"MAX_CONTEXT_ITEMS must be 1–20, got {v}")
        return v


    @field_validator("MAX_HISTORY_TURNS")
    @classmethod
    def _history_turns_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"MAX_HISTORY_TURNS must be ≥ 1, got {v}")
        return v


    @field_validator("EMBEDDING_TIMEOUT_S", "RETRIEVAL_TIMEOUT_S", "LLM_TIMEOUT_S", "LOG_WRITE_TIMEOUT_S")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeouts must be > 0 seconds, got {v}")
        return v

    # ── Credential checks ──────────────────────────────────────────────

    def missing_credentials(self) -> list[str]:
        """Return the names of required secrets that are unset or blank."""
        missing: list[str] = []
        if self.GOOGLE_API_KEY is None or not self.GOOGLE_API_KEY.get_secret_value().strip():
            missing.append("GOOGLE_API_KEY")
        return missing

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from shopsage.config.settings import settings
settings = Settings()
