"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two sources, in priority order:

  1. **Environment variables** -- e.g. ``ANTHROPIC_API_KEY=sk-ant-...``
     (highest priority, always wins)
  2. **.env file** -- ``key=value`` lines in the project root ``.env`` file

Field names map to upper-cased environment variables automatically
(``job_concurrency`` <- ``JOB_CONCURRENCY``).  Defaults apply when neither
source sets a value.  ``docmap.config.loader.load_settings`` adds a YAML
layer underneath both.

The .env file holds credentials and must never be committed.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Canonical provider names, used as keys throughout the router and logs.
KNOWN_LLM_PROVIDERS = ("anthropic", "openai", "moonshot")


class Settings(BaseSettings):
    """docmap application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM Providers ===
    # Empty string = "not configured"; the router skips providers whose
    # is_available() is False.
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_base_url: str = ""  # Custom base URL for OpenAI-compatible APIs
    openai_model: str = "gpt-4o-mini"
    moonshot_api_key: str = ""
    moonshot_base_url: str = "https://api.moonshot.cn/v1"
    moonshot_model: str = "moonshot-v1-32k"

    # === Provider routing ===
    default_llm_provider: str = "anthropic"
    llm_provider_priority: list[str] = Field(
        default_factory=lambda: list(KNOWN_LLM_PROVIDERS)
    )
    llm_timeout_seconds: float = Field(default=60.0, gt=0)
    llm_max_tokens: int = Field(default=2000, ge=1)
    llm_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    # Sliding-window budget per provider; 0 disables the limiter.
    llm_requests_per_minute: int = Field(default=50, ge=0)

    # === Chunking ===
    chunk_max_chars: int = Field(default=1000, ge=1)
    chunk_min_chars: int = Field(default=50, ge=0)
    chunk_overlap_chars: int = Field(default=0, ge=0)
    chunk_split_strategy: str = "paragraph"

    # === Job queue ===
    job_concurrency: int = Field(default=2, ge=1)
    # Global cap on in-flight provider calls across all documents.
    chunk_concurrency: int = Field(default=4, ge=1)
    job_max_attempts: int = Field(default=3, ge=1)
    job_backoff_base_seconds: float = Field(default=1.0, ge=0)
    job_backoff_max_seconds: float = Field(default=30.0, ge=0)
    job_stuck_timeout_seconds: float = Field(default=300.0, gt=0)
    job_stuck_check_interval_seconds: float | None = None
    job_max_retained: int = Field(default=1000, ge=1)
    min_success_ratio: float = Field(default=0.5, ge=0.0, le=1.0)

    # === Systems map ===
    graph_materiality_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    graph_min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    # === Storage ===
    storage_backend: str = "sqlite"  # "sqlite" or "memory"
    sqlite_db_path: str = "data/docmap.db"
    blob_dir: str = "data/blobs"

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return the LLM provider names that have non-empty API keys configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.moonshot_api_key:
            providers.append("moonshot")
        return providers
