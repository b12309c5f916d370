from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.  An empty
    API key means the corresponding provider is not configured and the offline
    implementation is used instead.
    """

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    assemblyai_api_key: str = ""
    google_search_api_key: str = ""  # optional, enables external reading links
    google_search_cx: str = ""
    google_search_max_results: int = 5

    # Storage
    database_url: str = "sqlite:///./talknotes.db"
    audio_upload_dir: str = "uploads"

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    embedding_model: str = "text-embedding-3-small"
    embedding_strategy: str = "auto"
    llm_model: str = "claude-sonnet-4-20250514"
    max_background_workers: int = 2

    # Timeouts (seconds) for external calls
    llm_timeout_seconds: float = 120.0
    embedding_timeout_seconds: float = 60.0
    transcription_timeout_seconds: float = 900.0
    transcription_poll_interval_seconds: float = 3.0
    search_timeout_seconds: float = 10.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]
