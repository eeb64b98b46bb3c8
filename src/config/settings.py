"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (priority order):
#
#   1. **Environment variables** — e.g. ANNOTATION_SERVICE_URL=https://...
#   2. **.env file** — key=value lines in the project root .env file
#
# Field ``annotation_chunk_size`` maps to env var ``ANNOTATION_CHUNK_SIZE``.
# Defaults below are the values the pipeline was tuned with against the
# classification service (100 words per call stays inside its execution
# budget; 500 ms between chunks stays under its per-caller rate limit).
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """corpuslab application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Corpus source ===
    corpus_source_url: str = "http://localhost:8080/corpora"
    corpus_source_dir: str = ""  # When set, raw corpora are read from disk instead

    # === Tiered cache ===
    cache_db_path: str = "data/corpus_cache.db"
    cache_memory_max_entries: int = 16
    cache_ttl_seconds: int = 30 * 60
    cache_filtered_ttl_seconds: int = 30 * 60  # durable tier, filtered corpora only
    cache_max_entry_bytes: int = 50 * 1024 * 1024
    cache_compression_threshold_bytes: int = 50 * 1024
    cache_max_total_bytes: int = 200 * 1024 * 1024  # oldest rows evicted beyond this
    cache_write_max_attempts: int = 3
    cache_write_retry_delay_seconds: float = 0.1

    # === Annotation service ===
    annotation_service_url: str = "http://localhost:54321/functions/v1/annotate-semantic-domain"
    annotation_api_key: str = ""
    annotation_timeout_seconds: float = 60.0
    annotation_chunk_size: int = 100
    annotation_max_attempts: int = 3
    annotation_base_delay_seconds: float = 1.0
    annotation_inter_chunk_delay_seconds: float = 0.5
    annotation_malformed_warn_ratio: float = 0.1
    annotation_history_max_runs: int = 256
    annotation_history_retention_seconds: int = 60 * 60

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_sources(self) -> list[str]:
        """Return the corpus source backends that are configured."""
        sources: list[str] = []
        if self.corpus_source_dir:
            sources.append("filesystem")
        if self.corpus_source_url:
            sources.append("http")
        return sources
