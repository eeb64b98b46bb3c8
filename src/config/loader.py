"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  — Static defaults checked into the repo
#   2. .env file           — Local developer overrides (not committed)
#   3. Environment vars    — Set at deploy time
#
# The _deep_merge helper does recursive dict merging:
#   base = {"annotation": {"context": "lyrics"}}
#   overrides = {"annotation": {"chunk_size": 100}}
#   result = {"annotation": {"context": "lyrics", "chunk_size": 100}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read otherwise.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "cache": {
            "db_path": settings.cache_db_path,
            "memory_max_entries": settings.cache_memory_max_entries,
            "ttl_seconds": settings.cache_ttl_seconds,
            "filtered_ttl_seconds": settings.cache_filtered_ttl_seconds,
            "max_total_bytes": settings.cache_max_total_bytes,
        },
        "annotation": {
            "service_url": settings.annotation_service_url,
            "chunk_size": settings.annotation_chunk_size,
            "max_attempts": settings.annotation_max_attempts,
            "base_delay_seconds": settings.annotation_base_delay_seconds,
            "inter_chunk_delay_seconds": settings.annotation_inter_chunk_delay_seconds,
        },
        "sources": settings.get_available_sources(),
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
