"""Configuration module — exports Settings, load_config, and a module-level singleton.

``settings`` is read once at import time; tests and the CLI construct their
own ``Settings(...)`` instances instead of mutating this one.
"""

from src.config.loader import load_config
from src.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "load_config", "settings"]
