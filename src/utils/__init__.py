"""Utility modules for corpuslab.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at CorpusLabError;
  the transient family (TransportError, RateLimitError, ValidationError) is
  what the annotation retry policy retries.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    TRANSIENT_ERRORS,
    ConfigurationError,
    CorpusLabError,
    CorpusLoadError,
    DurableWriteError,
    PipelineError,
    RateLimitError,
    TransportError,
    UnsupportedCorpusError,
    ValidationError,
)

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger, log_context

__all__ = [
    "TRANSIENT_ERRORS",
    "ConfigurationError",
    "CorpusLabError",
    "CorpusLoadError",
    "DurableWriteError",
    "PipelineError",
    "RateLimitError",
    "TransportError",
    "UnsupportedCorpusError",
    "ValidationError",
    "configure_logging",
    "get_logger",
    "log_context",
]
