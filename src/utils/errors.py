"""Custom exception hierarchy for corpuslab.

All application exceptions inherit from :class:`CorpusLabError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "corpus_source", "annotation_service", "sqlite_cache")
caused the failure.

The hierarchy is organized by how callers are expected to react:

    CorpusLabError  (base -- catch-all for any corpuslab error)
    +-- UnsupportedCorpusError   (fatal, raised before any load attempt)
    +-- CorpusLoadError          (raw corpus could not be parsed / validated)
    +-- TransportError           (network failure talking to a service)
    |   +-- RateLimitError       (service signalled HTTP 429 / quota)
    +-- ValidationError          (response parsed but failed shape checks)
    +-- DurableWriteError        (durable tier write failed -- never fatal)
    +-- PipelineError            (annotation run misuse, e.g. empty input)
    +-- ConfigurationError       (startup / missing config)

``TransportError``, ``RateLimitError`` and ``ValidationError`` are the
*transient* family: the annotation retry policy retries them.  Everything
else propagates unchanged.
"""


class CorpusLabError(Exception):
    """Base exception for all corpuslab errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external collaborator triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[annotation_service] quota exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Corpus acquisition errors
# ---------------------------------------------------------------------------

class UnsupportedCorpusError(CorpusLabError):
    """Raised when a corpus type is not one of the known collections.

    Raised before any tier is consulted, so no load is ever attempted.
    """

    def __init__(
        self,
        message: str = "Unsupported corpus type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CorpusLoadError(CorpusLabError):
    """Raised when raw corpus data cannot be parsed into a valid corpus."""

    def __init__(
        self,
        message: str = "Corpus could not be loaded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DurableWriteError(CorpusLabError):
    """Raised when persisting an entry to the durable tier fails.

    The tiered cache catches this, logs it, and keeps serving the key from
    memory only.  It is never surfaced to a cache caller.
    """

    def __init__(
        self,
        message: str = "Durable cache write failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Remote service errors (transient family)
# ---------------------------------------------------------------------------

class TransportError(CorpusLabError):
    """Raised when a remote service is unreachable or returns an HTTP error.

    Retried by the annotation retry policy; surfaced directly (not retried)
    by a fresh corpus load.
    """

    def __init__(
        self,
        message: str = "Remote service request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(TransportError):
    """Raised when a remote service signals a rate limit (HTTP 429 / quota).

    Follows the same backoff path as any other transport failure, but is
    logged under its own event name.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ValidationError(CorpusLabError):
    """Raised when a response parsed successfully but failed shape checks.

    Treated exactly like a chunk failure: retried, then skipped.
    """

    def __init__(
        self,
        message: str = "Response failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(CorpusLabError):
    """Raised when an annotation run cannot be scheduled (e.g. empty input)."""

    def __init__(
        self,
        message: str = "Annotation pipeline failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(CorpusLabError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


TRANSIENT_ERRORS: tuple[type[CorpusLabError], ...] = (TransportError, ValidationError)
