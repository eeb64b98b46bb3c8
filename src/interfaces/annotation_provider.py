"""Abstract base class for remote word-classification services.

One call classifies one chunk of words into semantic domains.  The pipeline
wraps every call in a retry policy, so implementations must signal failure
with the transient error family rather than returning partial garbage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.annotation import AnnotationResult


class IAnnotationProvider(ABC):
    """Contract for a per-chunk classification call."""

    @abstractmethod
    async def annotate(self, words: list[str], context: str | None = None) -> list[AnnotationResult]:
        """Classify *words* and return the well-formed results.

        Parameters
        ----------
        words:
            The chunk's words, at most one chunk's worth.
        context:
            Optional free-text hint forwarded to the service (e.g. the
            corpus genre).

        Returns
        -------
        list[AnnotationResult]
            Accepted results only; malformed entries are dropped.

        Raises
        ------
        src.utils.errors.TransportError
            Network failure or HTTP error (``RateLimitError`` for 429).
        src.utils.errors.ValidationError
            Empty payload, ``success: false``, or a non-list result field.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in log events and error messages."""
