"""Abstract base class for raw corpus sources.

A source only *fetches* the raw lyric dump for a corpus type; parsing and
filtering happen in :class:`~src.services.corpus_loader.CorpusLoader`, so the
same parser runs no matter where the bytes come from.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.corpus import CorpusType


class ICorpusSource(ABC):
    """Contract for fetching raw corpus text."""

    @abstractmethod
    async def fetch_raw(self, corpus_type: CorpusType) -> str:
        """Return the raw lyric dump for *corpus_type*.

        Raises
        ------
        src.utils.errors.TransportError
            When the source cannot be reached or answers with an error.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in log events and error messages."""
