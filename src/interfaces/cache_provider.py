"""Abstract base class for one tier of the corpus cache.

The tiered cache (:class:`~src.services.corpus_cache.TieredCorpusCache`)
consults an ordered list of tiers: memory first, then the durable store.
Each tier is a key→entry map with lazy TTL expiry: an entry older than the
tier's TTL is treated as absent on read, never returned.

Tiers are keyed by :class:`~src.models.cache.CacheKey` and store parsed
:class:`~src.models.corpus.Corpus` objects; whether a tier compresses or
serialises them is its own business.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.cache import CacheEntry, CacheKey
from src.models.corpus import Corpus, CorpusType


class ICacheProvider(ABC):
    """Contract for a single cache tier.

    All operations are async so that disk- or network-backed tiers do not
    block the event loop.
    """

    @abstractmethod
    async def get(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry stored under *key*.

        Returns
        -------
        CacheEntry or None
            The entry if present and unexpired; ``None`` otherwise.  Expired
            entries may be evicted as a side effect.
        """

    @abstractmethod
    async def set(
        self, key: CacheKey, corpus: Corpus, loaded_at: float | None = None
    ) -> CacheEntry:
        """Store *corpus* under *key*.

        *loaded_at* is when the corpus left the network; it defaults to the
        current time.  Copying an entry between tiers passes the original
        stamp so the copy expires when the source entry would have.

        Returns
        -------
        CacheEntry
            The entry as stored.
        """

    @abstractmethod
    async def delete(self, key: CacheKey) -> bool:
        """Remove *key*.  Returns ``True`` when an entry was removed."""

    @abstractmethod
    async def delete_type(self, corpus_type: CorpusType) -> int:
        """Remove every entry for *corpus_type*.  Returns the count removed."""

    @abstractmethod
    async def clear(self) -> int:
        """Remove all entries.  Returns the count removed."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in log events."""

    async def describe(self) -> dict[str, Any]:
        """Return tier statistics for admin display.  Tiers may extend this."""
        return {"provider": self.get_provider_name()}
