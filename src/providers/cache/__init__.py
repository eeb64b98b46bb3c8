"""Cache tiers.

MemoryCacheProvider is a process-local TTL map: fastest, but lost on restart
and not shared across processes.  SQLiteDurableCache persists compressed
corpora on disk so a restarted process skips the network.  Both implement
ICacheProvider; the tiered service in ``src/services/corpus_cache.py``
decides the order in which they are consulted.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.cache.sqlite_durable_cache import SQLiteDurableCache

__all__ = ["MemoryCacheProvider", "SQLiteDurableCache"]
