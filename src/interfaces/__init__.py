"""Public interface definitions for every external collaborator.

Every storage tier, corpus source, classification service and broadcast
primitive is accessed exclusively through the abstract base classes defined
in this package.  Concrete adapters live in ``src/providers/`` and are
injected at runtime (see ``src/main.py``), so unit tests can substitute
fakes without real network calls.

CONCRETE PROVIDER MAP:
    Interface             →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    ICacheProvider        →  MemoryCacheProvider, SQLiteDurableCache
    ICorpusSource         →  HttpCorpusSource, FileCorpusSource
    IAnnotationProvider   →  HttpAnnotationProvider
    IInvalidationBus      →  LocalBroadcastBus
"""

from src.interfaces.annotation_provider import IAnnotationProvider
from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.corpus_source import ICorpusSource
from src.interfaces.invalidation_bus import IInvalidationBus, InvalidationHandler

__all__ = [
    "IAnnotationProvider",
    "ICacheProvider",
    "ICorpusSource",
    "IInvalidationBus",
    "InvalidationHandler",
]
