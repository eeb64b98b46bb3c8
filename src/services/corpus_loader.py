"""Network loader: fetch a raw corpus dump and parse it."""

from __future__ import annotations

import structlog

from src.interfaces.corpus_source import ICorpusSource
from src.models.corpus import Corpus, CorpusType
from src.services.corpus_parser import parse_corpus

logger = structlog.get_logger(logger_name=__name__)


class CorpusLoader:
    """Turns an :class:`ICorpusSource` into parsed :class:`Corpus` objects.

    This is the slow path of the tiered cache.  Transport errors from the
    source and :class:`CorpusLoadError` from the parser propagate unchanged;
    retrying is the caller's decision.
    """

    def __init__(self, source: ICorpusSource) -> None:
        self._source = source

    @property
    def source_name(self) -> str:
        return self._source.get_provider_name()

    async def load(self, corpus_type: CorpusType) -> Corpus:
        logger.info("corpus_load_started", corpus_type=corpus_type.value, source=self.source_name)
        raw = await self._source.fetch_raw(corpus_type)
        return parse_corpus(corpus_type, raw)
