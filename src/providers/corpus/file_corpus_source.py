"""Filesystem corpus source: reads ``<directory>/<corpus_type>.txt``."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from src.interfaces.corpus_source import ICorpusSource
from src.models.corpus import CorpusType
from src.utils.errors import CorpusLoadError

logger = structlog.get_logger(logger_name=__name__)


class FileCorpusSource(ICorpusSource):
    """Raw corpora bundled on local disk (offline use and tests)."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def path_for(self, corpus_type: CorpusType) -> Path:
        return self._directory / f"{corpus_type.value}.txt"

    async def fetch_raw(self, corpus_type: CorpusType) -> str:
        path = self.path_for(corpus_type)
        if not path.is_file():
            raise CorpusLoadError(
                f"No raw corpus file at {path}",
                provider_name=self.get_provider_name(),
            )
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        logger.info("corpus_read", corpus_type=corpus_type.value, path=str(path), chars=len(text))
        return text

    def get_provider_name(self) -> str:
        return "corpus_file"
