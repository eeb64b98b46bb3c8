"""Shared pytest fixtures for the corpuslab test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from src.interfaces.annotation_provider import IAnnotationProvider
from src.interfaces.corpus_source import ICorpusSource
from src.models.annotation import AnnotationResult
from src.models.corpus import Corpus, CorpusType
from src.services.corpus_parser import parse_corpus

GAUCHO_DUMP = """\
### Jayme Caetano Braun | Payador | Bochincho | 1965
A la fresca, que bochincho
Um gaúcho de bombacha!

Chimarrão na madrugada
### Teixeirinha | Coração de Luto | Coração de Luto | 1960
Churrasquinho de mãe
Coração de luto, coração de luto
### Renato Borghetti | Gaita Ponto | Milonga para as Missões | 1984
Milonga, milonga, missões
"""

NORDESTINO_DUMP = """\
### Luiz Gonzaga | Asa Branca | Asa Branca | 1947
Quando olhei a terra ardendo
Qual fogueira de São João
### Dominguinhos | Nilopolitano | Eu só quero um xodó
Que falta eu sinto de um bem
"""

SERTANEJO_DUMP = """\
### Tonico e Tinoco | Chico Mineiro | Chico Mineiro | 1946
Cada vez que me alembro
Do amigo Chico Mineiro
"""

RAW_DUMPS = {
    CorpusType.GAUCHO: GAUCHO_DUMP,
    CorpusType.NORDESTINO: NORDESTINO_DUMP,
    CorpusType.SERTANEJO: SERTANEJO_DUMP,
}


class FakeClock:
    """Manually advanced wall clock, in seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingSource(ICorpusSource):
    """In-memory corpus source that counts fetches.

    When ``gate`` is set, every fetch waits on it, which lets a test pile up
    concurrent callers before the first fetch completes.
    """

    def __init__(self, dumps: dict[CorpusType, str] | None = None) -> None:
        self.dumps = dict(dumps or RAW_DUMPS)
        self.calls: list[CorpusType] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def fetch_raw(self, corpus_type: CorpusType) -> str:
        self.calls.append(corpus_type)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if self.error is not None:
                raise self.error
            return self.dumps[corpus_type]
        finally:
            self.in_flight -= 1

    def get_provider_name(self) -> str:
        return "counting"


class ScriptedAnnotator(IAnnotationProvider):
    """Annotation provider whose failures are scripted per chunk.

    ``failures`` maps the first word of a chunk to a list of exceptions
    raised on successive attempts; once the list is exhausted the chunk
    succeeds.  Every word is assigned domain ``D<len(word) % 3>``.
    """

    def __init__(self, failures: dict[str, list[Exception]] | None = None) -> None:
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls: list[list[str]] = []
        self.contexts: list[str | None] = []

    async def annotate(self, words: list[str], context: str | None = None) -> list[AnnotationResult]:
        self.calls.append(list(words))
        self.contexts.append(context)
        pending = self.failures.get(words[0])
        if pending:
            raise pending.pop(0)
        return [
            AnnotationResult(word=w, domain_code=f"D{len(w) % 3}", label="", confidence=0.9)
            for w in words
        ]

    def get_provider_name(self) -> str:
        return "scripted"


async def no_sleep(_seconds: float) -> None:
    """Drop-in for ``asyncio.sleep`` that still yields to the loop."""
    await asyncio.sleep(0)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def project_root() -> Path:
    return Path(__file__).parent.parent


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> CountingSource:
    return CountingSource()


@pytest.fixture
def gaucho_corpus() -> Corpus:
    return parse_corpus(CorpusType.GAUCHO, GAUCHO_DUMP)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "corpus_cache.db"
