"""Corpus domain models — song-lyric collections parsed into documents.

A :class:`Corpus` is the decompressed, in-memory representation that the
tiered cache hands to consumers.  It is expensive to build (a full parse of a
multi-megabyte lyric dump), which is why it is cached at all.

All models are frozen; the cache hands the *same* object to every caller of
a key, so nobody is allowed to mutate it in place.
"""

from __future__ import annotations

import hashlib
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CorpusType(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """The regional song-lyric collections the dashboard can load."""

    GAUCHO = "gaucho"
    NORDESTINO = "nordestino"
    SERTANEJO = "sertanejo"


class SongMetadata(BaseModel):
    """Header fields for one song in a lyric dump."""

    model_config = ConfigDict(frozen=True)

    artist: str
    album: str = ""
    title: str
    year: str | None = None

    @property
    def year_as_int(self) -> int | None:
        """The release year as an integer, or ``None`` when missing/unparseable."""
        if self.year and self.year.strip().isdigit():
            return int(self.year.strip())
        return None


class CorpusDocument(BaseModel):
    """One song: its metadata, the raw lyric text, and its tokenisation."""

    model_config = ConfigDict(frozen=True)

    metadata: SongMetadata
    raw_text: str
    lines: list[str] = Field(default_factory=list)
    words: list[str] = Field(default_factory=list)
    # Position of the song inside the full (unfiltered) corpus.
    position: int = Field(default=0, ge=0)


class Corpus(BaseModel):
    """A parsed corpus.

    Invariant: ``total_words == sum(len(d.words) for d in documents)`` and
    ``total_documents == len(documents)``.  Both are checked on construction,
    so a corpus read back from the durable tier with tampered counts fails
    validation instead of silently misreporting statistics.
    """

    model_config = ConfigDict(frozen=True)

    corpus_type: CorpusType
    total_documents: int = Field(ge=0)
    total_words: int = Field(ge=0)
    documents: list[CorpusDocument] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_totals(self) -> Corpus:
        if self.total_documents != len(self.documents):
            msg = (
                f"total_documents={self.total_documents} but "
                f"{len(self.documents)} documents present"
            )
            raise ValueError(msg)
        word_count = sum(len(doc.words) for doc in self.documents)
        if self.total_words != word_count:
            msg = f"total_words={self.total_words} but documents hold {word_count} words"
            raise ValueError(msg)
        return self

    @classmethod
    def from_documents(cls, corpus_type: CorpusType, documents: list[CorpusDocument]) -> Corpus:
        """Build a corpus whose totals are derived from *documents*."""
        return cls(
            corpus_type=corpus_type,
            total_documents=len(documents),
            total_words=sum(len(doc.words) for doc in documents),
            documents=documents,
        )

    def word_list(self, unique: bool = False) -> list[str]:
        """Every word of the corpus in document order.

        With ``unique=True`` only the first occurrence of each word is kept,
        which is what the annotation pipeline is normally fed.
        """
        words = [word for doc in self.documents for word in doc.words]
        if not unique:
            return words
        return list(dict.fromkeys(words))

    def content_version(self) -> str:
        """Short content fingerprint stored next to durable-tier entries.

        Hashes the ``artist:title:word_count`` signature of the first ten
        documents: cheap to compute for a large corpus and changes whenever
        the source dump is re-ordered or re-tokenised.
        """
        signature = "|".join(
            f"{doc.metadata.artist}:{doc.metadata.title}:{len(doc.words)}"
            for doc in self.documents[:10]
        )
        return "v" + hashlib.sha256(signature.encode("utf-8")).hexdigest()[:12]
