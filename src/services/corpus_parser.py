"""Parsing of raw lyric dumps into :class:`~src.models.corpus.Corpus` objects.

Raw format (one file per corpus type)::

    ### Artist | Album | Title | Year
    first lyric line
    second lyric line

    next stanza ...
    ### Next Artist | Album | Next Title | 1998
    ...

A song starts at a ``###`` header with at least ``artist`` and ``title``
(``artist | title``), or the full ``artist | album | title | year`` form.
Blank lines separate stanzas and are not kept in ``lines``.  Songs without a
single word after tokenisation are skipped.

Tokenisation lowercases, replaces everything that is not a word character
(Portuguese accented letters included) with a space, and splits on
whitespace.  The dashboard's word-frequency tools use the same rule, so word
counts agree across the system.
"""

from __future__ import annotations

import re

import structlog

from src.models.cache import CorpusFilters
from src.models.corpus import Corpus, CorpusDocument, CorpusType, SongMetadata
from src.utils.errors import CorpusLoadError

logger = structlog.get_logger(logger_name=__name__)

_HEADER_PREFIX = "###"
_NON_WORD = re.compile(r"[^\wáéíóúâêôãõàèìòùäëïöüçñ\s]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def tokenize(text: str) -> list[str]:
    """Split *text* into lowercase words, dropping punctuation."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [word for word in _WHITESPACE.split(cleaned) if word]


def _parse_header(line: str, line_number: int) -> SongMetadata:
    fields = [part.strip() for part in line[len(_HEADER_PREFIX):].split("|")]
    if len(fields) == 2:
        artist, title = fields
        album, year = "", None
    elif len(fields) == 3:
        artist, album, title = fields
        year = None
    elif len(fields) == 4:
        artist, album, title, year = fields
    else:
        raise CorpusLoadError(
            f"Line {line_number}: song header needs 2-4 '|'-separated fields, got {len(fields)}"
        )
    if not artist or not title:
        raise CorpusLoadError(f"Line {line_number}: song header is missing artist or title")
    return SongMetadata(artist=artist, album=album, title=title, year=year or None)


def _build_document(metadata: SongMetadata, body: list[str], position: int) -> CorpusDocument:
    raw_text = "\n".join(body).strip("\n")
    lines = [line.strip() for line in body if line.strip()]
    return CorpusDocument(
        metadata=metadata,
        raw_text=raw_text,
        lines=lines,
        words=tokenize(raw_text),
        position=position,
    )


def parse_corpus(corpus_type: CorpusType, raw_text: str) -> Corpus:
    """Parse a raw lyric dump.

    Raises
    ------
    CorpusLoadError
        On a malformed header, lyric text before the first header, or a dump
        with no usable songs.
    """
    documents: list[CorpusDocument] = []
    metadata: SongMetadata | None = None
    body: list[str] = []
    skipped = 0

    def _flush() -> None:
        nonlocal skipped
        if metadata is None:
            return
        document = _build_document(metadata, body, position=len(documents))
        if document.words:
            documents.append(document)
        else:
            skipped += 1

    for line_number, line in enumerate(raw_text.splitlines(), start=1):
        if line.lstrip().startswith(_HEADER_PREFIX):
            _flush()
            metadata = _parse_header(line.lstrip(), line_number)
            body = []
        elif metadata is None:
            if line.strip():
                raise CorpusLoadError(
                    f"Line {line_number}: lyric text found before the first song header"
                )
        else:
            body.append(line)
    _flush()

    if not documents:
        raise CorpusLoadError(f"No songs with lyrics found in the {corpus_type.value} corpus")

    corpus = Corpus.from_documents(corpus_type, documents)
    logger.info(
        "corpus_parsed",
        corpus_type=corpus_type.value,
        documents=corpus.total_documents,
        words=corpus.total_words,
        skipped_empty=skipped,
    )
    return corpus


def filter_corpus(corpus: Corpus, filters: CorpusFilters | None) -> Corpus:
    """Return the sub-corpus matching *filters* (the corpus itself when unfiltered).

    Artist and album matches are case-insensitive.  A year range excludes
    songs whose year is missing or not numeric.
    """
    if filters is None:
        return corpus

    artists = {a.strip().casefold() for a in filters.artists or [] if a.strip()}
    albums = {a.strip().casefold() for a in filters.albums or [] if a.strip()}
    year_start, year_end = filters.year_start, filters.year_end
    if not (artists or albums or year_start is not None or year_end is not None):
        return corpus

    def _matches(doc: CorpusDocument) -> bool:
        meta = doc.metadata
        if artists and meta.artist.casefold() not in artists:
            return False
        if albums and meta.album.casefold() not in albums:
            return False
        if year_start is not None or year_end is not None:
            year = meta.year_as_int
            if year is None:
                return False
            if year_start is not None and year < year_start:
                return False
            if year_end is not None and year > year_end:
                return False
        return True

    selected = [doc for doc in corpus.documents if _matches(doc)]
    return Corpus.from_documents(corpus.corpus_type, selected)


def validate_corpus_integrity(corpus: Corpus) -> bool:
    """Cheap structural check run before persisting and after reading back.

    The model validator already guarantees consistent totals; this also
    rejects documents without metadata or words, which a tampered or
    truncated durable payload can still produce.
    """
    return all(
        doc.metadata.artist and doc.metadata.title and doc.words
        for doc in corpus.documents
    )
