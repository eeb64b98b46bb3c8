"""Split a word list into bounded chunks for the classification service."""

from __future__ import annotations

from src.models.annotation import AnnotationChunk
from src.utils.errors import ConfigurationError, PipelineError

DEFAULT_CHUNK_SIZE = 100


class ChunkScheduler:
    """Order-preserving fixed-size chunker.

    ``N`` words with chunk size ``C`` give ``ceil(N / C)`` chunks; every chunk
    but the last holds exactly ``C`` words, and concatenating the chunks in
    index order reproduces the input.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {chunk_size}")
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def needs_scheduling(self, words: list[str]) -> bool:
        """``False`` when the whole list fits in one call."""
        return len(words) > self._chunk_size

    def schedule(self, words: list[str]) -> list[AnnotationChunk]:
        """Return the chunks for *words*.

        Raises
        ------
        PipelineError
            When *words* is empty: there is nothing to annotate.
        """
        if not words:
            raise PipelineError("Cannot schedule an annotation run for an empty word list")
        size = self._chunk_size
        return [
            AnnotationChunk(index=index, words=words[offset:offset + size], offset=offset)
            for index, offset in enumerate(range(0, len(words), size))
        ]
