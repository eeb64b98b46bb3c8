"""Merge per-chunk annotation results into one run result."""

from __future__ import annotations

from datetime import datetime

from src.models.annotation import AnnotationChunk, AnnotationResult, AnnotationRunResult, ChunkAttempt

# Domain code the service assigns to words it could not classify.
UNCLASSIFIED_DOMAIN = "NC"


class ResultAggregator:
    """Collects chunk outcomes and produces an :class:`AnnotationRunResult`.

    Results are merged in chunk-index order regardless of the order in which
    chunks were recorded.  A failed chunk contributes no annotations but its
    words still count as processed.  ``domains_found`` is the number of
    distinct domain labels (the code when a result has no label);
    ``classified_words`` leaves out words the service marked unclassified.
    """

    def __init__(self, total_words: int, total_chunks: int, started_at: datetime) -> None:
        self._total_words = total_words
        self._total_chunks = total_chunks
        self._started_at = started_at
        self._succeeded: dict[int, tuple[AnnotationChunk, list[AnnotationResult]]] = {}
        self._failed: dict[int, AnnotationChunk] = {}

    def add_success(self, chunk: AnnotationChunk, results: list[AnnotationResult]) -> None:
        self._succeeded[chunk.index] = (chunk, results)

    def add_failure(self, chunk: AnnotationChunk) -> None:
        self._failed[chunk.index] = chunk

    @property
    def processed_words(self) -> int:
        return sum(len(chunk.words) for chunk, _ in self._succeeded.values()) + sum(
            len(chunk.words) for chunk in self._failed.values()
        )

    def build(self, attempt_log: list[ChunkAttempt]) -> AnnotationRunResult:
        annotations = [
            result
            for index in sorted(self._succeeded)
            for result in self._succeeded[index][1]
        ]
        covered = sum(len(chunk.words) for chunk, _ in self._succeeded.values())
        # Every distinct label counts, the unclassified one included.
        domains = {a.label or a.domain_code for a in annotations}
        classified = sum(1 for a in annotations if a.domain_code != UNCLASSIFIED_DOMAIN)
        return AnnotationRunResult(
            annotations=annotations,
            total_words=self._total_words,
            processed_words=self.processed_words,
            covered_words=covered,
            classified_words=classified,
            domains_found=len(domains),
            total_chunks=self._total_chunks,
            failed_chunks=sorted(self._failed),
            attempt_log=sorted(attempt_log, key=lambda a: (a.chunk_index, a.attempt)),
            started_at=self._started_at,
        )
