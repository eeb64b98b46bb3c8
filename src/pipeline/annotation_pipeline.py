"""Chunked, retrying semantic annotation of a word list.

Run states::

    Scheduling → ProcessingChunk(i) → Succeeded(i) | Retrying(i, n) | ChunkFailed(i)
               → (next i) → Aggregating → Complete

Once scheduling succeeds a run always reaches ``Complete``: a chunk that
exhausts its retries is recorded as failed and the run moves on.  The only
abort is a scheduling-time misuse (an empty word list), raised as
:class:`PipelineError` before any remote call.

Chunks are processed strictly one after another with a fixed pause between
them (not after the last) so the whole run stays inside the service's rate
budget.  A list that fits in one chunk skips scheduling altogether.

Progress reports: one after scheduling (multi-chunk runs only), one before
each chunk, and a final one at ``processed == total``.  250 words at chunk
size 100 therefore produce five reports.

There is no cancellation token: cancelling the task running :meth:`run`
abandons the partial result.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from functools import partial

import structlog

from src.interfaces.annotation_provider import IAnnotationProvider
from src.models.annotation import AnnotationChunk, AnnotationProgress, AnnotationRunResult, ChunkAttempt
from src.models.corpus import Corpus
from src.pipeline.chunk_scheduler import ChunkScheduler
from src.pipeline.progress_reporter import ProgressCallback, ProgressReporter
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.result_aggregator import ResultAggregator
from src.pipeline.retry_policy import RetryPolicy
from src.utils.errors import CorpusLabError, PipelineError
from src.utils.logging import get_logger, log_context

DEFAULT_INTER_CHUNK_DELAY = 0.5


class AnnotationPipeline:
    """Drives one annotation run from word list to aggregated result.

    Parameters
    ----------
    provider:
        The remote classification adapter.
    scheduler:
        Chunker; defaults to 100-word chunks.
    retry_policy:
        Per-chunk retry policy; defaults to 3 attempts from a 1 s base delay.
    inter_chunk_delay:
        Pause in seconds between consecutive chunks.
    default_context:
        Context hint sent with every call when :meth:`run` gets none.
    progress_tracker:
        Optional shared tracker; every report is also published there under
        the run ID so websocket listeners can follow along.
    sleep:
        Awaitable sleep used for the inter-chunk pause.
    """

    def __init__(
        self,
        provider: IAnnotationProvider,
        scheduler: ChunkScheduler | None = None,
        retry_policy: RetryPolicy | None = None,
        inter_chunk_delay: float = DEFAULT_INTER_CHUNK_DELAY,
        default_context: str | None = None,
        progress_tracker: ProgressTracker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._scheduler = scheduler or ChunkScheduler()
        self._retry = retry_policy or RetryPolicy()
        self._inter_chunk_delay = inter_chunk_delay
        self._default_context = default_context
        self._tracker = progress_tracker
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def run(
        self,
        words: list[str],
        context: str | None = None,
        on_progress: ProgressCallback | None = None,
        run_id: str | None = None,
    ) -> AnnotationRunResult:
        """Annotate *words* and return the aggregate.

        Raises
        ------
        PipelineError
            When *words* is empty.
        """
        run_id = run_id or uuid.uuid4().hex
        context = context or self._default_context
        started_at = datetime.now(tz=timezone.utc)  # noqa: UP017
        if self._tracker is not None:
            self._tracker.start_run(run_id)

        try:
            with log_context(run_id=run_id):
                result = await self._run(words, context, on_progress, run_id, started_at)
        except Exception as exc:
            if self._tracker is not None:
                self._tracker.fail(run_id, str(exc))
            self._logger.error("annotation_run_aborted", run_id=run_id, error=str(exc))
            raise

        if self._tracker is not None:
            self._tracker.complete(run_id, result)
        self._logger.info(
            "annotation_run_complete",
            run_id=run_id,
            total_words=result.total_words,
            annotations=len(result.annotations),
            failed_chunks=result.failed_chunks,
            coverage=result.coverage_percentage,
            domains_found=result.domains_found,
        )
        return result

    async def annotate_corpus(
        self,
        corpus: Corpus,
        context: str | None = None,
        unique: bool = True,
        on_progress: ProgressCallback | None = None,
        run_id: str | None = None,
    ) -> AnnotationRunResult:
        """Annotate every (by default distinct) word of *corpus*."""
        return await self.run(
            corpus.word_list(unique=unique),
            context=context,
            on_progress=on_progress,
            run_id=run_id,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        words: list[str],
        context: str | None,
        on_progress: ProgressCallback | None,
        run_id: str,
        started_at: datetime,
    ) -> AnnotationRunResult:
        if not words:
            raise PipelineError("Cannot annotate an empty word list")

        fast_path = not self._scheduler.needs_scheduling(words)
        if fast_path:
            chunks = [AnnotationChunk(index=0, words=list(words), offset=0)]
        else:
            chunks = self._scheduler.schedule(words)

        reporter = ProgressReporter(
            total=len(words),
            total_chunks=len(chunks),
            on_progress=self._fan_out(run_id, on_progress),
            started_at=started_at,
        )
        self._logger.info(
            "annotation_run_started",
            run_id=run_id,
            words=len(words),
            chunks=len(chunks),
            fast_path=fast_path,
        )
        if not fast_path:
            await reporter.report(0, 0)

        aggregator = ResultAggregator(len(words), len(chunks), started_at)
        attempt_log: list[ChunkAttempt] = []
        for position, chunk in enumerate(chunks):
            await reporter.report(chunk.offset, chunk.index + 1)
            try:
                results = await self._retry.execute(
                    partial(self._provider.annotate, chunk.words, context),
                    chunk.index,
                    attempt_log,
                )
            except CorpusLabError as exc:
                aggregator.add_failure(chunk)
                self._logger.error(
                    "chunk_failed",
                    run_id=run_id,
                    chunk_index=chunk.index,
                    words=len(chunk.words),
                    error=str(exc),
                )
            else:
                aggregator.add_success(chunk, results)

            if position < len(chunks) - 1 and self._inter_chunk_delay > 0:
                await self._sleep(self._inter_chunk_delay)

        await reporter.finish()
        return aggregator.build(attempt_log)

    def _fan_out(
        self, run_id: str, on_progress: ProgressCallback | None
    ) -> ProgressCallback | None:
        tracker = self._tracker
        if tracker is None:
            return on_progress

        async def _emit(progress: AnnotationProgress) -> None:
            await tracker.update(run_id, progress)
            if on_progress is not None:
                result = on_progress(progress)
                if asyncio.iscoroutine(result):
                    await result

        return _emit
