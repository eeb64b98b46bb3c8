"""Per-run progress emission with a monotonic ``processed`` counter."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from src.models.annotation import AnnotationProgress

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[AnnotationProgress], Any]


class ProgressReporter:
    """Builds :class:`AnnotationProgress` snapshots for one run and emits them.

    ``processed`` never decreases: a report below the previous value is
    raised to it, and values above ``total`` are capped.  :meth:`finish`
    always emits ``processed == total`` at 100 %.

    Parameters
    ----------
    total:
        Number of input words.
    total_chunks:
        Number of scheduled chunks (1 on the fast path).
    on_progress:
        Optional sync or async callback.  A failing callback is logged and
        does not interrupt the run.
    """

    def __init__(
        self,
        total: int,
        total_chunks: int,
        on_progress: ProgressCallback | None = None,
        started_at: datetime | None = None,
    ) -> None:
        self._total = total
        self._total_chunks = total_chunks
        self._on_progress = on_progress
        self._started_at = started_at or datetime.now(tz=timezone.utc)  # noqa: UP017
        self._processed = 0
        self.history: list[AnnotationProgress] = []

    @property
    def started_at(self) -> datetime:
        return self._started_at

    def _percentage(self, processed: int) -> int:
        if self._total == 0:
            return 100
        return processed * 100 // self._total

    async def report(self, processed: int, current_chunk: int) -> AnnotationProgress:
        self._processed = min(max(processed, self._processed), self._total)
        progress = AnnotationProgress(
            processed=self._processed,
            total=self._total,
            current_chunk=current_chunk,
            total_chunks=self._total_chunks,
            percentage=self._percentage(self._processed),
            started_at=self._started_at,
        )
        self.history.append(progress)
        await self._emit(progress)
        return progress

    async def finish(self) -> AnnotationProgress:
        return await self.report(self._total, self._total_chunks)

    async def _emit(self, progress: AnnotationProgress) -> None:
        if self._on_progress is None:
            return
        try:
            result = self._on_progress(progress)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.warning(
                "progress_callback_error",
                processed=progress.processed,
                total=progress.total,
                error=str(exc),
            )
