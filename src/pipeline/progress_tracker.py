"""Annotation run progress tracking with callback-based listener notification.

Stores the latest :class:`AnnotationProgress` snapshot and phase for each
annotation run and broadcasts updates to registered listener callbacks.
Listeners are keyed by run ID so several runs can proceed concurrently
without cross-talk.

    AnnotationPipeline ──report()──→ ProgressTracker ──callback()──→ WebSocket handler
                                                      ──→ (any other listener)

Listener errors are caught and logged so one broken listener (typically a
closed websocket) cannot stall the run or starve the other listeners.  Both
sync and async callbacks are supported.

Run history is bounded: statuses live in a ``cachetools.TTLCache``, so a
run is forgotten once it is older than the retention window or once
``max_runs`` newer runs have been recorded.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from cachetools import TTLCache

from src.models.annotation import AnnotationPhase, AnnotationProgress, AnnotationRunResult
from src.utils.logging import get_logger

ProgressListener = Callable[[str, AnnotationProgress], Any]


@dataclass
class _RunStatus:
    """Internal snapshot of one run.  Mutable and never serialised directly."""

    phase: AnnotationPhase = AnnotationPhase.SCHEDULING
    progress: AnnotationProgress | None = None
    result: AnnotationRunResult | None = None
    error: str | None = None


class ProgressTracker:
    """Tracks and broadcasts annotation progress via callbacks.

    Parameters
    ----------
    max_runs:
        Most runs remembered at once; the least recently used is dropped first.
    retention_seconds:
        How long a run stays queryable after it was started.
    clock:
        Time source shared with the underlying ``TTLCache``.
    """

    def __init__(
        self,
        max_runs: int = 256,
        retention_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._statuses: TTLCache[str, _RunStatus] = TTLCache(
            maxsize=max_runs, ttl=retention_seconds, timer=clock
        )
        self._listeners: dict[str, list[ProgressListener]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start_run(self, run_id: str) -> None:
        self._statuses[run_id] = _RunStatus()

    async def update(self, run_id: str, progress: AnnotationProgress) -> None:
        """Record *progress* for *run_id* and notify its listeners."""
        status = self._statuses.setdefault(run_id, _RunStatus())
        status.progress = progress
        if status.phase is AnnotationPhase.SCHEDULING:
            status.phase = AnnotationPhase.PROCESSING

        self._logger.debug(
            "progress_update",
            run_id=run_id,
            processed=progress.processed,
            total=progress.total,
            chunk=progress.current_chunk,
            total_chunks=progress.total_chunks,
            percentage=progress.percentage,
        )
        await self._notify_listeners(run_id, progress)

    def complete(self, run_id: str, result: AnnotationRunResult) -> None:
        status = self._statuses.setdefault(run_id, _RunStatus())
        status.phase = AnnotationPhase.COMPLETE
        status.result = result

    def fail(self, run_id: str, error: str) -> None:
        status = self._statuses.setdefault(run_id, _RunStatus())
        status.phase = AnnotationPhase.FAILED
        status.error = error

    def has_run(self, run_id: str) -> bool:
        return run_id in self._statuses

    def get_result(self, run_id: str) -> AnnotationRunResult | None:
        status = self._statuses.get(run_id)
        return status.result if status else None

    def register_listener(self, run_id: str, callback: ProgressListener) -> None:
        """Register *callback* ``(run_id, progress)`` for updates of *run_id*."""
        listeners = self._listeners.setdefault(run_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                run_id=run_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, run_id: str, callback: ProgressListener) -> None:
        listeners = self._listeners.get(run_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                run_id=run_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(run_id, None)

    @property
    def tracked_runs(self) -> int:
        self._statuses.expire()
        return len(self._statuses)

    def get_status(self, run_id: str) -> dict[str, Any]:
        """Return the current phase and latest progress for a run.

        Returns
        -------
        dict
            Keys: ``phase``, ``progress`` (dict or ``None``), ``error`` and
            ``coverage_percentage`` (``None`` until the run completes).
            Unknown runs report phase ``scheduling`` with no progress.
        """
        status = self._statuses.get(run_id) or _RunStatus()
        return {
            "phase": status.phase.value,
            "progress": status.progress.model_dump(mode="json") if status.progress else None,
            "error": status.error,
            "coverage_percentage": status.result.coverage_percentage if status.result else None,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, run_id: str, progress: AnnotationProgress) -> None:
        for callback in list(self._listeners.get(run_id, [])):
            try:
                result = callback(run_id, progress)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    run_id=run_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
