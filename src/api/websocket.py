"""WebSocket endpoint streaming annotation progress.

A client connects to ``/ws/progress/{run_id}``; the handler registers a
listener with the :class:`ProgressTracker`, sends the current status
snapshot, then pushes one JSON message per progress report::

    {"run_id": "...", "processed": 100, "total": 250, "current_chunk": 2,
     "total_chunks": 3, "percentage": 40, "started_at": "..."}

The receive loop only keeps the connection open; pushes happen from the
listener callback.
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from src.models.annotation import AnnotationProgress
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_progress(websocket: WebSocket, run_id: str) -> None:
    """Stream progress for *run_id* until the client disconnects."""
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker

    await websocket.accept()
    _logger.info("websocket_connected", run_id=run_id)

    async def _on_progress(rid: str, progress: AnnotationProgress) -> None:
        # The socket may close between reports; cleanup happens in ``finally``.
        with contextlib.suppress(Exception):
            await websocket.send_json({"run_id": rid, **progress.model_dump(mode="json")})

    progress_tracker.register_listener(run_id, _on_progress)

    try:
        status = progress_tracker.get_status(run_id)
        await websocket.send_json({"run_id": run_id, **status})

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", run_id=run_id)

    finally:
        progress_tracker.unregister_listener(run_id, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", run_id=run_id)
