"""In-process broadcast bus for cache invalidation events.

A :class:`BroadcastHub` plays the role of a named broadcast channel shared by
several execution contexts living in the same process (app workers sharing an
event loop, the CLI's warm-up task, tests simulating two tabs).  Each context
owns a :class:`LocalBroadcastBus` bound to the hub.  Publishing delivers the
event to every *other* bus on the hub; the publisher never hears its own
events.

Delivery follows the progress-listener rules: sync and async handlers are
both accepted, and a failing handler is logged and skipped so it cannot
block invalidation elsewhere.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.interfaces.invalidation_bus import IInvalidationBus, InvalidationHandler
from src.models.cache import InvalidationEvent
from src.utils.logging import get_logger


class BroadcastHub:
    """Shared channel connecting every :class:`LocalBroadcastBus`."""

    def __init__(self, name: str = "corpus-cache-invalidation") -> None:
        self.name = name
        self._buses: list[LocalBroadcastBus] = []

    def attach(self, bus: LocalBroadcastBus) -> None:
        if bus not in self._buses:
            self._buses.append(bus)

    def detach(self, bus: LocalBroadcastBus) -> None:
        if bus in self._buses:
            self._buses.remove(bus)

    @property
    def members(self) -> int:
        return len(self._buses)

    async def broadcast(self, sender: LocalBroadcastBus, event: InvalidationEvent) -> int:
        """Deliver *event* to every bus except *sender*.  Returns receivers reached."""
        receivers = [bus for bus in list(self._buses) if bus is not sender]
        for bus in receivers:
            await bus.deliver(event)
        return len(receivers)


class LocalBroadcastBus(IInvalidationBus):
    """One context's endpoint on a :class:`BroadcastHub`.

    Parameters
    ----------
    hub:
        The shared channel.
    context_id:
        Identifier of the owning context, used only in log events.
    """

    def __init__(self, hub: BroadcastHub, context_id: str) -> None:
        self._hub = hub
        self._context_id = context_id
        self._handlers: list[InvalidationHandler] = []
        self._closed = False
        self._logger: structlog.BoundLogger = get_logger(__name__)
        hub.attach(self)

    @property
    def context_id(self) -> str:
        return self._context_id

    async def publish(self, event: InvalidationEvent) -> None:
        if self._closed:
            self._logger.debug("invalidation_publish_after_close", context_id=self._context_id)
            return
        reached = await self._hub.broadcast(self, event)
        self._logger.debug(
            "invalidation_published",
            context_id=self._context_id,
            action=event.action,
            key=event.key,
            receivers=reached,
        )

    def subscribe(self, handler: InvalidationHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def deliver(self, event: InvalidationEvent) -> None:
        """Invoke every handler for an inbound *event*."""
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "invalidation_handler_error",
                    context_id=self._context_id,
                    action=event.action,
                    error=str(exc),
                    handler=getattr(handler, "__name__", repr(handler)),
                )

    def close(self) -> None:
        """Leave the hub and drop every handler."""
        self._closed = True
        self._handlers.clear()
        self._hub.detach(self)
