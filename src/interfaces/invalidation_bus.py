"""Abstract base class for the cross-context cache invalidation bus.

Several execution contexts (worker processes, browser tabs behind a
websocket, CLI sessions) may each hold their own cache service.  When one of
them invalidates or clears, the others must drop the same state.  The bus is
broadcast-only: there is no acknowledgement, and every receiver treats an
event as authoritative.

The cache logic depends only on this interface, never on the transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from src.models.cache import InvalidationEvent

InvalidationHandler = Callable[[InvalidationEvent], Awaitable[None] | None]


class IInvalidationBus(ABC):
    """Publish/subscribe contract for invalidation events."""

    @abstractmethod
    async def publish(self, event: InvalidationEvent) -> None:
        """Broadcast *event* to every other context on the bus."""

    @abstractmethod
    def subscribe(self, handler: InvalidationHandler) -> Callable[[], None]:
        """Register *handler* (sync or async) for inbound events.

        Returns
        -------
        Callable[[], None]
            Calling it removes the subscription.  Safe to call twice.
        """
