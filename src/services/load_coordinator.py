"""Single-flight coordination of slow cache loads.

For any cache key at most one load runs at a time.  The first caller creates
a :class:`LoadTicket` wrapping an ``asyncio.Task``; callers arriving while
it is pending await the same task and receive the very same result object
(or the very same exception).  The ticket is retired as soon as the task
settles, whatever the outcome, so a failed load never poisons later
requests.

A pending ticket can be *superseded* when its key is invalidated mid-load.
Callers already waiting on it still get its result, but the next caller does
not join it: a fresh load is queued behind it and only starts once the old
one has settled, so a key never has two fetches running at once.

Callers await the shared task through ``asyncio.shield``: a caller that is
cancelled stops waiting, but the load keeps running for everyone else.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from functools import partial
from typing import Any, TypeVar

import structlog

from src.models.cache import CacheKey

logger = structlog.get_logger(logger_name=__name__)

T = TypeVar("T")


@dataclass
class LoadTicket:
    """The one pending load for a key."""

    key: CacheKey
    task: asyncio.Task
    created_at: float
    joiners: int = 0
    superseded: bool = False


async def _after(previous: asyncio.Task, loader: Callable[[], Coroutine[Any, Any, T]]) -> T:
    # The previous load's outcome belongs to its own callers.
    await asyncio.wait([previous])
    return await loader()


class LoadCoordinator:
    """Per-key single-flight executor."""

    def __init__(self) -> None:
        self._tickets: dict[CacheKey, LoadTicket] = {}

    @property
    def in_flight(self) -> int:
        return len(self._tickets)

    def is_in_flight(self, key: CacheKey) -> bool:
        """``True`` when a call to :meth:`run` for *key* would join a pending load."""
        ticket = self._tickets.get(key)
        return ticket is not None and not ticket.superseded

    async def run(self, key: CacheKey, loader: Callable[[], Coroutine[Any, Any, T]]) -> T:
        """Run ``loader()`` for *key*, or join the load already pending for it."""
        ticket = self._tickets.get(key)
        if ticket is None or ticket.superseded:
            if ticket is None:
                coro = loader()
            else:
                coro = _after(ticket.task, loader)
                logger.debug("load_queued_behind_superseded", key=str(key))
            task = asyncio.create_task(coro, name=f"load:{key}")
            ticket = LoadTicket(key=key, task=task, created_at=time.monotonic())
            self._tickets[key] = ticket
            task.add_done_callback(partial(self._retire, ticket))
            logger.debug("load_started", key=str(key))
        else:
            ticket.joiners += 1
            logger.debug("load_joined", key=str(key), joiners=ticket.joiners)
        return await asyncio.shield(ticket.task)

    def supersede(self, predicate: Callable[[CacheKey], bool]) -> int:
        """Stop new callers from joining the pending loads whose key matches.

        The loads keep running for the callers already waiting on them.
        Returns the number of tickets marked.
        """
        marked = 0
        for key, ticket in self._tickets.items():
            if predicate(key) and not ticket.superseded:
                ticket.superseded = True
                marked += 1
        if marked:
            logger.debug("load_tickets_superseded", count=marked)
        return marked

    def _retire(self, ticket: LoadTicket, task: asyncio.Task) -> None:
        if self._tickets.get(ticket.key) is ticket:
            del self._tickets[ticket.key]
        # Mark the exception retrieved; the awaiting callers re-raise it.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("load_failed", key=str(ticket.key), error=str(task.exception()))
