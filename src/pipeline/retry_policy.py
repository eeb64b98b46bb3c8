"""Bounded retry with exponential backoff for one chunk's remote call.

Attempt ``n`` that fails with a transient error is followed by a wait of
``base_delay * 2 ** (n - 1)`` seconds, unless it was the last allowed
attempt.  With the defaults (3 attempts, 1 s base) a chunk costs at most
1 s + 2 s of backoff before it is given up.

Transient errors are :class:`TransportError` (including
:class:`RateLimitError`) and :class:`ValidationError`.  Any other exception is
re-raised at once, without further attempts.  Every attempt, successful or
not, is appended to the caller's attempt log.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.models.annotation import ChunkAttempt
from src.utils.errors import TRANSIENT_ERRORS, ConfigurationError, RateLimitError
from src.utils.logging import get_logger

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


class RetryPolicy:
    """Retries an async operation on transient failures.

    Parameters
    ----------
    max_attempts:
        Total attempts, the first one included.
    base_delay:
        Backoff after the first failed attempt, in seconds.
    sleep:
        Awaitable sleep function; tests pass a recorder instead of
        ``asyncio.sleep``.
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")
        if base_delay < 0:
            raise ConfigurationError(f"base_delay must be >= 0, got {base_delay}")
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def delay_for(self, attempt: int) -> float:
        """Backoff after failed attempt number *attempt* (1-based)."""
        return self._base_delay * 2 ** (attempt - 1)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        chunk_index: int,
        attempt_log: list[ChunkAttempt],
    ) -> T:
        """Run *operation* until it succeeds or the attempts run out.

        Raises
        ------
        TransportError, ValidationError
            The last transient error, once ``max_attempts`` is exhausted.
        Exception
            Any non-transient error, immediately.
        """
        for attempt in range(1, self._max_attempts + 1):
            try:
                result = await operation()
            except TRANSIENT_ERRORS as exc:
                final = attempt == self._max_attempts
                backoff = 0.0 if final else self.delay_for(attempt)
                attempt_log.append(
                    ChunkAttempt(
                        chunk_index=chunk_index,
                        attempt=attempt,
                        succeeded=False,
                        error_type=type(exc).__name__,
                        error=str(exc),
                        backoff_seconds=backoff,
                    )
                )
                event = "rate_limited" if isinstance(exc, RateLimitError) else "chunk_attempt_failed"
                self._logger.warning(
                    event,
                    chunk_index=chunk_index,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                    backoff_s=backoff,
                )
                if final:
                    raise
                await self._sleep(backoff)
            except Exception as exc:
                attempt_log.append(
                    ChunkAttempt(
                        chunk_index=chunk_index,
                        attempt=attempt,
                        succeeded=False,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                )
                raise
            else:
                attempt_log.append(
                    ChunkAttempt(chunk_index=chunk_index, attempt=attempt, succeeded=True)
                )
                if attempt > 1:
                    self._logger.info("chunk_recovered", chunk_index=chunk_index, attempt=attempt)
                return result

        # Unreachable: the loop either returns or raises.
        raise RuntimeError("retry loop exited without a result")
