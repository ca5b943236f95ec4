"""Retry with exponential backoff, bounded by cancellation.

The startup of the extensions controller has to wait for the Chart kind to
be registered before a watch can be created. The wait has no natural upper
bound so by default only the caller's stop event ends it, but a maximum
number of attempts may be configured as well. The two outcomes raise
different exceptions so callers can tell them apart.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
from typing import TypeVar

from .exceptions import BackoffExhaustedError, ReadinessCancelledError

__all__ = ["Backoff", "retry"]

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Backoff:
    """Exponential backoff parameters."""

    initial_delay: float = 0.1
    """Delay before the second attempt."""

    factor: float = 2.0
    """Multiplier applied to the delay after every failed attempt."""

    max_delay: float = 10.0
    """Upper bound of a single delay."""

    max_attempts: int | None = None
    """Give up after this many attempts, or never if unset."""

    def delay(self, attempt: int) -> float:
        """Return the delay after the given (1-based) failed attempt."""
        return min(self.initial_delay * (self.factor ** (attempt - 1)), self.max_delay)


async def _sleep(delay: float, stop: asyncio.Event | None) -> bool:
    """Sleep for the delay, returning True if the stop event fired first."""
    if stop is None:
        await asyncio.sleep(delay)
        return False
    try:
        async with asyncio.timeout(delay):
            await stop.wait()
    except TimeoutError:
        return False
    return True


async def retry(
    func: Callable[[], Awaitable[T]],
    backoff: Backoff,
    stop: asyncio.Event | None = None,
    on_error: Callable[[int, Exception], None] | None = None,
) -> T:
    """Call `func` until it succeeds.

    Raises:
        ReadinessCancelledError: If the stop event is set before success.
        BackoffExhaustedError: If `backoff.max_attempts` attempts all failed.
    """
    attempt = 0
    last_error: Exception | None = None
    while True:
        if stop is not None and stop.is_set():
            raise ReadinessCancelledError(
                f"Cancelled after {attempt} attempts: {last_error}"
            )
        attempt += 1
        try:
            return await func()
        except Exception as err:
            last_error = err
            if on_error is not None:
                on_error(attempt, err)
        if backoff.max_attempts is not None and attempt >= backoff.max_attempts:
            raise BackoffExhaustedError(attempt, last_error)
        delay = backoff.delay(attempt)
        _LOGGER.debug("Attempt %d failed, retrying in %.2fs", attempt, delay)
        if await _sleep(delay, stop):
            raise ReadinessCancelledError(
                f"Cancelled after {attempt} attempts: {last_error}"
            )
