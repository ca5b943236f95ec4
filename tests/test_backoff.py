"""Tests for the backoff library."""

import asyncio

import pytest

from helm_extensions.backoff import Backoff, retry
from helm_extensions.exceptions import (
    BackoffExhaustedError,
    ReadinessCancelledError,
    ReadinessError,
)

FAST = Backoff(initial_delay=0.001, max_delay=0.005)


def test_delay() -> None:
    """Test the delay grows exponentially up to the maximum."""
    backoff = Backoff(initial_delay=1.0, factor=2.0, max_delay=5.0)
    assert [backoff.delay(attempt) for attempt in range(1, 6)] == [
        1.0,
        2.0,
        4.0,
        5.0,
        5.0,
    ]


async def test_retry_until_success() -> None:
    """Test the function is called until it succeeds."""
    attempts = 0
    errors: list[int] = []

    async def func() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 4:
            raise ValueError("not yet")
        return "ready"

    result = await retry(func, FAST, on_error=lambda n, err: errors.append(n))
    assert result == "ready"
    assert attempts == 4
    assert errors == [1, 2, 3]


async def test_retry_exhausted() -> None:
    """Test giving up after the maximum number of attempts."""
    attempts = 0

    async def func() -> None:
        nonlocal attempts
        attempts += 1
        raise ValueError("never")

    backoff = Backoff(initial_delay=0.001, max_attempts=3)
    with pytest.raises(BackoffExhaustedError) as exc_info:
        await retry(func, backoff)
    assert attempts == 3
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, ValueError)
    assert isinstance(exc_info.value, ReadinessError)


async def test_retry_stop_already_set() -> None:
    """Test the function is not called once stopped."""
    called = False

    async def func() -> None:
        nonlocal called
        called = True

    stop = asyncio.Event()
    stop.set()
    with pytest.raises(ReadinessCancelledError):
        await retry(func, FAST, stop)
    assert not called


async def test_retry_stop_while_waiting() -> None:
    """Test the stop event interrupts the delay between attempts."""
    stop = asyncio.Event()
    attempts = 0

    async def func() -> None:
        nonlocal attempts
        attempts += 1
        raise ValueError("not yet")

    backoff = Backoff(initial_delay=60.0, max_delay=60.0)
    task = asyncio.create_task(retry(func, backoff, stop))
    await asyncio.sleep(0.01)
    stop.set()
    with pytest.raises(ReadinessCancelledError, match="not yet"):
        await asyncio.wait_for(task, 5)
    assert attempts == 1
