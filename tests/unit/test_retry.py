"""Tests for retry utilities."""

from unittest.mock import Mock

import pytest

from stream_harness.utils.retry import backoff_delays, exponential_backoff


def test_backoff_delays_grow_and_cap():
    delays = list(backoff_delays(5, initial_delay=1.0, max_delay=3.0, jitter=False))

    assert delays == [1.0, 2.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_retries_until_success():
    func = Mock(side_effect=[ConnectionError("reset"), ConnectionError("reset"), "ok"])

    result = await exponential_backoff(func, max_attempts=3, initial_delay=0.0, jitter=False)

    assert result == "ok"
    assert func.call_count == 3


@pytest.mark.asyncio
async def test_raises_last_error_after_max_attempts():
    async def always_fails():
        raise ConnectionError("still down")

    with pytest.raises(ConnectionError):
        await exponential_backoff(always_fails, max_attempts=2, initial_delay=0.0)


@pytest.mark.asyncio
async def test_unlisted_exceptions_are_not_retried():
    func = Mock(side_effect=ValueError("bad input"))

    with pytest.raises(ValueError):
        await exponential_backoff(func, max_attempts=3, initial_delay=0.0, exceptions=(ConnectionError,))

    assert func.call_count == 1
