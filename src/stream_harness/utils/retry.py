"""Retry utilities with exponential backoff."""

import asyncio
import inspect
import random
import logging
from typing import Callable, Any

logger = logging.getLogger(__name__)


def backoff_delays(
    max_attempts: int,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True
):
    """Yield the sleep before each retry (max_attempts - 1 values)."""
    delay = initial_delay
    for _ in range(max_attempts - 1):
        if jitter:
            # Add jitter: ±25% of the delay
            jitter_range = delay * 0.25
            actual_delay = delay + random.uniform(-jitter_range, jitter_range)
        else:
            actual_delay = delay

        yield max(0.0, min(actual_delay, max_delay))
        delay *= backoff_factor


async def exponential_backoff(
    func: Callable[[], Any],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    exceptions: tuple = (Exception,)
) -> Any:
    """
    Execute a function with exponential backoff retry logic.

    Args:
        func: Sync function or coroutine function to execute
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay between retries (seconds)
        max_delay: Maximum delay between retries (seconds)
        backoff_factor: Multiplier for delay after each failure
        jitter: Whether to add random jitter to delays
        exceptions: Tuple of exceptions to catch and retry on

    Returns:
        Result of the function call

    Raises:
        The last exception encountered if all retries fail
    """
    delays = backoff_delays(max_attempts, initial_delay, max_delay, backoff_factor, jitter)

    for attempt in range(1, max_attempts + 1):
        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        except exceptions as e:
            if attempt == max_attempts:
                logger.error(f"Function failed after {max_attempts} attempts: {e}")
                raise

            actual_delay = next(delays)
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {actual_delay:.2f} seconds..."
            )
            await asyncio.sleep(actual_delay)
