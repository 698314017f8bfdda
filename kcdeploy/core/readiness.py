"""
Bounded polling with exponential backoff for services that start asynchronously.
"""

import logging
from collections.abc import Awaitable, Callable

from tenacity import AsyncRetrying, RetryError, before_sleep_log, retry_if_exception_type, stop_before_delay, wait_exponential

logger = logging.getLogger(__name__)


class ReadinessTimeoutError(Exception):
    """Exception raised when a service does not become ready within the timeout."""


class _NotReady(Exception):
    pass


async def wait_until_ready(
    probe: Callable[[], Awaitable[bool]],
    description: str,
    timeout: float,
    backoff_min: float = 2.0,
    backoff_max: float = 30.0,
) -> None:
    """
    Call probe until it returns True.

    Waits grow exponentially from backoff_min up to backoff_max seconds. The
    probe is expected to swallow its own connection errors and return False.

    Args:
        probe: Async callable returning True once the service is ready
        description: Human readable name of what is being waited for
        timeout: Hard limit in seconds; no wait is started that would end past it
        backoff_min: First wait in seconds
        backoff_max: Upper bound of a single wait in seconds

    Raises:
        ReadinessTimeoutError: If the probe did not succeed before the timeout
    """
    logger.info(f"Waiting for {description} (timeout {timeout:.0f}s)")
    try:
        async for attempt in AsyncRetrying(
            stop=stop_before_delay(timeout),
            wait=wait_exponential(multiplier=1, min=backoff_min, max=backoff_max),
            retry=retry_if_exception_type(_NotReady),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
        ):
            with attempt:
                if not await probe():
                    raise _NotReady(description)
    except RetryError as e:
        attempts = e.last_attempt.attempt_number
        raise ReadinessTimeoutError(f"{description} not ready after {timeout:.0f}s ({attempts} attempts)") from e

    logger.info(f"{description} is ready")
