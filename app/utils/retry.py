"""
Retry utility for the OAuth token endpoint.
Only transport-level failures (connect errors, timeouts) are retried with exponential backoff.
Marketplace rejections are never retried here; the scheduled auto-sync is the retry mechanism.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

T = TypeVar("T")


def is_transient_error(exception: BaseException) -> bool:
    """
    Determine if an exception is a transport failure worth retrying.

    HTTP status errors are deliberately excluded: a 4xx/5xx from the token
    endpoint is a marketplace answer, not a transport failure.
    """
    if isinstance(exception, httpx.ConnectError | httpx.TimeoutException | httpx.NetworkError):
        return True
    if isinstance(exception, TimeoutError):
        return True
    return False


async def call_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 30.0,
) -> T:
    """
    Await func(), retrying transient transport errors with exponential backoff.

    Args:
        func: Zero-argument coroutine factory
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay in seconds
        multiplier: Multiplier for exponential backoff
        max_delay: Maximum delay in seconds

    Returns:
        The awaited result of func()
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=initial_delay, max=max_delay),
        retry=retry_if_exception(is_transient_error),
        reraise=True,
        before_sleep=_log_retry_attempt,
    ):
        with attempt:
            return await func()
    raise RuntimeError("unreachable")  # pragma: no cover


def _log_retry_attempt(retry_state: RetryCallState):
    """Log retry attempt before sleeping."""
    if retry_state.outcome is not None:
        exception = retry_state.outcome.exception()
        logger.warning(
            "Retrying after transient error",
            attempt=retry_state.attempt_number,
            exception=str(exception),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )
