"""
Retry Executor
Bounded retry wrapper for fallible async operations (external API calls,
database writes).

Retry Strategy:
- Fixed delay between attempts (no jitter, no exponential backoff)
- Default 3 attempts, 5 seconds apart
- Does NOT retry validation, configuration or not-found errors
- On exhaustion the last error is re-raised unchanged
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from leadflow.shared.utils.exceptions import NON_RETRYABLE_ERRORS

logger = logging.getLogger("retry")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY_SECONDS = 5.0

OnRetry = Callable[[int, BaseException], Any]


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY_SECONDS,
    on_retry: Optional[OnRetry] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> Any:
    """
    Run `operation` until it succeeds or `max_attempts` is reached.

    Args:
        operation: Zero-argument coroutine function to invoke
        max_attempts: Total attempts including the first (>= 1)
        delay: Seconds to wait between attempts (constant)
        on_retry: Called as on_retry(attempt_number, error) before each retry;
            may be a plain function or a coroutine function
        sleep: Async sleep used for the delay (asyncio.sleep by default)

    Returns:
        Whatever `operation` returns on its first successful attempt

    Raises:
        The last error raised by `operation`, unwrapped
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    async def before_sleep(retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number
        error = retry_state.outcome.exception()
        logger.warning(
            f"⚠️ Attempt {attempt}/{max_attempts} failed, retrying in {delay}s: {error}",
            extra={"attempt": attempt, "error": str(error)}
        )
        if on_retry is not None:
            result = on_retry(attempt, error)
            if inspect.isawaitable(result):
                await result

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(delay),
        retry=retry_if_not_exception_type(NON_RETRYABLE_ERRORS),
        before_sleep=before_sleep,
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )
    return await retrying(operation)
