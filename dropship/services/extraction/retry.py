"""Exponential-backoff retry for supplier network calls."""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from dropship.errors import FetchError, InvalidUrlError, ParseError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NON_RETRYABLE = (InvalidUrlError, ParseError)


def is_transient(exc: BaseException) -> bool:
    """Return True for failures worth another attempt.

    Deterministically invalid input (bad URL, unparseable page, 4xx) fails
    the same way every time.
    """
    if isinstance(exc, NON_RETRYABLE):
        return False
    if isinstance(exc, FetchError):
        return exc.is_transient
    return isinstance(exc, Exception)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_after_failure",
        attempt=retry_state.attempt_number,
        sleep_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
        error_type=type(exc).__name__,
    )


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    retry_on: Callable[[BaseException], bool] = is_transient,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """Call ``fn`` until it succeeds or ``max_retries`` retries are used.

    Args:
        fn: Zero-argument coroutine factory
        max_retries: Additional attempts after the first failure
        base_delay_ms: Sleep before retry n is base_delay_ms * 2**n
        retry_on: Predicate deciding whether an exception is retryable
        sleep: Sleep coroutine (injectable for tests)

    Returns:
        Result of the first successful call

    Raises:
        The last exception raised by ``fn``
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay_ms / 1000, min=0),
        retry=retry_if_exception(retry_on),
        before_sleep=_log_retry,
        reraise=True,
        sleep=sleep or asyncio.sleep,
    )

    # tenacity only awaits coroutine functions; callers pass plain lambdas
    async def _attempt() -> T:
        return await fn()

    return await retrying(_attempt)
