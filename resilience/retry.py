"""
MODULE OVERVIEW:
The retry-with-backoff primitive and its batch variant.

WHAT IS HAPPENING HERE:
`retry_with_backoff()` wraps any zero-argument coroutine function. Each failure
is handed to `should_retry(error, attempt_index)`; if the policy says no, or no
attempts remain, the ORIGINAL error is re-raised untouched. Otherwise we
call `on_retry(error, attempt_index + 1)`, sleep for an exponentially growing,
jittered delay, and try again. All waiting is `asyncio.sleep`, so the event loop
keeps serving other work between attempts.
"""
import asyncio
import math
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from shared.errors import RetryAbortedError, describe_error

T = TypeVar("T")

ShouldRetry = Callable[[BaseException, int], bool]
OnRetry = Callable[[BaseException, int], None]
Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000
DEFAULT_BACKOFF_MULTIPLIER = 2.0
JITTER_FRACTION = 0.25


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Refuse 4xx-style errors; retry network errors, 5xx and statusless errors."""
    return not describe_error(error).is_client_status


def _noop_on_retry(error: BaseException, attempt: int) -> None:
    return None


@dataclass(frozen=True)
class RetryOptions:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay_ms: float = DEFAULT_BASE_DELAY_MS
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    jitter: bool = True
    should_retry: ShouldRetry = default_should_retry
    on_retry: OnRetry = _noop_on_retry

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_multiplier <= 1:
            raise ValueError("backoff_multiplier must be > 1")


def compute_delay(attempt: int, options: RetryOptions) -> int:
    """Backoff delay in whole milliseconds for a 0-indexed attempt."""
    delay = min(options.base_delay_ms * options.backoff_multiplier ** attempt, options.max_delay_ms)
    if options.jitter:
        jitter_range = delay * JITTER_FRACTION
        delay += random.uniform(-jitter_range, jitter_range)
    return math.floor(delay)


async def _wait(delay_ms: int, sleep: Sleep, abort: asyncio.Event | None) -> bool:
    """Sleep for `delay_ms`; returns True if the abort signal fired first."""
    if abort is None:
        await sleep(delay_ms / 1000)
        return False
    sleeper = asyncio.ensure_future(sleep(delay_ms / 1000))
    aborter = asyncio.ensure_future(abort.wait())
    try:
        done, _ = await asyncio.wait({sleeper, aborter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, aborter):
            task.cancel()
        await asyncio.gather(sleeper, aborter, return_exceptions=True)
    if sleeper in done:
        sleeper.result()
    return aborter in done


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
    *,
    abort: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    config = options or RetryOptions()
    last_error: BaseException | None = None

    for attempt in range(config.max_attempts):
        if abort is not None and abort.is_set():
            raise RetryAbortedError(attempt) from last_error
        try:
            return await fn()
        except Exception as error:
            last_error = error

            if not config.should_retry(error, attempt):
                raise
            if attempt == config.max_attempts - 1:
                raise

            config.on_retry(error, attempt + 1)

            delay_ms = compute_delay(attempt, config)
            if await _wait(delay_ms, sleep, abort):
                raise RetryAbortedError(attempt + 1) from error

    # Unreachable: the final attempt either returns or raises above.
    raise RuntimeError("retry loop exited without a result")


@dataclass
class BatchResult(Generic[T]):
    success: bool
    result: T | None = None
    error: BaseException | None = None


async def batch_retry(
    operations: list[Callable[[], Awaitable[T]]],
    options: RetryOptions | None = None,
    *,
    sleep: Sleep = asyncio.sleep,
) -> list[BatchResult[T]]:
    """
    Runs every operation concurrently, each under its own retry loop.
    One operation exhausting its retries never cancels the others: the output
    has exactly one record per input, in input order.
    """
    outcomes = await asyncio.gather(
        *(retry_with_backoff(op, options, sleep=sleep) for op in operations),
        return_exceptions=True,
    )
    results: list[BatchResult[T]] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            results.append(BatchResult(success=False, error=outcome))
        else:
            results.append(BatchResult(success=True, result=outcome))
    return results
