"""
MODULE OVERVIEW:
Domain-tuned retry policies built on `retry_with_backoff()`.

WHAT IS HAPPENING HERE:
The mechanics are identical for every caller; what differs is WHICH failures
are worth another attempt. Database writes must never retry constraint or
row-level-security failures, uploads must never retry a file that is too big,
and rate-limited APIs need long, steep cool-downs. Each policy logs every retry
with the operation name and attempt number.
"""
import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from resilience.retry import RetryOptions, Sleep, retry_with_backoff
from shared.errors import ErrorKind, describe_error

T = TypeVar("T")


def should_retry_database(error: BaseException, attempt: int) -> bool:
    kind = describe_error(error).kind
    if kind in (ErrorKind.NETWORK, ErrorKind.RATE_LIMITED):
        return True
    # Constraint violations, permission denied and RLS failures are permanent.
    if kind in (ErrorKind.VALIDATION, ErrorKind.PERMISSION):
        return False
    return kind == ErrorKind.SERVER


def should_retry_upload(error: BaseException, attempt: int) -> bool:
    info = describe_error(error)
    if info.kind == ErrorKind.NETWORK:
        return True
    # Size and type checks fail the same way every time.
    if info.kind == ErrorKind.VALIDATION:
        return False
    lowered = info.message.lower()
    return "size" not in lowered and "type" not in lowered


def should_retry_rate_limited(error: BaseException, attempt: int) -> bool:
    kind = describe_error(error).kind
    if kind == ErrorKind.RATE_LIMITED:
        return True
    if attempt >= 3:
        return False
    return kind == ErrorKind.SERVER


async def retry_database_operation(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "database operation",
    *,
    abort: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    def on_retry(error: BaseException, attempt: int) -> None:
        logger.warning(f"retry=database operation='{operation_name}' attempt={attempt} error='{error}'")

    options = RetryOptions(
        max_attempts=3,
        base_delay_ms=1000,
        should_retry=should_retry_database,
        on_retry=on_retry,
    )
    return await retry_with_backoff(operation, options, abort=abort, sleep=sleep)


async def retry_file_upload(
    upload: Callable[[], Awaitable[T]],
    file_name: str,
    *,
    abort: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    def on_retry(error: BaseException, attempt: int) -> None:
        logger.warning(f"retry=file_upload file='{file_name}' attempt={attempt} error='{error}'")

    options = RetryOptions(
        max_attempts=5,
        base_delay_ms=2000,
        max_delay_ms=60000,
        should_retry=should_retry_upload,
        on_retry=on_retry,
    )
    return await retry_with_backoff(upload, options, abort=abort, sleep=sleep)


async def retry_with_rate_limit(
    api_call: Callable[[], Awaitable[T]],
    endpoint: str,
    *,
    abort: asyncio.Event | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    def on_retry(error: BaseException, attempt: int) -> None:
        info = describe_error(error)
        if info.kind == ErrorKind.RATE_LIMITED:
            logger.warning(f"retry=rate_limited endpoint='{endpoint}' attempt={attempt} reason=cooling_down")
        else:
            logger.warning(f"retry=api endpoint='{endpoint}' attempt={attempt} status={info.status} error='{error}'")

    # 429 cool-downs are long, so start at 5s and triple each time.
    options = RetryOptions(
        max_attempts=5,
        base_delay_ms=5000,
        backoff_multiplier=3,
        should_retry=should_retry_rate_limited,
        on_retry=on_retry,
    )
    return await retry_with_backoff(api_call, options, abort=abort, sleep=sleep)
