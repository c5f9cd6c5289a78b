import asyncio
import errno
import logging
import socket
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    ConnectionResetError,
    ConnectionAbortedError,
    TimeoutError,
    socket.gaierror,
)

TRANSIENT_ERRNOS = {errno.ECONNRESET, errno.ETIMEDOUT, errno.ECONNABORTED, socket.EAI_AGAIN}


def is_retryable(exc: BaseException) -> bool:
    """
    Decide whether a failed provider call is worth repeating.

    Connection resets, timeouts, DNS failures, aborted requests and 5xx
    responses are transient. Anything else (4xx, parsing errors) is not.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return True
    if isinstance(exc, OSError) and exc.errno in TRANSIENT_ERRNOS:
        return True
    return False


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    name: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run an async provider call with linear backoff.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        max_attempts: Maximum number of attempts (default 3)
        backoff_seconds: Delay unit; the wait after attempt n is n * backoff_seconds
        name: Label used in log messages
        sleep: Awaitable sleep, swapped out in tests
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt >= max_attempts:
                logger.error(f"All {max_attempts} attempts failed for {name}: {e}")
                raise
            delay = attempt * backoff_seconds
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed for {name}: {e}. Retrying in {delay:.1f}s..."
            )
            await sleep(delay)
    raise RuntimeError("unreachable")
