"""
Retry and timeout helpers for data-store calls.

Only store I/O goes through here. Transient failures (timeouts, dropped
connections) are retried a bounded number of times; everything else is
surfaced immediately as a StoreError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from loadmatch.services.matching.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Classify a store failure as worth retrying."""
    if isinstance(exc, StoreError):
        return exc.transient
    if isinstance(exc, asyncio.TimeoutError):
        return True
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float], operation: str) -> T:
    """Await a store call, converting timeouts and driver errors to StoreError."""
    try:
        if timeout:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        return await awaitable
    except asyncio.TimeoutError as exc:
        raise StoreError(f"{operation} timed out after {timeout}s", transient=True) from exc
    except SQLAlchemyError as exc:
        raise StoreError(f"{operation} failed: {exc}", transient=is_transient(exc)) from exc


async def retry_store_call(
    func: Callable[[], Awaitable[T]],
    *,
    operation: str,
    attempts: int = 1,
    base_delay: float = 0.2,
    on_retry: Optional[Callable[[], Awaitable[None]]] = None,
) -> T:
    """
    Run ``func`` and retry it whole up to ``attempts`` more times on transient failure.

    Args:
        func: Zero-argument coroutine factory; called once per attempt
        operation: Name used in logs and error messages
        attempts: Number of retries after the first try (0 = no retries)
        base_delay: Delay before the first retry, doubled per retry
        on_retry: Optional coroutine run before each retry (e.g. session rollback)
    """
    delay = base_delay
    for attempt in range(attempts + 1):
        try:
            return await func()
        except (StoreError, SQLAlchemyError, asyncio.TimeoutError) as exc:
            if not is_transient(exc) or attempt >= attempts:
                if isinstance(exc, StoreError):
                    raise
                raise StoreError(f"{operation} failed: {exc}", transient=is_transient(exc)) from exc

            logger.warning(
                "store_call_retry",
                extra={"operation": operation, "attempt": attempt + 1, "error": str(exc)},
            )
            if on_retry is not None:
                await on_retry()
            await asyncio.sleep(delay)
            delay *= 2

    # Loop always returns or raises
    raise StoreError(f"{operation} exhausted retries", transient=True)


async def read_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    operation: str,
    timeout: Optional[float],
    attempts: int = 1,
    base_delay: float = 0.2,
    on_retry: Optional[Callable[[], Awaitable[None]]] = None,
) -> T:
    """Bound each attempt of a read by ``timeout`` and retry it whole on transient failure."""
    return await retry_store_call(
        lambda: with_timeout(call(), timeout, operation),
        operation=operation,
        attempts=attempts,
        base_delay=base_delay,
        on_retry=on_retry,
    )
