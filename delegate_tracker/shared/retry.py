"""
Retry helpers for RPC and HTTP calls.

Failures of the types in DEFAULT_RETRYABLE_EXCEPTIONS are retried with
exponential (or fixed) backoff; everything else, NonRetryableException
included, propagates on the first attempt. When attempts run out the last
error is re-raised unchanged so callers can still tell what went wrong.
"""

import asyncio
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx
from web3.exceptions import Web3Exception

from delegate_tracker.shared.exceptions import RetryableException
from delegate_tracker.shared.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    RetryableException,
    OSError,  # ConnectionError and TimeoutError included
    asyncio.TimeoutError,
    httpx.TransportError,
    Web3Exception,  # BlockNotFound, TransactionNotFound, ...
)


def backoff_delay(
    attempt: int, base_delay: float, max_delay: float, exponential: bool = True
) -> float:
    """Delay before retry number `attempt` (0-based)."""
    delay = base_delay * (2**attempt) if exponential else base_delay
    return min(delay, max_delay)


async def retry_async_operation(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential: bool = True,
    retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    operation_name: Optional[str] = None,
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
    **kwargs: Any,
) -> T:
    """
    Await `operation(*args, **kwargs)`, retrying transient failures.

    Example:
        events = await retry_async_operation(
            provider.get_delegation_events,
            delegate, start, end,
            max_attempts=5,
            operation_name="get_delegation_events",
        )
    """
    if max_attempts < 1:
        raise RuntimeError(f"max_attempts must be at least 1, got {max_attempts}")

    retryable = retryable_exceptions or DEFAULT_RETRYABLE_EXCEPTIONS
    name = operation_name or getattr(operation, "__name__", "operation")

    for attempt in range(max_attempts):
        try:
            return await operation(*args, **kwargs)
        except retryable as e:
            if attempt == max_attempts - 1:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, exponential)
            logger.warning(
                f"{name} failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            if on_retry:
                on_retry(e, attempt + 1)
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential: bool = True,
    retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
    operation_name: Optional[str] = None,
) -> Callable:
    """
    Decorator form of retry_async_operation.

    Example:
        @with_retry(max_attempts=3, base_delay=1.0)
        async def fetch_logs():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_async_operation(
                func,
                *args,
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential=exponential,
                retryable_exceptions=retryable_exceptions,
                operation_name=operation_name,
                on_retry=on_retry,
                **kwargs,
            )

        return wrapper

    return decorator


class RetryConfig:
    """Retry settings shared by every call of one kind (RPC, HTTP)."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential: bool = True,
        retryable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential = exponential
        self.retryable_exceptions = retryable_exceptions

    def _options(self) -> dict:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "exponential": self.exponential,
            "retryable_exceptions": self.retryable_exceptions,
        }

    def decorator(self, operation_name: Optional[str] = None) -> Callable:
        return with_retry(operation_name=operation_name, **self._options())

    async def run(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        operation_name: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        return await self.decorator(operation_name)(operation)(*args, **kwargs)


RPC_RETRY_CONFIG = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0)
HTTP_RETRY_CONFIG = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)