"""
Bounded retry with exponential backoff, and a deadline race for long operations.

Every network-facing call in the bot goes through ``with_retry`` with a
predicate chosen at the call site; ``run_with_deadline`` bounds the total
wall-clock time of a multi-step operation.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .exceptions import OperationTimeoutError
from .utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def always_retry(error: BaseException) -> bool:
    return True


def never_retry(error: BaseException) -> bool:
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry one kind of call."""

    max_retries: int = 3
    base_delay_ms: int = 2000
    retry_predicate: Callable[[BaseException], bool] = always_retry
    on_retry: Optional[Callable[[BaseException, int], None]] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay_ms <= 0:
            raise ValueError(f"base_delay_ms must be > 0, got {self.base_delay_ms}")

    def delay_for(self, attempt: int) -> float:
        """Backoff in seconds after the given 1-indexed failed attempt."""
        return self.base_delay_ms * (2 ** (attempt - 1)) / 1000.0


async def with_retry(operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
    """
    Run ``operation`` up to ``policy.max_retries + 1`` times.

    A failure is retried only while attempts remain and the policy's predicate
    accepts the error; otherwise the last error propagates unchanged.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as error:
            if attempt > policy.max_retries or not policy.retry_predicate(error):
                raise

            delay = policy.delay_for(attempt)
            logger.info(
                f"🔄 Retry attempt {attempt}/{policy.max_retries} after {delay * 1000:.0f}ms delay. Error: {error}",
                extra={"subsys": "retry", "event": "retry.scheduled"},
            )
            if policy.on_retry is not None:
                policy.on_retry(error, attempt)

            await asyncio.sleep(delay)
            attempt += 1


def _discard_result(task: "asyncio.Task") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Discarded late failure after deadline: {error}")


async def run_with_deadline(
    awaitable: Awaitable[T], timeout: float, *, cancel: bool = True
) -> T:
    """
    Race ``awaitable`` against a wall-clock deadline of ``timeout`` seconds.

    Raises OperationTimeoutError when the deadline wins. With ``cancel=True``
    the late operation is cancelled; otherwise it keeps running and whatever
    it eventually produces is discarded.
    """
    task = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task in done:
        return task.result()

    if cancel:
        task.cancel()
    else:
        task.add_done_callback(_discard_result)
    raise OperationTimeoutError(f"Operation timed out after {timeout:.1f}s")
