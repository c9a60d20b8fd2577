"""
Retry Executor

Wraps a fallible asynchronous call with bounded retry and exponential
backoff. Attempts are strictly sequential; a call is never retried
concurrently with itself.

Classification is based on the ErrorKind attached where the error was
raised. Built-in timeouts count as retryable; anything else is fatal and
propagates immediately.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from trialscout.utils import ErrorKind, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt budget and backoff base.

    The wait after failed attempt ``i`` (0-based) is ``base_delay * 2**i``.
    """
    max_attempts: int = 3
    base_delay: float = 1.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    def delay_for(self, attempt_index: int) -> float:
        return self.base_delay * (2 ** attempt_index)

    @classmethod
    def from_settings(cls, settings=None) -> "RetryPolicy":
        if settings is None:
            from trialscout.config import settings
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
        )


def classify_error(exc: BaseException) -> ErrorKind:
    """Return the ErrorKind of a failure."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.RETRYABLE
    return ErrorKind.FATAL


class RetryExecutor:
    """Runs operations under a RetryPolicy."""

    def __init__(self, policy: Optional[RetryPolicy] = None, sleep: Optional[SleepFn] = None):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """
        Await ``operation()`` until it succeeds or a stop condition is hit.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            description: Label used in log lines

        Returns:
            The operation's result

        Raises:
            The last error, unchanged, once it is fatal or attempts are exhausted.
        """
        max_attempts = self.policy.max_attempts

        for attempt in range(max_attempts):
            try:
                return await operation()
            except Exception as exc:
                kind = classify_error(exc)
                if kind is ErrorKind.FATAL:
                    logger.warning(f"{description}: fatal error on attempt {attempt + 1}: {exc}")
                    raise
                if attempt + 1 >= max_attempts:
                    logger.warning(
                        f"{description}: giving up after {max_attempts} attempt(s): {exc}"
                    )
                    raise

                delay = self.policy.delay_for(attempt)
                logger.info(
                    f"{description}: retryable error on attempt {attempt + 1}/{max_attempts} "
                    f"({exc}); retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        # max_attempts >= 1, so the loop always returns or raises
        raise AssertionError("unreachable")
