"""
Batch Runner

Executes independent per-item operations with a fixed concurrency ceiling.

The item list is cut into sequential chunks of at most ``concurrency``
items. A chunk runs fully in parallel and must settle (every item succeeded
or failed) before the next chunk starts, so peak in-flight work never
exceeds the ceiling and progress advances deterministically per chunk.
A failing item is recorded and never aborts the batch.
"""
import asyncio
import inspect
from dataclasses import dataclass, field
from typing import (
    Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar,
)

from trialscout.utils import get_logger
from .cancellation import CancellationToken

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class ItemResult(Generic[T, R]):
    """Settled outcome for one input item: a value or an error, never both."""
    key: str
    item: T
    value: Optional[R] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchResult(Generic[T, R]):
    """Per-item results in input order."""
    results: List[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[ItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[ItemResult]:
        return [r for r in self.results if not r.ok]

    @property
    def values(self) -> List[R]:
        return [r.value for r in self.results if r.ok]

    def __len__(self) -> int:
        return len(self.results)


class BatchRunner:
    """Chunked, bounded-concurrency executor."""

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency

    async def run(
        self,
        items: Sequence[T],
        operation: Callable[[T], Awaitable[R]],
        key: Callable[[T], str] = str,
        on_chunk: Optional[Callable[[List[ItemResult]], Any]] = None,
        on_progress: Optional[Callable[[float], Any]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """
        Run ``operation`` over every item.

        Args:
            items: Ordered input items
            operation: Async per-item operation
            key: Identifier used when recording an item's result
            on_chunk: Called with a settled chunk's results, in input order;
                may return an awaitable
            on_progress: Called after each chunk with completed / total
            cancellation: Checked before each chunk starts

        Returns:
            BatchResult with one ItemResult per input item

        Raises:
            PipelineCancelledError: cancellation was observed before a chunk
        """
        total = len(items)
        batch = BatchResult()
        completed = 0

        for start in range(0, total, self.concurrency):
            if cancellation is not None:
                cancellation.raise_if_cancelled()

            chunk = items[start:start + self.concurrency]
            settled = await asyncio.gather(
                *(self._settle(item, operation, key) for item in chunk)
            )
            batch.results.extend(settled)
            completed += len(chunk)

            if on_chunk is not None:
                await _maybe_await(on_chunk(list(settled)))
            if on_progress is not None:
                await _maybe_await(on_progress(completed / total))

        return batch

    @staticmethod
    async def _settle(
        item: T,
        operation: Callable[[T], Awaitable[R]],
        key: Callable[[T], str],
    ) -> ItemResult:
        item_key = key(item)
        try:
            value = await operation(item)
        except Exception as exc:
            logger.debug(f"BatchRunner: item {item_key} failed: {exc}")
            return ItemResult(key=item_key, item=item, error=exc)
        return ItemResult(key=item_key, item=item, value=value)


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value
