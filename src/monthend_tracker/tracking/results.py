"""Result types for fallible steps and per-item batch processing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OpResult:
    """Outcome of a single fallible step."""

    ok: bool
    error: BaseException | None = None

    @classmethod
    def success(cls) -> OpResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: BaseException) -> OpResult:
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class BatchResult:
    """Aggregate success/failure counts of a batch operation."""

    name: str
    success_count: int = 0
    failure_count: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def has_errors(self) -> bool:
        return self.failure_count > 0

    @property
    def ok(self) -> bool:
        return self.failure_count == 0

    @property
    def success_rate(self) -> float:
        """Fraction of items that succeeded; an empty batch counts as 1.0."""
        if self.total == 0:
            return 1.0
        return self.success_count / self.total

    def merge(self, other: BatchResult, name: str | None = None) -> BatchResult:
        return BatchResult(
            name=name or self.name,
            success_count=self.success_count + other.success_count,
            failure_count=self.failure_count + other.failure_count,
        )

    @classmethod
    def failed(cls, name: str) -> BatchResult:
        """A batch that could not start at all."""
        return cls(name=name, failure_count=1)


async def run_batch(
    name: str,
    items: Iterable[T],
    processor: Callable[[T], Awaitable[OpResult]],
) -> BatchResult:
    """Process items one at a time, tolerating individual failures.

    A processor is expected to return an OpResult; anything it raises is
    logged and counted as a failure for that item only.
    """
    pending = list(items)
    logger.info("%s: Starting batch operation (%d items)", name, len(pending))

    success_count = 0
    failure_count = 0
    for item in pending:
        try:
            result = await processor(item)
        except Exception as e:
            logger.exception("%s: Unexpected error processing item", name)
            result = OpResult.failure(e)
        if result.ok:
            success_count += 1
        else:
            failure_count += 1

    batch = BatchResult(name=name, success_count=success_count, failure_count=failure_count)
    log_fn = logger.warning if batch.has_errors else logger.info
    log_fn(
        "%s: Batch operation completed total=%d success=%d failure=%d success_rate=%d%%",
        name, batch.total, batch.success_count, batch.failure_count,
        round(batch.success_rate * 100),
    )
    return batch
