"""
RetryService -- re-run a whole allocation operation after a transient failure.

Responsibility:
    Runs an operation callable and, when it fails with a retryable kernel
    error, runs it again from the start.  Operations re-read every record
    they touch, so a retry always plans against fresh state.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by InventoryAllocationService around every public operation.

Retryable failures:
    ConcurrentModificationError -- another writer won a conditional write.
        Up to ``max_conflict_attempts`` total attempts.
    StoreUnavailableError -- the backing store could not be reached.
        Up to ``max_unavailable_attempts`` total attempts.
    Everything else propagates on the first raise.

Backoff:
    Exponential from ``backoff_base_seconds``, capped at
    ``backoff_max_seconds``.  A zero base disables sleeping (tests).

Usage:
    retry = RetryService(RetryPolicy(max_conflict_attempts=3))
    outcome = retry.run(lambda: engine.allocate_item(...),
                        operation_name="allocate_item")
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from inventory_kernel.exceptions import ConcurrentModificationError, StoreUnavailableError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.retry_service")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_conflict_attempts: int = 5
    max_unavailable_attempts: int = 3
    backoff_base_seconds: float = 0.05
    backoff_max_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_conflict_attempts < 1 or self.max_unavailable_attempts < 1:
            raise ValueError("retry attempts must be >= 1")
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < 0:
            raise ValueError("backoff must be >= 0")

    def backoff_for(self, attempt: int) -> float:
        """Delay before the attempt after ``attempt`` (1-based)."""
        if self.backoff_base_seconds == 0:
            return 0.0
        delay = self.backoff_base_seconds * (2 ** (attempt - 1))
        return min(delay, self.backoff_max_seconds)


class RetryService:
    """Retries operations on optimistic-concurrency conflicts and store outages."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def run(self, operation: Callable[[], T], *, operation_name: str) -> T:
        conflicts = 0
        outages = 0
        while True:
            try:
                return operation()
            except ConcurrentModificationError as exc:
                conflicts += 1
                if conflicts >= self._policy.max_conflict_attempts:
                    self._exhausted(operation_name, exc, conflicts)
                    raise
                delay = self._policy.backoff_for(conflicts)
                logger.info(
                    "retrying_after_conflict",
                    extra={
                        "operation": operation_name,
                        "attempt": conflicts,
                        "entity_type": exc.entity_type,
                        "entity_id": exc.entity_id,
                        "delay_seconds": delay,
                    },
                )
            except StoreUnavailableError as exc:
                outages += 1
                if outages >= self._policy.max_unavailable_attempts:
                    self._exhausted(operation_name, exc, outages)
                    raise
                delay = self._policy.backoff_for(outages)
                logger.warning(
                    "retrying_after_store_unavailable",
                    extra={
                        "operation": operation_name,
                        "attempt": outages,
                        "store_operation": exc.operation,
                        "delay_seconds": delay,
                    },
                )
            if delay > 0:
                self._sleep(delay)

    @staticmethod
    def _exhausted(operation_name: str, exc: Exception, attempts: int) -> None:
        logger.warning(
            "retry_exhausted",
            extra={
                "operation": operation_name,
                "attempts": attempts,
                "error_code": getattr(exc, "code", None),
            },
        )
