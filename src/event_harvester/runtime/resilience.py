"""
event_harvester.runtime.resilience

Shared resilience utilities: bounded retries and run deadlines.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_mode: str = "fixed"  # exp | fixed | none
    base_delay_s: float = 5.0
    max_delay_s: float = 30.0
    jitter: float = 0.0

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N
        """
        if self.backoff_mode == "none":
            return 0.0
        if self.backoff_mode == "fixed":
            delay = self.base_delay_s
        else:
            delay = self.base_delay_s * (2 ** max(0, attempt - 1))

        delay = min(delay, self.max_delay_s)
        if self.jitter > 0:
            delay = delay * (1.0 + (random.random() * 2 - 1) * self.jitter)
        return max(0.0, delay)


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    deadline: "Deadline | None" = None,
    label: str = "call",
) -> T:
    """
    Call fn until it succeeds or policy.max_attempts is exhausted.

    The last exception is re-raised. No retry is scheduled past the deadline.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt >= attempts:
                raise
            delay = policy.compute_backoff_s(attempt)
            if deadline is not None and deadline.remaining_s() <= delay:
                logger.warning(f"{label} failed and no time remains for a retry: {e}")
                raise
            logger.info(
                f"{label} failed (attempt {attempt}/{attempts}), retrying in {delay:.1f}s: {e}"
            )
            sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover


class Deadline:
    """
    Wall-clock budget for a run. A None budget never expires.
    """

    def __init__(self, budget_s: float | None, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._budget_s = budget_s
        self._started = clock()

    @property
    def budget_s(self) -> float | None:
        return self._budget_s

    def remaining_s(self) -> float:
        if self._budget_s is None:
            return float("inf")
        return max(0.0, self._budget_s - (self._clock() - self._started))

    def expired(self) -> bool:
        return self.remaining_s() <= 0.0

    def clip(self, timeout_s: float) -> float:
        """Bound a per-call timeout by what is left of the run."""
        return min(timeout_s, self.remaining_s())
