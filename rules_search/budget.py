"""
Invocation budget for metered language model calls.

Calls go through a sliding-window cap shared by all requests in the process.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque

from rules_search.errors import BudgetExceededError


class InvocationBudget:
    """
    Allow at most ``max_calls`` acquisitions per ``window_seconds``.

    ``max_calls`` of 0 disables the cap while still counting calls.
    Thread-safe.
    """

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_calls < 0:
            raise ValueError("max_calls must be >= 0")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._calls: Deque[float] = deque()
        self._total = 0
        self._rejected = 0

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def acquire(self) -> None:
        """Record one call, or raise BudgetExceededError if the window is full."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if self.max_calls and len(self._calls) >= self.max_calls:
                self._rejected += 1
                raise BudgetExceededError(
                    f"LLM budget of {self.max_calls} calls per {self.window_seconds:g}s exhausted"
                )
            self._calls.append(now)
            self._total += 1

    @property
    def in_window(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._calls)

    @property
    def total_calls(self) -> int:
        return self._total

    @property
    def rejected_calls(self) -> int:
        return self._rejected
