"""
Wall-clock budget for a single processor run.
"""

import time
from typing import Callable, Optional


class Budget:
    """
    Tracks elapsed time since the run started.

    The budget is only consulted between cycles, so a fetch or delivery
    already in flight always runs to completion.
    """

    def __init__(self, max_run_time_seconds: float, clock: Callable[[], float] = time.monotonic):
        if max_run_time_seconds <= 0:
            raise ValueError("max_run_time_seconds must be greater than zero")
        self.max_run_time_seconds = max_run_time_seconds
        self._clock = clock
        self.start_time: Optional[float] = None

    def start(self) -> None:
        self.start_time = self._clock()

    @property
    def elapsed(self) -> float:
        if self.start_time is None:
            return 0.0
        return self._clock() - self.start_time

    @property
    def remaining(self) -> float:
        return max(0.0, self.max_run_time_seconds - self.elapsed)

    @property
    def exhausted(self) -> bool:
        return self.elapsed >= self.max_run_time_seconds
