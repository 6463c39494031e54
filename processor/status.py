"""
Run state for the logs processor.

Holds the pieces the loop mutates while it runs (error accumulator,
checkpoint positions) and the immutable result handed back to the caller.
"""

import enum
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from core.exceptions import CheckpointError

# The run stops as soon as this many errors have been recorded.
MAX_RUN_ERRORS = 2


class LoopState(str, enum.Enum):
    FETCHING = "fetching"
    DELIVERING = "delivering"
    STOPPED_SUCCESS = "stopped_success"
    STOPPED_ERROR = "stopped_error"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.STOPPED_SUCCESS, LoopState.STOPPED_ERROR)


class ErrorAccumulator:
    """Fixed-capacity, ordered list of the errors recorded during a run."""

    def __init__(self, capacity: int = MAX_RUN_ERRORS):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._errors: List[Exception] = []

    def add(self, error: Exception) -> bool:
        """Record an error; returns True once the run must stop."""
        if self.is_full:
            raise OverflowError(f"error accumulator already holds {self.capacity} errors")
        self._errors.append(error)
        return self.is_full

    @property
    def is_full(self) -> bool:
        return len(self._errors) >= self.capacity

    @property
    def errors(self) -> Tuple[Exception, ...]:
        return tuple(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)


class CheckpointState:
    """
    Keeps the read position and the committed position apart.

    ``last_fetched_position`` is the cursor for the next fetch and moves as
    soon as a page is read. ``last_committed_position`` is what the run
    reports and persists: it moves when a consumer accepts a batch, or when
    the loop reads past a batch the consumer rejected.

    ``filtered_advance`` is set while the committed position rests on pages
    whose records were all filtered out, so the run can persist it even
    though nothing was delivered.
    """

    def __init__(self, start_position: Optional[str] = None):
        self.start_position = start_position
        self.last_fetched_position = start_position
        self.last_committed_position: Optional[str] = None
        self._pending_position: Optional[str] = None
        self.filtered_advance = False

    def record_fetch(self, position: Optional[str]) -> None:
        if position is not None:
            self.last_fetched_position = position

    def mark_flushed(self) -> Optional[str]:
        """Returns the boundary of the batch being handed to the consumer"""
        self._pending_position = self.last_fetched_position
        return self._pending_position

    def commit(self, position: Optional[str]) -> None:
        if position is not None:
            self.last_committed_position = position
        self._pending_position = None

    def abandon_pending(self) -> None:
        """Move past a rejected batch before reading the next page"""
        if self._pending_position is not None:
            self.commit(self._pending_position)
            self.filtered_advance = False

    def commit_filtered(self) -> None:
        """
        Commit pages that were read but yielded nothing to deliver, e.g. when
        the source filtered every record out. A rejected batch still waiting
        to be abandoned keeps the committed position where it is.
        """
        if self._pending_position is not None:
            return
        if self.last_fetched_position in (self.start_position, self.last_committed_position):
            return
        self.commit(self.last_fetched_position)
        self.filtered_advance = True


@dataclass(frozen=True)
class RunStatus:
    logs_processed: int = 0
    errors: Tuple[Exception, ...] = ()
    warning: Optional[str] = None
    checkpoint_error: Optional[CheckpointError] = None

    @property
    def error(self) -> Union[None, Exception, List[Exception]]:
        """None, the single error, or the ordered list of errors"""
        if not self.errors:
            return None
        if len(self.errors) == 1:
            return self.errors[0]
        return list(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors and self.checkpoint_error is None


@dataclass(frozen=True)
class RunResult:
    status: RunStatus
    checkpoint: Optional[str]
    state: LoopState

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "checkpoint": self.checkpoint,
            "logs_processed": self.status.logs_processed,
            "warning": self.status.warning,
            "errors": [str(e) for e in self.status.errors],
            "checkpoint_error": str(self.status.checkpoint_error) if self.status.checkpoint_error else None,
        }
