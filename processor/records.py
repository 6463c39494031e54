"""
Records and pages exchanged between log sources and the processor.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class Record:
    """One ingested log entry. Positions increase strictly within a stream."""

    position: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, position: Union[str, int], payload: Optional[Dict[str, Any]] = None) -> "Record":
        return cls(position=str(position), payload=payload or {})


@dataclass(frozen=True)
class Page:
    """
    One fetch call's worth of records.

    ``last_position`` lets a source that filters records client-side report
    how far it actually read; when omitted the position of the last record
    is used. A page with neither records nor a position means the source is
    exhausted.
    """

    records: Tuple[Record, ...] = ()
    outdated: bool = False
    last_position: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "records", tuple(self.records))
        if self.last_position is None and self.records:
            object.__setattr__(self, "last_position", self.records[-1].position)
        elif self.last_position is not None:
            object.__setattr__(self, "last_position", str(self.last_position))

    @property
    def is_exhausted(self) -> bool:
        return not self.records and self.last_position is None

    def __len__(self) -> int:
        return len(self.records)
