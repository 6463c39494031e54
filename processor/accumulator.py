"""
Batch accumulator decoupling source page size from consumer batch size.
"""

from typing import Iterable, List

from processor.records import Record


class BatchAccumulator:
    """
    Buffers fetched records until they are flushed to the consumer.

    Records come out in the order they went in; nothing is reordered or
    deduplicated.
    """

    def __init__(self):
        self._buffer: List[Record] = []

    def append(self, records: Iterable[Record]) -> None:
        self._buffer.extend(records)

    def is_full(self, batch_size: int) -> bool:
        return len(self._buffer) >= batch_size

    @property
    def is_empty(self) -> bool:
        return not self._buffer

    def flush(self) -> List[Record]:
        """Return the buffered records and start a new, empty batch"""
        batch = self._buffer
        self._buffer = []
        return batch

    def __len__(self) -> int:
        return len(self._buffer)
