"""
In-memory checkpoint store
"""

from typing import List, Optional, Tuple

from storage.base import CheckpointStore


class MemoryCheckpointStore(CheckpointStore):
    """Keeps the cursor in process memory. Useful for one-off runs and tests."""

    def __init__(self, checkpoint: Optional[str] = None):
        self.checkpoint = checkpoint
        self.saves: List[Tuple[str, int]] = []

    async def load(self) -> Optional[str]:
        return self.checkpoint

    async def save(self, checkpoint: str, logs_processed: int = 0) -> None:
        self.checkpoint = checkpoint
        self.saves.append((checkpoint, logs_processed))
