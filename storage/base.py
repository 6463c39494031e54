"""
Abstract base class for checkpoint persistence
"""

from abc import ABC, abstractmethod
from typing import Optional


class CheckpointStore(ABC):
    """
    Key-value backend holding the log cursor of a single stream.

    The processor loads the cursor once when a run starts and saves it at
    most once when the run ends. Callers must not run two processors against
    the same store concurrently.
    """

    @abstractmethod
    async def load(self) -> Optional[str]:
        """Return the stored cursor, or None to read from the beginning"""
        pass

    @abstractmethod
    async def save(self, checkpoint: str, logs_processed: int = 0) -> None:
        """Persist the cursor reached by a run"""
        pass
