"""
Abstract base class for paginated log sources
"""

from abc import ABC, abstractmethod
from typing import Optional

from processor.records import Page


class LogSource(ABC):
    """
    Abstract base class for all log sources.

    A source fetches one page of records at a time, starting after a cursor.
    It never touches checkpoint storage; the processor owns the cursor.
    """

    name: str = "logs"

    @abstractmethod
    async def fetch_page(self, cursor: Optional[str], page_size: int) -> Page:
        """
        Fetch the page of records following ``cursor``.

        Args:
            cursor: Position of the last record already read (None = from the beginning)
            page_size: Maximum number of records to return

        Returns:
            Page of records; an empty page means no more data is available

        Raises:
            FetchError: If the page could not be retrieved
        """
        pass
