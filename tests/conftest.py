"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import Any, Dict, List, Optional, Sequence, Union

from core.exceptions import FetchError
from models.base import Base
from processor.records import Page, Record
from processor.runner import LogsProcessor
from sources.base import LogSource
from storage.memory import MemoryCheckpointStore


def make_log(position: int, log_type: str = "s", date: str = "2024-01-15T10:00:00Z") -> Dict[str, Any]:
    """Log entry as returned by the Management API"""
    return {
        "log_id": str(position),
        "date": date,
        "type": log_type,
        "description": f"log {position}",
    }


def make_page(start: int, count: int, outdated: bool = False) -> Page:
    """Page with positions start+1 .. start+count"""
    return Page(
        records=[Record.create(i, make_log(i)) for i in range(start + 1, start + count + 1)],
        outdated=outdated,
    )


class PagedLogSource(LogSource):
    """Serves ``total`` logs, honouring the cursor and page size of each call"""

    name = "paged"

    def __init__(self, total: int):
        self.total = total
        self.calls: List[tuple] = []

    async def fetch_page(self, cursor: Optional[str], page_size: int) -> Page:
        self.calls.append((cursor, page_size))
        start = int(cursor) if cursor else 0
        count = max(0, min(page_size, self.total - start))
        return make_page(start, count)


class ScriptedLogSource(LogSource):
    """
    Replays a fixed sequence of pages and exceptions. Once the script runs
    out every further fetch fails, like an unmatched HTTP mock.
    """

    name = "scripted"

    def __init__(self, responses: Sequence[Union[Page, BaseException]]):
        self.responses = list(responses)
        self.calls: List[tuple] = []

    async def fetch_page(self, cursor: Optional[str], page_size: int) -> Page:
        self.calls.append((cursor, page_size))
        if not self.responses:
            raise FetchError("No scripted response left", context={"cursor": cursor})
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeClock:
    """Monotonic clock advanced by hand"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_log_entry():
    return make_log


@pytest.fixture
def page_factory():
    return make_page


@pytest.fixture
def paged_source():
    return PagedLogSource


@pytest.fixture
def scripted_source():
    return ScriptedLogSource


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryCheckpointStore()


@pytest.fixture
def make_processor(store, clock):
    """Build a processor with test defaults; keyword arguments override options"""

    def _make(source: LogSource, checkpoint_store=None, **overrides) -> LogsProcessor:
        options = {
            "domain": "foo.example.local",
            "client_id": "1",
            "client_secret": "secret",
            "max_run_time_seconds": 1,
        }
        options.update(overrides)
        return LogsProcessor(checkpoint_store or store, options, source=source, clock=clock)

    return _make


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'checkpoints.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine):
    """Session factory bound to the test database"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
