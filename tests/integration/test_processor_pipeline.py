# ============================================================================
# File: tests/integration/test_processor_pipeline.py
# ============================================================================

import json
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from core.exceptions import ConsumerError, FetchError
from processor.runner import LogsProcessor
from processor.status import LoopState
from sources.management_api import ManagementApiLogSource
from storage.sql import SQLCheckpointStore


def mock_response(json_data, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    response.headers = {}
    response.text = json.dumps(json_data)
    return response


@pytest.mark.asyncio
async def test_runs_resume_from_sql_checkpoint(session_maker, paged_source, clock):
    """
    Resumption Test:
    1. First run reads part of the stream
    2. Checkpoint is persisted in the database
    3. Second run resumes where the first stopped
    4. No log is delivered twice
    """
    store = SQLCheckpointStore(session_maker, "tenant-logs")
    source = paged_source(300)
    delivered = []

    async def consumer(records):
        delivered.extend(r.position for r in records)

    options = {"max_run_time_seconds": 1, "batch_size": 100}

    first = await LogsProcessor(store, options, source=source, clock=clock).run(consumer)
    assert first.checkpoint == "300"
    assert await store.load() == "300"

    source.total = 450
    second = await LogsProcessor(store, options, source=source, clock=clock).run(consumer)

    assert second.status.logs_processed == 150
    assert second.checkpoint == "450"
    assert delivered == [str(i) for i in range(1, 451)]
    assert await store.load() == "450"


@pytest.mark.asyncio
async def test_failed_run_leaves_stored_checkpoint(session_maker, scripted_source, page_factory):
    store = SQLCheckpointStore(session_maker, "tenant-logs")
    await store.save("100", logs_processed=100)

    source = scripted_source([page_factory(100, 100)])
    processor = LogsProcessor(store, {"max_run_time_seconds": 1}, source=source)

    result = await processor.run(AsyncMock(side_effect=ConsumerError("sink unavailable")))

    assert [type(e) for e in result.status.errors] == [ConsumerError, FetchError]
    assert result.checkpoint == "200"
    assert result.status.logs_processed == 0
    # Nothing was delivered, so nothing was written
    assert await store.load() == "100"


@pytest.mark.asyncio
async def test_management_api_source_end_to_end(session_maker, make_log_entry):
    now = datetime.now(timezone.utc).isoformat()
    first_page = [make_log_entry(i, date=now) for i in range(1, 101)]
    second_page = [make_log_entry(i, date=now) for i in range(101, 151)]

    store = SQLCheckpointStore(session_maker, "tenant-logs")
    processor = LogsProcessor(store, {
        "domain": "foo.example.local",
        "client_id": "1",
        "client_secret": "secret",
        "max_run_time_seconds": 30,
        "batch_size": 1000,
    })
    assert isinstance(processor.source, ManagementApiLogSource)

    consumer = AsyncMock(return_value=None)

    with patch("httpx.AsyncClient") as mock_client:
        request = AsyncMock(side_effect=[
            mock_response({"access_token": "token-123", "expires_in": 86400}),
            mock_response(first_page),
            mock_response(second_page),
            mock_response([]),
        ])
        mock_client.return_value.__aenter__.return_value.request = request

        result = await processor.run(consumer)

    assert result.state == LoopState.STOPPED_SUCCESS
    assert result.status.logs_processed == 150
    assert result.status.warning is None
    assert result.checkpoint == "150"
    assert consumer.await_count == 1
    assert request.await_args_list[2].kwargs["params"] == {"take": 100, "from": "100"}
    assert await store.load() == "150"
