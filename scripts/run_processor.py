"""
Script to run the logs processor once for the configured stream.

Logs are written to stdout as JSON lines; the checkpoint is kept in the
configured database.
"""

import asyncio
import json
import sys
import os
import logging
from typing import List

# Add current directory to path to allow imports from core, processor, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import create_engine, create_session_maker, init_models
from core.exceptions import ArgumentError
from core.logging import setup_logging
from processor.records import Record
from processor.runner import LogsProcessor
from storage.sql import SQLCheckpointStore

logger = logging.getLogger(__name__)


async def write_batch(records: List[Record]) -> None:
    """Forward a batch of logs to stdout"""
    for record in records:
        sys.stdout.write(json.dumps(record.payload, default=str) + "\n")
    sys.stdout.flush()


async def run_processor() -> int:
    """Run one processor pass and return a process exit code"""
    engine = create_engine(settings.DATABASE_URL)

    try:
        await init_models(engine)
        store = SQLCheckpointStore(create_session_maker(engine), settings.LOGS_STREAM_NAME)

        try:
            processor = LogsProcessor.from_settings(store, settings)
        except ArgumentError as e:
            logger.error(f"Invalid configuration: {e}")
            return 2

        result = await processor.run(write_batch)
        logger.info(f"Run result: {json.dumps(result.to_dict())}")

        if not result.status.ok:
            await store.mark_failed(
                "; ".join(str(e) for e in result.status.errors) or str(result.status.checkpoint_error),
                partial=result.status.logs_processed > 0
            )
            return 1
        return 0

    except Exception as e:
        logger.error(f"Logs processor error: {str(e)}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging(stream=sys.stderr)  # stdout carries the logs themselves
    sys.exit(asyncio.run(run_processor()))
