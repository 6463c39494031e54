"""
SQLAlchemy-backed checkpoint store
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
import logging

from core.exceptions import CheckpointError
from models.base import ProcessorStatus
from models.checkpoint import LogCheckpoint
from storage.base import CheckpointStore

logger = logging.getLogger(__name__)


class SQLCheckpointStore(CheckpointStore):
    """
    Stores one cursor per stream in the ``log_checkpoints`` table.

    Every call opens its own session, so the store can outlive the
    sessions used elsewhere in the process.
    """

    def __init__(self, session_maker: async_sessionmaker, stream_name: str):
        self.session_maker = session_maker
        self.stream_name = stream_name

    async def _get(self, session) -> Optional[LogCheckpoint]:
        result = await session.execute(
            select(LogCheckpoint).where(LogCheckpoint.stream_name == self.stream_name)
        )
        return result.scalar_one_or_none()

    async def load(self) -> Optional[str]:
        try:
            async with self.session_maker() as session:
                checkpoint = await self._get(session)
        except Exception as e:
            raise CheckpointError(
                "Failed to load checkpoint",
                context={"stream_name": self.stream_name, "operation": "load"},
                original_exception=e
            )

        value = checkpoint.checkpoint_value if checkpoint else None
        logger.debug(f"Loaded checkpoint for {self.stream_name}: {value}")
        return value

    async def save(self, checkpoint: str, logs_processed: int = 0) -> None:
        """Create or update the stream's checkpoint"""
        try:
            async with self.session_maker() as session:
                row = await self._get(session)
                now = datetime.utcnow()

                if row is None:
                    row = LogCheckpoint(
                        stream_name=self.stream_name,
                        total_runs=0,
                        total_logs_processed=0,
                    )
                    session.add(row)

                row.checkpoint_value = checkpoint
                row.status = ProcessorStatus.SUCCESS
                row.last_run_at = now
                row.last_success_at = now
                row.total_runs = (row.total_runs or 0) + 1
                row.total_logs_processed = (row.total_logs_processed or 0) + logs_processed
                row.last_logs_processed = logs_processed
                row.error_message = None
                row.updated_at = now

                await session.commit()
        except Exception as e:
            raise CheckpointError(
                "Failed to save checkpoint",
                context={
                    "stream_name": self.stream_name,
                    "checkpoint_value": checkpoint,
                    "operation": "save"
                },
                original_exception=e
            )

        logger.info(f"Saved checkpoint for {self.stream_name}: {checkpoint} ({logs_processed} logs)")

    async def mark_failed(self, error_message: str, partial: bool = False) -> None:
        """Record a failed (or partially failed) run without moving the cursor"""
        try:
            async with self.session_maker() as session:
                row = await self._get(session)
                now = datetime.utcnow()

                if row is None:
                    row = LogCheckpoint(
                        stream_name=self.stream_name,
                        total_runs=0,
                        total_logs_processed=0,
                    )
                    session.add(row)

                row.status = ProcessorStatus.PARTIAL if partial else ProcessorStatus.FAILED
                row.last_run_at = now
                row.last_failure_at = now
                row.error_message = error_message
                row.updated_at = now

                await session.commit()
        except Exception as e:
            raise CheckpointError(
                "Failed to record run failure",
                context={"stream_name": self.stream_name, "operation": "mark_failed"},
                original_exception=e
            )
