from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index, BigInteger, JSON
from datetime import datetime
from models.base import Base, ProcessorStatus


class LogCheckpoint(Base):
    """
    Tracks the log cursor per stream.

    Purpose:
    - Resume the next run from the last committed log position
    - Avoid re-delivering logs a consumer already accepted
    - Keep simple per-stream run statistics

    Design:
    - One row per stream
    - checkpoint_value stores the opaque log position (NULL = from the beginning)
    """
    __tablename__ = "log_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Stream identification
    stream_name = Column(String(100), nullable=False)

    # Checkpoint data
    checkpoint_value = Column(String(255), nullable=True)  # Last committed log position
    checkpoint_data = Column(JSON, nullable=True)  # Additional checkpoint metadata

    # Statistics
    last_run_at = Column(DateTime, nullable=True, index=True)
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)

    total_runs = Column(Integer, default=0)
    total_logs_processed = Column(BigInteger, default=0)
    last_logs_processed = Column(Integer, default=0)

    # Status
    status = Column(Enum(ProcessorStatus), default=ProcessorStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_checkpoint_stream", "stream_name", unique=True),
    )
