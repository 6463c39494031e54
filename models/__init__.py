"""
SQLAlchemy ORM models for the checkpoint database.

Models:
    base: Base declarative class and the ProcessorStatus enum
    checkpoint: Per-stream log cursor with run statistics

Usage:
    from models.base import Base, ProcessorStatus
    from models.checkpoint import LogCheckpoint

Example:
    checkpoint = LogCheckpoint(
        stream_name="tenant-logs",
        checkpoint_value="90020231115115320104066743912538390779624318189842448386",
    )
    session.add(checkpoint)
    await session.commit()
"""

__all__ = [
    "Base",
    "ProcessorStatus",
    "LogCheckpoint",
]
