"""
Checkpoint stores.

Modules:
    base: Abstract CheckpointStore
    memory: In-process store
    sql: SQLAlchemy store backed by the log_checkpoints table
"""

__all__ = [
    "base",
    "memory",
    "sql",
]
