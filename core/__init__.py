"""
Core utilities and configuration for the logs processor.

Modules:
    config: Environment settings and per-processor options
    database: Async engine and session factory for the checkpoint database
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings, ProcessorOptions
    from core.exceptions import FetchError, ConsumerError
    from core.logging import setup_logging
"""

__all__ = [
    "config",
    "database",
    "exceptions",
    "logging",
]
