"""
Log sources feeding the processor one page at a time.

Modules:
    base: Abstract LogSource
    management_api: Management API ``/api/v2/logs`` client
"""

__all__ = [
    "base",
    "management_api",
]
