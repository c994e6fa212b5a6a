"""Utility modules for tracelink.

Provides:
- Structured logging configuration
- Operation start/end logging
"""

from .logging import configure_logging, get_logger, log_operation

__all__ = [
    "configure_logging",
    "get_logger",
    "log_operation",
]
