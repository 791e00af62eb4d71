"""
Observability for the archiver: structured logging with module tags.
"""

from .log import LogLevel, configure_logging, get_logger, log_advanced

__all__ = [
    "LogLevel",
    "configure_logging",
    "get_logger",
    "log_advanced",
]
