"""
Structured logging for the archiver.

Every record carries a module tag (e.g. "job", "probe", "webhook") and an
optional metadata mapping. Both are attached to the standard logging
record via ``extra`` so handlers can render or ship them.
"""

import logging
from enum import Enum
from typing import Any, Mapping, Optional, Union

ROOT_LOGGER = "archiver"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s <%(module_tag)s>: %(message)s"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class _ModuleTagFilter(logging.Filter):
    """Give records from plain logger calls an empty tag so LOG_FORMAT never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "module_tag"):
            record.module_tag = "-"
        if not hasattr(record, "job_metadata"):
            record.job_metadata = None
        return True


def get_logger(module: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{module}")


def log_advanced(
    level: Union[LogLevel, str],
    module: str,
    message: str,
    metadata: Optional[Mapping[str, Any]] = None,
) -> None:
    """
    Emit one structured log record.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        module: Short tag for the emitting subsystem
        message: Human readable message
        metadata: Optional job metadata attached as ``record.job_metadata``
    """
    level = LogLevel(level)
    get_logger(module).log(
        _LEVELS[level],
        message,
        extra={
            "module_tag": module,
            "job_metadata": dict(metadata) if metadata else None,
        },
    )


def configure_logging(level: Union[LogLevel, str] = LogLevel.INFO) -> None:
    """Configure root logging once for CLI and script entrypoints."""
    if not isinstance(level, LogLevel):
        level = LogLevel(level.upper())
    logging.basicConfig(
        level=_LEVELS[level],
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, _ModuleTagFilter) for f in handler.filters):
            handler.addFilter(_ModuleTagFilter())
