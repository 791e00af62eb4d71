"""
Archiver settings.

Read from ARCHIVER_* environment variables; everything has a default so
the CLI works out of the box against ~/.vod-archiver/pids.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .jobs.models import OverwritePolicy
from .observability import LogLevel

ENV_PREFIX = "ARCHIVER_"

DEFAULT_PIDS_DIR = Path.home() / ".vod-archiver" / "pids"


class ArchiverSettings(BaseModel):
    """Settings for the job registry and its collaborators."""

    model_config = ConfigDict(extra="forbid")

    pids_dir: Path = DEFAULT_PIDS_DIR
    webhook_url: Optional[str] = None
    webhook_timeout: float = Field(default=5.0, gt=0)
    probe_timeout: float = Field(default=5.0, gt=0)
    overwrite_policy: OverwritePolicy = OverwritePolicy.OVERWRITE
    log_level: LogLevel = LogLevel.INFO

    @field_validator("pids_dir", mode="before")
    @classmethod
    def _expand_pids_dir(cls, value):
        return Path(value).expanduser() if value is not None else DEFAULT_PIDS_DIR

    @field_validator("webhook_url", mode="before")
    @classmethod
    def _blank_webhook(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ArchiverSettings":
        """
        Build settings from the environment.

        Recognised variables: ARCHIVER_PIDS_DIR, ARCHIVER_WEBHOOK_URL,
        ARCHIVER_WEBHOOK_TIMEOUT, ARCHIVER_PROBE_TIMEOUT,
        ARCHIVER_OVERWRITE_POLICY, ARCHIVER_LOG_LEVEL.

        Raises:
            pydantic.ValidationError: If a variable has an invalid value
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field_name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is not None:
                values[field_name] = raw
        return cls(**values)


@lru_cache
def get_settings() -> ArchiverSettings:
    return ArchiverSettings.from_env()
