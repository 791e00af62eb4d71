"""
Job descriptor data model.

A descriptor represents one externally spawned process (stream capture,
remux, cut) by name. It is pure data: persistence, probing and
signalling live in JobStore, ProcessProbe and JobRegistry.

Only name, pid, metadata and started_at are persisted. status, error and
lifecycle are derived in memory and are never written to disk.
No live process handle is ever stored here (see spawner.ProcessHandleTable).
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import JobFault

# Longest accepted job name; names become directory and file names.
MAX_NAME_LENGTH = 200

# Largest pid the OS calls accept (signed 32-bit pid_t)
MAX_PID = 2 ** 31 - 1

_PATH_SEPARATORS = ("/", "\\")


class JobStatus(str, Enum):
    """
    Derived liveness of the job's process.

    RUNNING always goes together with a pid (see JobDescriptor.running_pid).
    """

    UNKNOWN = "unknown"  # Not probed yet, or the probe could not answer
    RUNNING = "running"  # Process with the recorded pid exists
    STOPPED = "stopped"  # No process with the recorded pid


class JobLifecycle(str, Enum):
    """
    In-memory lifecycle of a descriptor.

    Transitions are validated in state.py.
    """

    CREATED = "created"  # In memory only, no file yet
    PERSISTED = "persisted"  # Saved or loaded, not probed
    RUNNING = "running"  # Last probe found the process
    STOPPED = "stopped"  # Last probe did not find the process
    CLEARED = "cleared"  # Descriptor file removed (terminal)


class OverwritePolicy(str, Enum):
    """What create() does when the name already has a persisted descriptor."""

    OVERWRITE = "overwrite"  # Warn, next save() replaces the file
    FAIL_IF_EXISTS = "fail_if_exists"  # Raise JobExistsError


def validate_job_name(name: str) -> str:
    """
    Validate that a job name is safe to use as a file and directory name.

    Raises:
        ValueError: If the name is empty, a dot name, too long, or contains
            a path separator or control character
    """
    if not isinstance(name, str) or not name:
        raise ValueError("Job name must be a non-empty string")
    if name in (".", ".."):
        raise ValueError(f"Job name {name!r} is reserved")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"Job name exceeds {MAX_NAME_LENGTH} characters")
    for sep in _PATH_SEPARATORS:
        if sep in name:
            raise ValueError(f"Job name {name!r} contains a path separator")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in name):
        raise ValueError(f"Job name {name!r} contains a control character")
    return name


class JobDescriptor(BaseModel):
    """
    A named, disk-persistable record of one external process.

    Fields are validated on assignment, so a bad pid or name is rejected
    at the point it is set rather than when the descriptor is saved.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # Identity
    name: str

    # Process
    pid: Optional[int] = None

    # Timestamps
    started_at: Optional[datetime] = Field(default_factory=datetime.now)

    # Opaque caller payload, never inspected
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # Derived, not persisted
    status: JobStatus = JobStatus.UNKNOWN
    error: Optional[JobFault] = None
    lifecycle: JobLifecycle = JobLifecycle.CREATED

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return validate_job_name(value)

    @field_validator("pid", mode="before")
    @classmethod
    def _check_pid(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("pid must be an integer")
        if value <= 0:
            raise ValueError("pid must be a positive integer")
        if value > MAX_PID:
            raise ValueError(f"pid must not exceed {MAX_PID}")
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("metadata")
    @classmethod
    def _check_metadata_json(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"metadata must be JSON-serialisable: {e}") from e
        return value

    def set_pid(self, pid: int) -> None:
        self.pid = pid

    def get_pid(self) -> Optional[int]:
        return self.pid

    def set_metadata(self, metadata: Optional[Dict[str, Any]]) -> None:
        self.metadata = metadata

    @property
    def running_pid(self) -> Optional[int]:
        """The pid if the last probe found the process running, else None."""
        if self.status == JobStatus.RUNNING:
            return self.pid
        return None
