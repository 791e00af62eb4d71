"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Recoverable load/status failures also carry a JobFault code so that
callers enumerating many jobs can report them without unwinding.
"""

from enum import Enum
from typing import Optional


class JobFault(str, Enum):
    """
    Recoverable failure codes recorded on a descriptor.

    Set only by a failed load or status check.
    """

    FILE_MISSING = "file_missing"  # No descriptor file on disk
    DATA_CORRUPT = "data_corrupt"  # File exists but is empty or unparseable
    NO_PID_SET = "no_pid_set"  # Status requested before a pid was recorded


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class JobStoreError(JobError):
    """Base exception for descriptor file operations."""

    fault: Optional[JobFault] = None

    def __init__(self, job_name: str, reason: str):
        self.job_name = job_name
        self.reason = reason
        super().__init__(f"Job {job_name}: {reason}")


class JobFileMissing(JobStoreError):
    """Raised when a job has no descriptor file."""

    fault = JobFault.FILE_MISSING

    def __init__(self, job_name: str):
        super().__init__(job_name, "no descriptor file")


class JobDataCorrupt(JobStoreError):
    """Raised when a descriptor file is empty or cannot be parsed."""

    fault = JobFault.DATA_CORRUPT


class PersistFailure(JobStoreError):
    """Raised when writing or deleting a descriptor file fails."""
    pass


class NoPidSetError(JobError):
    """Raised when a status check is requested for a job without a pid."""

    fault = JobFault.NO_PID_SET

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"No pid set on job {job_name}")


class JobExistsError(JobError):
    """Raised by create() under the fail-if-exists policy."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"Job already persisted: {job_name}")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal lifecycle transition."""

    def __init__(self, job_name: str, current_state: str, target_state: str):
        self.job_name = job_name
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid lifecycle transition for job {job_name}: "
            f"{current_state} -> {target_state}"
        )


class ProbeError(JobError):
    """
    Raised when the process layer could not answer.

    Distinct from a clean "process absent" result: the caller cannot
    tell whether the process is running.
    """

    def __init__(self, argv: list, reason: str):
        self.argv = list(argv)
        self.reason = reason
        super().__init__(f"Command {' '.join(self.argv)!r} failed: {reason}")


class ProbeTimeout(ProbeError):
    """The external command did not finish within its timeout."""

    def __init__(self, argv: list, timeout: float):
        self.timeout = timeout
        super().__init__(argv, f"timed out after {timeout:g}s")


class ProbeUnavailable(ProbeError):
    """The external command could not be started (missing binary, permissions)."""
    pass
