"""
CLI control surface for operator job control.

Provides explicit commands over the job registry:
- list: every persisted job with liveness
- status: probe one job
- kill: terminate one job and clear its descriptor
- clear: remove one descriptor
"""

from .commands import (
    list_jobs,
    job_status,
    kill_job,
    clear_job,
)
from .errors import CLIError, ValidationError

__all__ = [
    "list_jobs",
    "job_status",
    "kill_job",
    "clear_job",
    "CLIError",
    "ValidationError",
]
