"""
Process job registry: durable tracking of external capture/encode processes.

This module represents each external process as a named descriptor file
and answers "is it still running?" without a supervisor daemon.
It does NOT build ffmpeg/streamlink command lines or serve HTTP.

Scope:
- JobDescriptor data model and name validation
- JobStore: one JSON file per job, atomic writes
- ProcessProbe: liveness and terminate signal by pid
- NotificationSink: best-effort webhooks on save/clear
- JobRegistry: lifecycle API and state machine
- JobSpawner: launch a command and register it
"""

from .errors import (
    JobError,
    JobFault,
    JobStoreError,
    JobFileMissing,
    JobDataCorrupt,
    PersistFailure,
    NoPidSetError,
    JobExistsError,
    InvalidStateTransitionError,
    ProbeError,
    ProbeTimeout,
    ProbeUnavailable,
)
from .models import (
    JobStatus,
    JobLifecycle,
    OverwritePolicy,
    JobDescriptor,
    validate_job_name,
)
from .state import (
    can_transition_lifecycle,
    is_lifecycle_terminal,
)
from .store import JobStore
from .probe import ProcessLauncher, LaunchResult, ProcessProbe
from .notify import (
    NotificationSink,
    NullNotificationSink,
    WebhookNotificationSink,
)
from .spawner import JobSpawner, ProcessHandleTable
from .registry import JobRegistry, JobLoadResult, KillResult

__all__ = [
    # Errors
    "JobError",
    "JobFault",
    "JobStoreError",
    "JobFileMissing",
    "JobDataCorrupt",
    "PersistFailure",
    "NoPidSetError",
    "JobExistsError",
    "InvalidStateTransitionError",
    "ProbeError",
    "ProbeTimeout",
    "ProbeUnavailable",
    # Models
    "JobStatus",
    "JobLifecycle",
    "OverwritePolicy",
    "JobDescriptor",
    "validate_job_name",
    # State validation
    "can_transition_lifecycle",
    "is_lifecycle_terminal",
    # Store
    "JobStore",
    # Probe
    "ProcessLauncher",
    "LaunchResult",
    "ProcessProbe",
    # Notifications
    "NotificationSink",
    "NullNotificationSink",
    "WebhookNotificationSink",
    # Spawner
    "JobSpawner",
    "ProcessHandleTable",
    # Registry
    "JobRegistry",
    "JobLoadResult",
    "KillResult",
]
