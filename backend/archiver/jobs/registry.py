"""
Job registry: lifecycle API over descriptor files.

The registry is stateless apart from per-name locks and the handle
table; the descriptor files are the only source of truth. Any number of
registries (HTTP handlers, CLI invocations, scheduled checks) may work
on the same base directory.

Operations:
- create: new in-memory descriptor (no I/O besides an existence check)
- load: descriptor from disk, failures returned as JobLoadResult
- save: atomic write, then "job_save" notification
- get_status: probe the recorded pid
- clear: delete the file, then "job_clear" notification if one was removed
- kill: terminate signal, then clear (best-effort cleanup)
"""

import asyncio
import subprocess
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from .errors import (
    InvalidStateTransitionError,
    JobDataCorrupt,
    JobExistsError,
    JobFault,
    JobFileMissing,
    NoPidSetError,
    ProbeError,
)
from .models import (
    JobDescriptor,
    JobLifecycle,
    JobStatus,
    OverwritePolicy,
    validate_job_name,
)
from .notify import (
    ACTION_CLEAR,
    ACTION_SAVE,
    NotificationSink,
    NullNotificationSink,
    build_notification_sink,
)
from .probe import ProcessProbe
from .spawner import ProcessHandleTable
from .state import (
    is_lifecycle_terminal,
    lifecycle_after_probe,
    lifecycle_after_save,
    validate_lifecycle_transition,
)
from .store import JobStore
from ..observability import log_advanced

if TYPE_CHECKING:
    from ..config import ArchiverSettings


@dataclass
class JobLoadResult:
    """
    Outcome of JobRegistry.load().

    Exactly one of ``job`` and ``error`` is set. Truthy on success so
    callers can write ``if result: ...``.
    """

    name: str
    job: Optional[JobDescriptor] = None
    error: Optional[JobFault] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.job is not None

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class KillResult:
    """
    Outcome of JobRegistry.kill().

    Truthy when a terminate signal was sent. ``cleared`` reports whether
    a descriptor file was removed; ``error`` is set when the signal could
    not be delivered (timeout, missing kill command), which callers must
    not confuse with a process that was simply gone.
    """

    job_name: str
    signalled: bool
    output: str = ""
    cleared: bool = False
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.signalled


class _NameLocks:
    """Per-name re-entrant locks, scoped to this process."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, name: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            return lock


class JobRegistry:
    """
    Facade over JobStore, ProcessProbe and NotificationSink.

    Operations on different names are independent. Operations on the
    same name are serialised within this process; across processes,
    concurrent saves are last-writer-wins.
    """

    def __init__(
        self,
        store: JobStore,
        probe: Optional[ProcessProbe] = None,
        notifier: Optional[NotificationSink] = None,
        overwrite_policy: OverwritePolicy = OverwritePolicy.OVERWRITE,
        handles: Optional[ProcessHandleTable] = None,
    ):
        """
        Initialize registry.

        Args:
            store: Descriptor file store
            probe: Liveness/kill probe; defaults to ProcessProbe()
            notifier: Lifecycle notification sink; defaults to no-op
            overwrite_policy: Behaviour of create() over a persisted name
            handles: Live process handles owned by this process
        """
        self.store = store
        self.probe = probe or ProcessProbe()
        self.notifier = notifier or NullNotificationSink()
        self.overwrite_policy = OverwritePolicy(overwrite_policy)
        self.handles = handles or ProcessHandleTable()
        self._locks = _NameLocks()

    @classmethod
    def from_settings(cls, settings: "ArchiverSettings") -> "JobRegistry":
        return cls(
            store=JobStore(settings.pids_dir),
            probe=ProcessProbe(timeout=settings.probe_timeout),
            notifier=build_notification_sink(
                settings.webhook_url, timeout=settings.webhook_timeout
            ),
            overwrite_policy=settings.overwrite_policy,
        )

    def close(self) -> None:
        """Drain pending notifications."""
        self.notifier.close()

    # Lifecycle operations

    def create(self, name: str) -> JobDescriptor:
        """
        Create a new, unpersisted descriptor.

        Raises:
            ValueError: If the name is not filesystem-safe
            JobExistsError: If the name is persisted and the policy is
                FAIL_IF_EXISTS
        """
        validate_job_name(name)

        if self.store.exists(name):
            if self.overwrite_policy == OverwritePolicy.FAIL_IF_EXISTS:
                raise JobExistsError(name)
            log_advanced("WARNING", "job", f"Creating job {name} overwrites existing!")

        return JobDescriptor(name=name)

    def load(self, name: str) -> JobLoadResult:
        """
        Load a descriptor from disk. Never raises.

        Returns:
            JobLoadResult with the descriptor, or with FILE_MISSING /
            DATA_CORRUPT and a reason
        """
        try:
            job = self.store.read(name)
        except (JobFileMissing, JobDataCorrupt) as e:
            log_advanced("ERROR", "job", f"Loading job {name} failed: {e.reason}")
            return JobLoadResult(name=name, error=e.fault, reason=e.reason)
        except ValueError as e:
            # Unsafe name: no file can exist for it
            log_advanced("ERROR", "job", f"Loading job {name!r} failed: {e}")
            return JobLoadResult(name=name, error=JobFault.FILE_MISSING, reason=str(e))

        return JobLoadResult(name=name, job=job)

    def save(self, job: JobDescriptor) -> None:
        """
        Persist a descriptor, then notify "job_save".

        Raises:
            InvalidStateTransitionError: If the descriptor was cleared
            PersistFailure: If the file could not be written
        """
        next_state = lifecycle_after_save(job.lifecycle)
        validate_lifecycle_transition(job.name, job.lifecycle, next_state)

        log_advanced("INFO", "job", f"Save job {job.name} with PID {job.pid}", job.metadata)

        with self._locks.get(job.name):
            self.store.write(job)
            job.lifecycle = next_state

        self._notify(ACTION_SAVE, job)

    def get_status(self, job: JobDescriptor) -> JobStatus:
        """
        Probe the recorded pid and update ``job.status``.

        Returns:
            JobStatus.RUNNING or JobStatus.STOPPED

        Raises:
            NoPidSetError: If no pid is recorded (job.error = NO_PID_SET)
            InvalidStateTransitionError: If the descriptor has been cleared
            ProbeError: If the probe could not answer (status UNKNOWN)
        """
        log_advanced("DEBUG", "job", f"Check status for job {job.name}", job.metadata)

        pid = job.get_pid()
        if not pid:
            job.error = JobFault.NO_PID_SET
            raise NoPidSetError(job.name)

        if is_lifecycle_terminal(job.lifecycle):
            raise InvalidStateTransitionError(
                job.name, job.lifecycle.value, JobLifecycle.RUNNING.value
            )

        # A child we spawned ourselves must be reaped or it lingers as a zombie
        self.handles.reap(job.name)

        try:
            alive = self.probe.is_alive(pid)
        except ProbeError as e:
            job.status = JobStatus.UNKNOWN
            log_advanced("ERROR", "job", f"Status check for job {job.name} failed: {e}")
            raise

        job.error = None
        if alive:
            log_advanced("DEBUG", "job", f"PID check for '{job.name}', process is running")
            job.status = JobStatus.RUNNING
        else:
            log_advanced("DEBUG", "job", f"PID check for '{job.name}', process does not exist")
            job.status = JobStatus.STOPPED

        next_state = lifecycle_after_probe(job.lifecycle, alive)
        validate_lifecycle_transition(job.name, job.lifecycle, next_state)
        job.lifecycle = next_state
        return job.status

    def clear(self, job: JobDescriptor) -> bool:
        """
        Remove the descriptor file, then notify "job_clear".

        Returns:
            True if a file was removed; False if there was none or the
            descriptor was already cleared (no notification either way)

        Raises:
            PersistFailure: If the file exists but cannot be removed
        """
        if is_lifecycle_terminal(job.lifecycle):
            return False

        with self._locks.get(job.name):
            removed = self.store.delete(job.name)
            job.lifecycle = JobLifecycle.CLEARED

        if removed:
            log_advanced("INFO", "job", f"Clear job {job.name} with PID {job.pid}", job.metadata)
            self._notify(ACTION_CLEAR, job)
        return removed

    def kill(self, job: JobDescriptor) -> KillResult:
        """
        Send a terminate signal to the job's process, then clear it.

        Termination is not verified. The descriptor is cleared even if
        the process was already gone or the signal could not be sent.

        Returns:
            KillResult; falsy with the file untouched if no pid is set

        Raises:
            InvalidStateTransitionError: If the descriptor was already cleared
            PersistFailure: If the descriptor file cannot be removed
        """
        pid = job.get_pid()
        if not pid:
            log_advanced("WARNING", "job", f"Kill job {job.name} skipped, no pid set")
            return KillResult(job_name=job.name, signalled=False, error="no pid set")

        validate_lifecycle_transition(job.name, job.lifecycle, JobLifecycle.CLEARED)

        output = ""
        error = None
        signalled = False

        with self._locks.get(job.name):
            handle = self.handles.get(job.name)
            try:
                if handle is not None and handle.pid == pid:
                    self.handles.pop(job.name)
                    self._terminate_handle(job.name, handle)
                else:
                    output = self.probe.signal_terminate(pid)
                signalled = True
            except (ProbeError, ValueError) as e:
                error = str(e)
                log_advanced("WARNING", "job", f"Kill signal for job {job.name} failed: {e}")

            cleared = self.clear(job)

        return KillResult(
            job_name=job.name,
            signalled=signalled,
            output=output,
            cleared=cleared,
            error=error,
        )

    def _terminate_handle(self, name: str, process: subprocess.Popen) -> None:
        """SIGTERM an owned child, escalating to SIGKILL after the probe timeout."""
        log_advanced("INFO", "job", f"Sending SIGTERM to PID {process.pid} of job {name}")
        try:
            process.terminate()
            try:
                process.wait(timeout=self.probe.timeout)
            except subprocess.TimeoutExpired:
                log_advanced(
                    "WARNING", "job",
                    f"PID {process.pid} did not terminate, sending SIGKILL",
                )
                process.kill()
                process.wait(timeout=self.probe.timeout)
        except ProcessLookupError:
            pass  # Process already dead
        except subprocess.TimeoutExpired:
            log_advanced("ERROR", "job", f"PID {process.pid} survived SIGKILL wait")

    # Enumeration (consumed by job listing surfaces)

    def list_names(self) -> List[str]:
        return self.store.list_names()

    def load_all(self) -> List[JobLoadResult]:
        """Load every persisted job; broken descriptors come back as failed results."""
        return [self.load(name) for name in self.list_names()]

    # Non-blocking variants for async callers

    async def get_status_async(self, job: JobDescriptor) -> JobStatus:
        return await asyncio.to_thread(self.get_status, job)

    async def kill_async(self, job: JobDescriptor) -> KillResult:
        return await asyncio.to_thread(self.kill, job)

    def _notify(self, action: str, job: JobDescriptor) -> None:
        try:
            self.notifier.notify(action, job.name, job)
        except Exception as e:
            log_advanced("ERROR", "webhook", f"Notification {action} for job {job.name} failed: {e}")
