"""
Job spawner: start a long-running external process and register it.

Design rules:
- One subprocess per job name
- The descriptor is saved only after the process has a pid
- Output (stdout + stderr) goes to an optional log file, never a pipe,
  so a chatty capture process cannot block on a full pipe buffer
- Popen handles live in a process-local side-table, never in the
  descriptor, and do not survive a restart
"""

import subprocess
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from .models import JobDescriptor
from ..observability import log_advanced

if TYPE_CHECKING:
    from .registry import JobRegistry


class ProcessHandleTable:
    """
    In-memory map of job name → live Popen handle.

    Only the process that spawned a job has its handle. Everything else
    (other workers, a restarted service) goes through the pid on disk.
    """

    def __init__(self):
        self._handles: Dict[str, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def register(self, name: str, process: subprocess.Popen) -> None:
        with self._lock:
            self._handles[name] = process

    def get(self, name: str) -> Optional[subprocess.Popen]:
        with self._lock:
            return self._handles.get(name)

    def pop(self, name: str) -> Optional[subprocess.Popen]:
        with self._lock:
            return self._handles.pop(name, None)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._handles)

    def reap(self, name: str) -> Optional[int]:
        """
        Collect the exit code of a finished child.

        Returns:
            Exit code if the child has exited (handle is dropped),
            None if still running or not owned here
        """
        with self._lock:
            process = self._handles.get(name)
            if process is None:
                return None
            exit_code = process.poll()
            if exit_code is not None:
                del self._handles[name]
            return exit_code


class JobSpawner:
    """
    Spawns capture/encode commands as registry jobs.

    The argument vector is built by the caller (ffmpeg, streamlink, ...);
    the spawner only launches it and records the result.
    """

    def __init__(self, registry: "JobRegistry"):
        self.registry = registry

    def spawn(
        self,
        name: str,
        argv: Sequence[str],
        metadata: Optional[Dict[str, Any]] = None,
        log_path: Optional[Union[str, Path]] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> JobDescriptor:
        """
        Start a process and persist its descriptor.

        Args:
            name: Job name
            argv: Command and arguments
            metadata: Opaque payload stored with the descriptor
            log_path: Optional file receiving combined stdout/stderr
            cwd: Optional working directory

        Returns:
            The saved descriptor, lifecycle PERSISTED

        Raises:
            ValueError: Invalid name or empty argv
            JobExistsError: Name taken under the fail-if-exists policy
            OSError: The command could not be started
            PersistFailure: The descriptor could not be written; the
                process is terminated again in that case
        """
        if not argv:
            raise ValueError("Cannot spawn an empty command")

        job = self.registry.create(name)
        job.set_metadata(metadata)

        cmd = [str(a) for a in argv]
        log_advanced("INFO", "job", f"Spawning job {name}: {' '.join(cmd)}", job.metadata)

        log_file = None
        if log_path is not None:
            log_path = Path(log_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = open(log_path, "ab")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=log_file if log_file is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
                cwd=str(cwd) if cwd is not None else None,
            )
        finally:
            # The child holds its own descriptor
            if log_file is not None:
                log_file.close()

        job.set_pid(process.pid)

        try:
            self.registry.save(job)
        except Exception:
            log_advanced(
                "ERROR", "job",
                f"Could not persist job {name}, terminating PID {process.pid}",
                job.metadata,
            )
            process.terminate()
            raise

        self.registry.handles.register(name, process)
        log_advanced("INFO", "job", f"Started PID {process.pid} for job {name}", job.metadata)
        return job

    def poll(self, name: str) -> Optional[int]:
        """Exit code of an owned, finished job; None otherwise."""
        exit_code = self.registry.handles.reap(name)
        if exit_code is not None:
            log_advanced("INFO", "job", f"Job {name} exited with code {exit_code}")
        return exit_code
