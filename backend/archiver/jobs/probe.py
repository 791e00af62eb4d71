"""
Process liveness probe and termination signalling.

Design rules:
- Every external command runs through ProcessLauncher with a timeout
- Liveness prefers a direct OS check keyed by the exact pid
- The textual `ps` check is a fallback only; it matches the pid as a
  whitespace token, which can still false-match a pid-shaped value in
  another column of the output
- Termination is optimistic: the signal is sent, never verified
- A probe that cannot answer raises ProbeError; "process absent" is a
  normal False result
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ProbeTimeout, ProbeUnavailable
from .models import MAX_PID
from ..observability import log_advanced

DEFAULT_PROBE_TIMEOUT = 5.0

_PROC_ROOT = Path("/proc")


@dataclass(frozen=True)
class LaunchResult:
    """Exit status and combined stdout/stderr of one command."""

    exit_code: int
    output: str


class ProcessLauncher:
    """
    Runs short-lived OS commands.

    stderr is merged into stdout so callers get the full text the
    command produced, as an operator would see it in a terminal.
    """

    def execute(self, argv: Sequence[str], timeout: float) -> LaunchResult:
        """
        Run a command and capture its output.

        Raises:
            ProbeTimeout: If the command exceeds ``timeout`` seconds
            ProbeUnavailable: If the command cannot be started
        """
        argv = [str(a) for a in argv]
        try:
            result = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeTimeout(argv, timeout) from e
        except OSError as e:
            raise ProbeUnavailable(argv, str(e)) from e
        return LaunchResult(exit_code=result.returncode, output=result.stdout or "")


def _check_pid(pid: int) -> int:
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        # 0 and negative pids address process groups for kill(2)
        raise ValueError(f"Refusing to probe or signal pid {pid!r}")
    if pid > MAX_PID:
        raise ValueError(f"pid {pid} is outside the OS pid range")
    return pid


def output_has_pid(output: str, pid: int) -> bool:
    """True if ``pid`` appears as a whitespace-separated token of ``output``."""
    return str(pid) in output.split()


class ProcessProbe:
    """
    Liveness check and terminate signal for a recorded pid.

    Args:
        launcher: Command runner; defaults to ProcessLauncher()
        timeout: Ceiling in seconds for every external command
        use_native: Use the direct OS check when the platform has one
    """

    def __init__(
        self,
        launcher: Optional[ProcessLauncher] = None,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        use_native: bool = True,
    ):
        self.launcher = launcher or ProcessLauncher()
        self.timeout = timeout
        self.use_native = use_native and os.name == "posix"

    # Liveness

    def is_alive(self, pid: int) -> bool:
        """
        Check whether a process with this pid exists.

        Returns:
            True if present, False if absent

        Raises:
            ValueError: For pid <= 0
            ProbeError: If the fallback command could not answer
        """
        _check_pid(pid)
        if self.use_native:
            return self._is_alive_native(pid)
        return self._is_alive_textual(pid)

    def _is_alive_native(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, owned by another user
            return True
        return not self._is_zombie(pid)

    def _is_zombie(self, pid: int) -> bool:
        """Exited-but-unreaped children still answer kill(pid, 0)."""
        stat = _PROC_ROOT / str(pid) / "stat"
        try:
            text = stat.read_text()
        except OSError:
            return False
        # Format: "<pid> (<comm>) <state> ..."; comm may contain spaces
        _, _, rest = text.rpartition(")")
        fields = rest.split()
        return bool(fields) and fields[0] == "Z"

    def _is_alive_textual(self, pid: int) -> bool:
        result = self.launcher.execute(self._list_command(pid), self.timeout)
        return output_has_pid(result.output, pid)

    def _list_command(self, pid: int) -> List[str]:
        if os.name == "nt":
            return ["tasklist", "/FI", f"PID eq {pid}"]
        return ["ps", "-p", str(pid)]

    # Signalling

    def signal_terminate(self, pid: int) -> str:
        """
        Send a terminate signal via the OS kill command.

        Returns:
            Raw command output; empty on a clean kill

        Raises:
            ValueError: For pid <= 0 or the calling process's own pid
            ProbeError: If the command timed out or could not be started
        """
        _check_pid(pid)
        if pid == os.getpid():
            raise ValueError(f"Refusing to signal own process (pid {pid})")

        result = self.launcher.execute(self._kill_command(pid), self.timeout)
        if result.exit_code != 0:
            log_advanced(
                "WARNING", "probe",
                f"Kill command for pid {pid} exited {result.exit_code}: {result.output.strip()}",
            )
        return result.output

    def _kill_command(self, pid: int) -> List[str]:
        if os.name == "nt":
            return ["taskkill", "/PID", str(pid)]
        return ["kill", str(pid)]
