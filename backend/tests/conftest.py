"""
Pytest configuration and shared fixtures for the job registry tests.

Nothing here touches the real ~/.vod-archiver directory: every store
lives under tmp_path, and command execution goes through FakeLauncher
unless a test explicitly exercises the real OS.
"""

import os
from typing import List, Optional, Sequence, Tuple

import pytest

from archiver.jobs.models import JobDescriptor
from archiver.jobs.notify import NotificationSink
from archiver.jobs.probe import LaunchResult, ProcessLauncher, ProcessProbe
from archiver.jobs.registry import JobRegistry
from archiver.jobs.store import JobStore


# ===== Test doubles =====

class FakeLauncher(ProcessLauncher):
    """Records argv and returns a canned result (or raises a canned error)."""

    def __init__(self, output: str = "", exit_code: int = 0, error: Optional[Exception] = None):
        self.output = output
        self.exit_code = exit_code
        self.error = error
        self.calls: List[Tuple[List[str], float]] = []

    def execute(self, argv: Sequence[str], timeout: float) -> LaunchResult:
        self.calls.append((list(argv), timeout))
        if self.error is not None:
            raise self.error
        return LaunchResult(exit_code=self.exit_code, output=self.output)


class RecordingSink(NotificationSink):
    """Captures notifications as (action, job_name, pid) tuples."""

    def __init__(self):
        self.events: List[Tuple[str, str, Optional[int]]] = []

    def notify(self, action: str, job_name: str, job: JobDescriptor) -> None:
        self.events.append((action, job_name, job.pid))


# ===== Fixtures =====

@pytest.fixture
def pids_dir(tmp_path):
    """Base pid directory, created empty."""
    path = tmp_path / "pids"
    path.mkdir()
    return path


@pytest.fixture
def store(pids_dir):
    return JobStore(pids_dir)


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def fake_probe(launcher):
    """Probe that only ever talks to FakeLauncher."""
    return ProcessProbe(launcher=launcher, timeout=2.0, use_native=False)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def registry(store, fake_probe, sink):
    """Registry with fake command execution and recorded notifications."""
    return JobRegistry(store=store, probe=fake_probe, notifier=sink)


@pytest.fixture
def os_registry(store, sink):
    """Registry using the real OS liveness check."""
    if os.name != "posix":
        pytest.skip("requires a POSIX process model")
    return JobRegistry(store=store, probe=ProcessProbe(timeout=5.0), notifier=sink)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "posix: requires a POSIX process model (ps, kill, /proc)"
    )
