"""
Tests for JobSpawner and the process handle table.

These start real child processes (the current interpreter), so they
are POSIX only.
"""

import sys
import time
from unittest.mock import MagicMock

import pytest

from archiver.jobs.errors import PersistFailure
from archiver.jobs.models import JobLifecycle, JobStatus
from archiver.jobs.spawner import JobSpawner, ProcessHandleTable

pytestmark = pytest.mark.posix

SLEEPER = [sys.executable, "-c", "import time; time.sleep(30)"]


def _wait_for_exit(spawner, name, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        exit_code = spawner.poll(name)
        if exit_code is not None:
            return exit_code
        time.sleep(0.05)
    raise AssertionError(f"job {name} did not exit within {timeout}s")


@pytest.fixture
def spawner(os_registry):
    spawned = JobSpawner(os_registry)
    yield spawned
    for name in os_registry.handles.names():
        process = os_registry.handles.pop(name)
        process.kill()
        process.wait(timeout=5)


class TestProcessHandleTable:

    def test_register_get_pop(self):
        table = ProcessHandleTable()
        process = MagicMock(pid=4242)

        table.register("job_a", process)
        assert table.get("job_a") is process
        assert table.names() == ["job_a"]
        assert table.pop("job_a") is process
        assert table.get("job_a") is None

    def test_reap_keeps_running_handle(self):
        table = ProcessHandleTable()
        table.register("job_a", MagicMock(**{"poll.return_value": None}))

        assert table.reap("job_a") is None
        assert table.names() == ["job_a"]

    def test_reap_drops_finished_handle(self):
        table = ProcessHandleTable()
        table.register("job_a", MagicMock(**{"poll.return_value": 3}))

        assert table.reap("job_a") == 3
        assert table.names() == []

    def test_reap_unknown_name(self):
        assert ProcessHandleTable().reap("nope") is None


class TestSpawn:

    def test_spawn_persists_pid_and_handle(self, spawner, os_registry, store, sink):
        job = spawner.spawn("capture_streamer", SLEEPER, metadata={"quality": "best"})

        assert job.lifecycle == JobLifecycle.PERSISTED
        assert store.read("capture_streamer").pid == job.pid
        assert os_registry.handles.get("capture_streamer").pid == job.pid
        assert sink.events == [("job_save", "capture_streamer", job.pid)]

        assert os_registry.get_status(job) == JobStatus.RUNNING

    def test_kill_uses_owned_handle(self, spawner, os_registry, store):
        job = spawner.spawn("capture_streamer", SLEEPER)
        process = os_registry.handles.get("capture_streamer")

        result = os_registry.kill(job)

        assert result.signalled is True
        assert result.cleared is True
        assert process.returncode is not None
        assert os_registry.handles.get("capture_streamer") is None
        assert not store.exists("capture_streamer")

    def test_finished_job_reports_exit_code_and_stops(self, spawner, os_registry):
        job = spawner.spawn("cut_vod", [sys.executable, "-c", "raise SystemExit(3)"])

        assert _wait_for_exit(spawner, "cut_vod") == 3
        assert os_registry.get_status(job) == JobStatus.STOPPED

    def test_output_goes_to_log_file(self, spawner, tmp_path):
        log_path = tmp_path / "logs" / "cut_vod.log"
        spawner.spawn(
            "cut_vod",
            [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
            log_path=log_path,
        )
        _wait_for_exit(spawner, "cut_vod")

        text = log_path.read_text()
        assert "out" in text
        assert "err" in text

    def test_empty_argv_rejected(self, spawner, store):
        with pytest.raises(ValueError):
            spawner.spawn("empty", [])
        assert not store.exists("empty")

    def test_missing_binary_is_not_persisted(self, spawner, store):
        with pytest.raises(OSError):
            spawner.spawn("missing", ["/nonexistent/streamlink"])
        assert not store.exists("missing")

    def test_failed_save_terminates_process(self, spawner, os_registry, store, monkeypatch):
        def fail(job):
            raise PersistFailure(job.name, "write failed: read-only filesystem")

        monkeypatch.setattr(store, "write", fail)

        with pytest.raises(PersistFailure):
            spawner.spawn("capture_streamer", SLEEPER)
        assert os_registry.handles.get("capture_streamer") is None
