"""
Tests for the archiver-jobs CLI.

main() is driven in-process with --pids-dir pointing at tmp_path, so
the real ProcessProbe is used against this test process or a reaped
child.
"""

import json
import os
import subprocess
import sys

import pytest

from archiver.cli.commands import clear_job, job_status, kill_job, list_jobs
from archiver.cli.errors import ValidationError
from archiver.cli.main import EXIT_OK, EXIT_SYSTEM, EXIT_VALIDATION, main
from archiver.config import get_settings
from archiver.jobs.errors import ProbeTimeout
from archiver.jobs.models import JobDescriptor
from archiver.jobs.store import JobStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("ARCHIVER_"):
            monkeypatch.delenv(key)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _dead_pid() -> int:
    child = subprocess.Popen([sys.executable, "-c", "pass"])
    child.wait()
    return child.pid


def _run_json(capsys, *args):
    code = main(["--json", *args])
    out = capsys.readouterr().out
    return code, (json.loads(out)["data"] if out.strip() else None)


# ===== Command functions =====

class TestCommands:

    def test_list_jobs_includes_broken_rows(self, registry, store, launcher):
        store.write(JobDescriptor(name="good_job", pid=4242))
        broken = store.path_for("broken_job")
        broken.parent.mkdir(parents=True)
        broken.write_text("")
        launcher.output = "4242"

        rows = {row["name"]: row for row in list_jobs(registry)}

        assert rows["good_job"]["status"] == "running"
        assert rows["good_job"]["error"] is None
        assert rows["broken_job"]["error"] == "data_corrupt"

    def test_list_jobs_reports_out_of_range_pid_as_error_row(self, registry, store):
        store.write(JobDescriptor(name="good_job", pid=4242))
        path = store.path_for("huge_pid")
        path.parent.mkdir(parents=True)
        path.write_text('{"name": "huge_pid", "pid": 3000000000, "metadata": {}}')

        rows = {row["name"]: row for row in list_jobs(registry)}

        assert rows["huge_pid"]["error"] == "data_corrupt"
        assert rows["good_job"]["error"] is None

    def test_list_jobs_without_probe(self, registry, store, launcher):
        store.write(JobDescriptor(name="good_job", pid=4242))

        rows = list_jobs(registry, probe=False)

        assert rows[0]["status"] == "unknown"
        assert launcher.calls == []

    def test_list_jobs_records_probe_failure(self, registry, store, launcher):
        store.write(JobDescriptor(name="good_job", pid=4242))
        launcher.error = ProbeTimeout(["ps", "-p", "4242"], 2.0)

        row = list_jobs(registry)[0]

        assert row["status"] == "unknown"
        assert "timed out" in row["reason"]

    def test_job_status_without_pid(self, registry, store):
        store.write(JobDescriptor(name="no_pid"))
        with pytest.raises(ValidationError):
            job_status("no_pid", registry)

    def test_kill_missing_job(self, registry):
        with pytest.raises(ValidationError, match="Failed loading job"):
            kill_job("never_saved", registry)

    def test_kill_job_clean(self, registry, store):
        store.write(JobDescriptor(name="capture", pid=4242))

        result = kill_job("capture", registry)

        assert result["data"] is True
        assert result["cleared"] is True
        assert not store.exists("capture")

    def test_kill_job_returns_command_output(self, registry, store, launcher):
        store.write(JobDescriptor(name="capture", pid=4242))
        launcher.output = "kill: (4242) - No such process\n"
        launcher.exit_code = 1

        result = kill_job("capture", registry)

        assert result["data"] == "kill: (4242) - No such process"
        assert result["cleared"] is True

    def test_clear_corrupt_descriptor(self, registry, store):
        path = store.path_for("broken_job")
        path.parent.mkdir(parents=True)
        path.write_text("{truncated")

        assert clear_job("broken_job", registry) == {"name": "broken_job", "cleared": True}
        assert not store.exists("broken_job")

    def test_clear_missing_descriptor(self, registry):
        with pytest.raises(ValidationError):
            clear_job("never_saved", registry)


# ===== Entrypoint =====

@pytest.mark.posix
class TestMain:

    def test_list_empty(self, pids_dir, capsys):
        code = main(["--pids-dir", str(pids_dir), "list"])
        assert code == EXIT_OK
        assert "No jobs." in capsys.readouterr().out

    def test_list_json(self, pids_dir, capsys):
        JobStore(pids_dir).write(JobDescriptor(name="capture", pid=os.getpid()))

        code, data = _run_json(capsys, "--pids-dir", str(pids_dir), "list")

        assert code == EXIT_OK
        assert data[0]["name"] == "capture"
        assert data[0]["status"] == "running"

    def test_status_of_dead_pid(self, pids_dir, capsys):
        JobStore(pids_dir).write(JobDescriptor(name="capture", pid=_dead_pid()))

        code, data = _run_json(capsys, "--pids-dir", str(pids_dir), "status", "capture")

        assert code == EXIT_OK
        assert data["status"] == "stopped"

    def test_kill_missing_job_exits_validation(self, pids_dir, capsys):
        code = main(["--pids-dir", str(pids_dir), "kill", "never_saved"])

        assert code == EXIT_VALIDATION
        assert "Failed loading job" in capsys.readouterr().err

    def test_kill_dead_pid_clears_descriptor(self, pids_dir, capsys):
        store = JobStore(pids_dir)
        store.write(JobDescriptor(name="capture", pid=_dead_pid()))

        code, data = _run_json(capsys, "--pids-dir", str(pids_dir), "kill", "capture")

        assert code == EXIT_OK
        assert data["signalled"] is True
        assert data["cleared"] is True
        assert not store.exists("capture")

    def test_invalid_settings_exit_system(self, pids_dir, monkeypatch, capsys):
        monkeypatch.setenv("ARCHIVER_PROBE_TIMEOUT", "-1")

        code = main(["--pids-dir", str(pids_dir), "list"])

        assert code == EXIT_SYSTEM
        assert "Invalid settings" in capsys.readouterr().err
