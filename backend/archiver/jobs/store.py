"""
Filesystem store for job descriptors.

Layout, one subtree per job:

    <base_dir>/<name>/<name>.json   authoritative descriptor
    <base_dir>/<name>/<name>.pid    legacy companion, discovery only

Writes go to a temp file in the job directory followed by os.replace(),
so a concurrent reader sees either the old or the new descriptor and
never a partial one. On POSIX, replace() is atomic within a filesystem.
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from .errors import JobDataCorrupt, JobFileMissing, PersistFailure
from .models import JobDescriptor, JobLifecycle, validate_job_name
from ..observability import log_advanced

# Text format of dt_started_at.date (PHP "Y-m-d H:i:s.u")
STARTED_AT_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

DESCRIPTOR_SUFFIX = ".json"
LEGACY_PID_SUFFIX = ".pid"


def to_document(job: JobDescriptor) -> Dict[str, Any]:
    """Serialize a descriptor to its canonical on-disk document."""
    return {
        "name": job.name,
        "pid": job.pid,
        "metadata": job.metadata,
        "dt_started_at": (
            {"date": job.started_at.strftime(STARTED_AT_FORMAT)}
            if job.started_at is not None
            else None
        ),
    }


def from_document(name: str, data: Any) -> JobDescriptor:
    """
    Rebuild a descriptor from a parsed document.

    The requested name is authoritative; the document's own "name" is
    only compared against it.

    Raises:
        JobDataCorrupt: If the document shape or any field is invalid
    """
    if not isinstance(data, dict):
        raise JobDataCorrupt(name, "descriptor is not a JSON object")

    stored_name = data.get("name")
    if stored_name is not None and stored_name != name:
        log_advanced(
            "WARNING", "job",
            f"Descriptor for {name} carries name {stored_name!r}, using {name}",
        )

    started_at = None
    dt_started_at = data.get("dt_started_at")
    if dt_started_at is not None:
        date_text = dt_started_at.get("date") if isinstance(dt_started_at, dict) else None
        if not isinstance(date_text, str):
            raise JobDataCorrupt(name, "dt_started_at has no date text")
        try:
            started_at = datetime.strptime(date_text, STARTED_AT_FORMAT)
        except ValueError as e:
            raise JobDataCorrupt(name, f"unparseable start date {date_text!r}") from e

    metadata = data.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise JobDataCorrupt(name, "metadata is not a JSON object")

    try:
        return JobDescriptor(
            name=name,
            pid=data.get("pid"),
            metadata=metadata or {},
            started_at=started_at,
            lifecycle=JobLifecycle.PERSISTED,
        )
    except ValidationError as e:
        raise JobDataCorrupt(name, f"invalid field: {e.errors()[0]['msg']}") from e


class JobStore:
    """
    Deterministic mapping between job names and descriptor files.

    The store holds no state besides its base directory, so any number of
    instances (in this or other processes) may share one directory.
    """

    def __init__(self, base_dir: Union[str, Path]):
        """
        Initialize store.

        Args:
            base_dir: Base pid directory; created on first write
        """
        self.base_dir = Path(base_dir)

    def job_dir(self, name: str) -> Path:
        validate_job_name(name)
        return self.base_dir / name

    def path_for(self, name: str) -> Path:
        return self.job_dir(name) / f"{name}{DESCRIPTOR_SUFFIX}"

    def legacy_pid_path(self, name: str) -> Path:
        return self.job_dir(name) / f"{name}{LEGACY_PID_SUFFIX}"

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def write(self, job: JobDescriptor) -> Path:
        """
        Atomically write a descriptor.

        Returns:
            Path of the written descriptor file

        Raises:
            PersistFailure: If the document cannot be encoded, or the
                directory, temp file or rename fails
        """
        target = self.path_for(job.name)
        try:
            payload = json.dumps(to_document(job), indent=4, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            # Metadata mutated in place after validation
            raise PersistFailure(job.name, f"descriptor is not JSON-serialisable: {e}") from e

        tmp_path = None
        try:
            fd, tmp_path = self._open_temp(job.name, target.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as e:
            raise PersistFailure(job.name, f"write failed: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        return target

    def _open_temp(self, name: str, job_dir: Path):
        """
        Create the job directory and a temp file inside it.

        A concurrent delete() may remove the directory between mkdir and
        mkstemp; that race is retried once.
        """
        for attempt in range(2):
            job_dir.mkdir(parents=True, exist_ok=True)
            try:
                return tempfile.mkstemp(dir=str(job_dir), prefix=f".{name}.", suffix=".tmp")
            except FileNotFoundError:
                if attempt:
                    raise
                log_advanced("DEBUG", "job", f"Job directory for {name} vanished, retrying write")

    def read(self, name: str) -> JobDescriptor:
        """
        Read a descriptor from disk.

        Raises:
            JobFileMissing: No descriptor file for this name
            JobDataCorrupt: File is empty, unreadable or not a valid descriptor
        """
        path = self.path_for(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise JobFileMissing(name) from None
        except (OSError, UnicodeDecodeError) as e:
            raise JobDataCorrupt(name, f"unreadable descriptor: {e}") from e

        if not raw.strip():
            raise JobDataCorrupt(name, "descriptor file is empty")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise JobDataCorrupt(name, f"invalid JSON: {e}") from e

        return from_document(name, data)

    def delete(self, name: str) -> bool:
        """
        Remove a descriptor file.

        The legacy .pid companion goes with it, and the job directory is
        removed once empty.

        Returns:
            True if a descriptor file was removed, False if there was none

        Raises:
            PersistFailure: If the file exists but cannot be removed
        """
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistFailure(name, f"delete failed: {e}") from e

        try:
            self.legacy_pid_path(name).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log_advanced("WARNING", "job", f"Could not remove legacy pid file for {name}: {e}")

        try:
            path.parent.rmdir()
        except OSError:
            # Not empty (temp file of a concurrent writer, logs) or already gone
            pass

        return True

    def list_names(self) -> List[str]:
        """
        List every job name that currently has a descriptor file.

        Returns:
            Sorted job names
        """
        if not self.base_dir.is_dir():
            return []

        names = []
        for entry in self.base_dir.iterdir():
            if not entry.is_dir():
                continue
            try:
                descriptor = self.path_for(entry.name)
            except ValueError:
                continue
            if descriptor.is_file():
                names.append(entry.name)
        return sorted(names)
