"""
CLI command implementations for operator job control.

Commands:
- list_jobs: Every persisted job, broken descriptors included as error rows
- job_status: Load one job and probe its pid
- kill_job: Load one job, signal its process and clear the descriptor
- clear_job: Remove a descriptor without signalling

Commands return plain dicts so the entrypoint can print them as text or
JSON. Load failures raise ValidationError; probe failures propagate as
ProbeError.
"""

from typing import Any, Dict, List, Optional

from ..jobs.errors import JobFault, ProbeError
from ..jobs.models import JobDescriptor
from ..jobs.registry import JobLoadResult, JobRegistry
from ..jobs.store import STARTED_AT_FORMAT
from .errors import ValidationError


def _describe(job: JobDescriptor) -> Dict[str, Any]:
    return {
        "name": job.name,
        "pid": job.pid,
        "status": job.status.value,
        "started_at": (
            job.started_at.strftime(STARTED_AT_FORMAT) if job.started_at else None
        ),
        "metadata": job.metadata,
        "error": job.error.value if job.error else None,
    }


def _describe_failure(result: JobLoadResult) -> Dict[str, Any]:
    return {
        "name": result.name,
        "pid": None,
        "status": None,
        "started_at": None,
        "metadata": {},
        "error": result.error.value if result.error else None,
        "reason": result.reason,
    }


def _load_or_raise(name: str, registry: JobRegistry) -> JobDescriptor:
    result = registry.load(name)
    if not result:
        raise ValidationError(f"Failed loading job {name}: {result.reason}")
    return result.job


def list_jobs(registry: JobRegistry, probe: bool = True) -> List[Dict[str, Any]]:
    """
    List every persisted job.

    A broken descriptor shows up as a row with ``error`` set instead of
    aborting the listing. With ``probe``, each loaded job is also checked
    for liveness; a probe failure leaves its status "unknown".
    """
    rows = []
    for result in registry.load_all():
        if not result:
            rows.append(_describe_failure(result))
            continue

        job = result.job
        row_error: Optional[str] = None
        if probe and job.pid:
            try:
                registry.get_status(job)
            except ProbeError as e:
                row_error = str(e)

        row = _describe(job)
        if row_error:
            row["reason"] = row_error
        rows.append(row)
    return rows


def job_status(name: str, registry: JobRegistry) -> Dict[str, Any]:
    """
    Raises:
        ValidationError: If the job cannot be loaded or has no pid
        ProbeError: If liveness could not be determined
    """
    job = _load_or_raise(name, registry)
    if not job.pid:
        raise ValidationError(f"Job {name} has no pid recorded")
    registry.get_status(job)
    return _describe(job)


def kill_job(name: str, registry: JobRegistry) -> Dict[str, Any]:
    """
    Kill a job by name.

    Returns:
        Dict with ``data`` True for a clean kill, or the kill command's
        output when it printed something, plus ``cleared`` and ``error``

    Raises:
        ValidationError: If the job cannot be loaded
    """
    job = _load_or_raise(name, registry)
    result = registry.kill(job)
    output = result.output.strip()
    return {
        "name": name,
        "data": True if result.signalled and not output else (output or False),
        "signalled": result.signalled,
        "cleared": result.cleared,
        "error": result.error,
    }


def clear_job(name: str, registry: JobRegistry) -> Dict[str, Any]:
    """
    Remove a job's descriptor without touching its process.

    A corrupt descriptor can still be cleared; a missing one cannot.
    """
    result = registry.load(name)
    if result:
        job = result.job
    elif result.error == JobFault.DATA_CORRUPT:
        job = JobDescriptor(name=name)
    else:
        raise ValidationError(f"Failed loading job {name}: {result.reason}")
    return {"name": name, "cleared": registry.clear(job)}
