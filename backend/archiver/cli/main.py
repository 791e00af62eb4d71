"""
archiver-jobs - operator commands for the process job registry.

Exit Codes:
===========
- 0: Success
- 1: Validation error (unknown job, broken descriptor, no pid)
- 2: Execution error (probe or kill command could not answer)
- 4: System error (descriptor directory unwritable, bad settings)
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SettingsValidationError

from ..config import ArchiverSettings, get_settings
from ..jobs.errors import PersistFailure, ProbeError
from ..jobs.registry import JobRegistry
from ..observability import configure_logging
from .commands import clear_job, job_status, kill_job, list_jobs
from .errors import CLIError

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_EXECUTION = 2
EXIT_SYSTEM = 4


def _print_rows(rows: List[Dict[str, Any]]) -> None:
    if not rows:
        print("No jobs.")
        return
    for row in rows:
        if row.get("error"):
            print(f"✗ {row['name']:<40} ERROR {row['error']}: {row.get('reason') or ''}")
        else:
            pid = row["pid"] if row["pid"] is not None else "-"
            print(f"  {row['name']:<40} pid={pid:<8} {row['status']:<8} since {row['started_at']}")


def _emit(args: argparse.Namespace, payload: Any) -> None:
    if args.json:
        print(json.dumps({"data": payload, "status": "OK"}, indent=2, default=str))
    elif isinstance(payload, list):
        _print_rows(payload)
    else:
        for key, value in payload.items():
            print(f"{key}: {value}")


def cmd_list(args: argparse.Namespace, registry: JobRegistry) -> int:
    _emit(args, list_jobs(registry, probe=not args.no_probe))
    return EXIT_OK


def cmd_status(args: argparse.Namespace, registry: JobRegistry) -> int:
    _emit(args, job_status(args.name, registry))
    return EXIT_OK


def cmd_kill(args: argparse.Namespace, registry: JobRegistry) -> int:
    result = kill_job(args.name, registry)
    _emit(args, result)
    return EXIT_EXECUTION if result["error"] and not result["signalled"] else EXIT_OK


def cmd_clear(args: argparse.Namespace, registry: JobRegistry) -> int:
    _emit(args, clear_job(args.name, registry))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archiver-jobs",
        description="Inspect and control archiver capture/encode jobs",
    )
    parser.add_argument(
        "--pids-dir",
        default=None,
        help="Base pid directory (default: $ARCHIVER_PIDS_DIR or ~/.vod-archiver/pids)",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    parser_list = subparsers.add_parser("list", help="List persisted jobs")
    parser_list.add_argument(
        "--no-probe", action="store_true", help="Do not check whether processes are alive"
    )
    parser_list.set_defaults(func=cmd_list)

    for name, func, help_text in (
        ("status", cmd_status, "Check whether a job's process is running"),
        ("kill", cmd_kill, "Terminate a job's process and remove its descriptor"),
        ("clear", cmd_clear, "Remove a job's descriptor without signalling"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("name", help="Job name")
        sub.set_defaults(func=func)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entrypoint.

    Parses arguments, builds a registry from settings and dispatches.
    """
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
        overrides = {}
        if args.pids_dir:
            overrides["pids_dir"] = args.pids_dir
        if args.log_level:
            overrides["log_level"] = args.log_level
        if overrides:
            settings = ArchiverSettings(**{**settings.model_dump(), **overrides})
    except SettingsValidationError as e:
        print(f"ERROR: Invalid settings: {e}", file=sys.stderr)
        return EXIT_SYSTEM

    configure_logging(settings.log_level)
    registry = JobRegistry.from_settings(settings)

    try:
        return args.func(args, registry)
    except CLIError as e:
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_VALIDATION
    except ProbeError as e:
        print(f"✗ Could not determine process state: {e}", file=sys.stderr)
        return EXIT_EXECUTION
    except PersistFailure as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return EXIT_SYSTEM
    finally:
        registry.close()


if __name__ == "__main__":
    sys.exit(main())
