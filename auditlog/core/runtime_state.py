"""Process-wide runtime state shared between the scheduler jobs and /health."""
from __future__ import annotations

from typing import Any

_scheduler_active = False
_last_runs: dict[str, dict[str, Any]] = {}


def set_scheduler_active(active: bool) -> None:
    global _scheduler_active
    _scheduler_active = active


def is_scheduler_active() -> bool:
    return _scheduler_active


def record_job_run(job: str, **details: Any) -> None:
    """Remember the outcome of the last run of a maintenance job."""

    _last_runs[job] = dict(details)


def last_job_runs() -> dict[str, dict[str, Any]]:
    return {job: dict(details) for job, details in _last_runs.items()}


def reset_runtime_state() -> None:
    global _scheduler_active
    _scheduler_active = False
    _last_runs.clear()
