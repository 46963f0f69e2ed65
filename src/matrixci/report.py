# report.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .model import InstanceResult, JobResult, RunReport


def _instance_to_dict(result: InstanceResult) -> Dict[str, Any]:
    return {
        "matrix": result.instance.as_dict(),
        "label": result.instance.label,
        "outcome": result.outcome.value,
        "cancelled": result.cancelled,
        "error": result.error,
        "steps": [
            {
                "name": s.name,
                "outcome": s.outcome.value,
                "error": s.error,
                "duration_s": round(s.duration_s, 3),
            }
            for s in result.steps
        ],
    }


def _job_to_dict(job: JobResult) -> Dict[str, Any]:
    return {
        "outcome": job.outcome.value,
        "blocking": job.blocking,
        "continue_on_error": job.continue_on_error,
        "instances": [_instance_to_dict(r) for r in job.instances],
    }


def report_to_dict(report: RunReport) -> Dict[str, Any]:
    """Convert a RunReport to plain data (JSON-safe)."""
    return {
        "status": report.status.value,
        "cancelled": report.cancelled,
        "error": report.error,
        "event": {
            "type": report.event.event_type.value,
            "branch": report.event.branch,
        },
        "jobs": {name: _job_to_dict(job) for name, job in report.jobs.items()},
    }


def write_report(report: RunReport, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(
        json.dumps(report_to_dict(report), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return out
