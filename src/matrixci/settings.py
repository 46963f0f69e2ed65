from __future__ import annotations
import os

from .errors import ConfigurationError


def _int_env(name: str) -> int | None:
    value = os.environ.get(name, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", variable=name) from None


PIPELINE_FILE = os.environ.get("MATRIXCI_PIPELINE") or None
DEFAULT_BRANCH = os.environ.get("MATRIXCI_DEFAULT_BRANCH", "master")


# read when a command runs, so a bad value is reported like any other config error
def workers() -> int | None:
    return _int_env("MATRIXCI_WORKERS")


def job_workers() -> int | None:
    return _int_env("MATRIXCI_JOB_WORKERS")
