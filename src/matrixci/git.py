# git.py
# Small wrapper around the Git CLI, used to fill in the trigger event
# when the user does not name a branch.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises CalledProcessError on a non-zero exit and FileNotFoundError
    when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Optional[Path]:
    """Absolute path to the root of the current Git repository, or None outside one."""
    try:
        return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def current_branch(cwd: Optional[str] = None) -> Optional[str]:
    """
    Name of the checked-out branch, or None when HEAD is detached or
    this is not a git checkout.
    """
    try:
        name = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    return None if name in ("", "HEAD") else name
