# actions.py
from __future__ import annotations

import os
import subprocess
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from .errors import ActionFailure
from .model import Outcome
from .ui.console import get_console

TOOL_HINTS = {
    "cargo": "Install the Rust toolchain (rustup) or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "python3": "Install Python 3 or fix PATH (python3).",
}

# Handler signature: (action name, params, env, repo_root) -> None, raise ActionFailure on failure
Handler = Callable[[str, Mapping[str, str], Mapping[str, str], Path], None]


class ActionInvoker(Protocol):
    """
    The only thing the scheduler knows about actions.

    `env` is the merged step environment. Invokers written as
    invoke(name, params) are supported too; they just never see it.
    """

    def invoke(self, name: str, params: Mapping[str, str], env: Optional[Mapping[str, str]] = None) -> Outcome:
        ...


def _hint_for(cmd: str) -> Optional[str]:
    words = cmd.strip().split()
    return TOOL_HINTS.get(words[0]) if words else None


def run_shell(name: str, params: Mapping[str, str], env: Mapping[str, str], repo_root: Path) -> None:
    """Built-in `run` action: one shell command (or script) per step."""
    cmd = params.get("run", "")
    if not cmd.strip():
        raise ActionFailure(name, "run step has an empty command")

    cwd = (repo_root / (params.get("working-directory") or ".")).resolve()
    if not cwd.exists():
        raise ActionFailure(name, f"working directory not found: {cwd}")

    full_env = os.environ.copy()
    full_env.update(env)

    timeout = params.get("timeout-minutes")
    try:
        proc = subprocess.run(
            cmd,
            shell=True,
            executable=params.get("shell") or None,
            cwd=str(cwd),
            env=full_env,
            text=True,
            capture_output=True,   # so we can show output on failure
            timeout=float(timeout) * 60 if timeout else None,
        )
    except subprocess.TimeoutExpired:
        raise ActionFailure(name, f"timed out after {timeout} minute(s): {cmd}")

    output = (proc.stdout or "") + (proc.stderr or "")
    get_console().print_debug(output.rstrip())

    if proc.returncode != 0:
        raise ActionFailure(
            name,
            f"command exited with {proc.returncode}: {cmd}",
            exit_code=proc.returncode,
            output=output[-4000:],
        )


class LocalActionInvoker:
    """
    Runs actions on this machine.

    Handlers are looked up by fnmatch pattern, first match wins. Action names
    matching an `assume_ok` pattern succeed without doing anything, which lets
    a local run stand in for hosted actions such as actions/checkout.
    """

    def __init__(
        self,
        repo_root: str | Path = ".",
        *,
        handlers: Optional[Dict[str, Handler]] = None,
        assume_ok: Iterable[str] = (),
    ):
        self.repo_root = Path(repo_root).resolve()
        self.handlers: Dict[str, Handler] = {"run": run_shell}
        self.handlers.update(handlers or {})
        self.assume_ok: List[str] = list(assume_ok)

    def register(self, pattern: str, handler: Handler) -> None:
        self.handlers[pattern] = handler

    def _handler_for(self, name: str) -> Optional[Handler]:
        for pattern, handler in self.handlers.items():
            if fnmatch(name, pattern):
                return handler
        return None

    def invoke(self, name: str, params: Mapping[str, str], env: Optional[Mapping[str, str]] = None) -> Outcome:
        console = get_console()

        if any(fnmatch(name, p) for p in self.assume_ok):
            console.print_debug(f"{name}: assumed ok")
            return Outcome.SUCCESS

        handler = self._handler_for(name)
        if handler is None:
            console.print_failure(
                name,
                f"no handler for action '{name}'",
                hint="Pass --assume-ok to treat hosted actions as succeeded.",
            )
            return Outcome.FAILURE

        try:
            handler(name, params, env or {}, self.repo_root)
        except ActionFailure as e:
            console.print_failure(
                name,
                e.output or e.message,
                exit_code=e.exit_code,
                hint=_hint_for(params.get("run", "")) if e.exit_code == 127 else None,
            )
            return Outcome.FAILURE
        return Outcome.SUCCESS
