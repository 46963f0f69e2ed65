# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the run report
      - debugging without full tracebacks
    """
    kind: str
    message: str
    job: str | None = None
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class ConfigurationError(CIError):
    """The pipeline definition is invalid; nothing may run."""

    def __init__(self, message: str, *, job: str | None = None, step: str | None = None, **details):
        super().__init__(
            kind="configuration_error",
            message=message,
            job=job,
            step=step,
            details=details,
        )


class ActionFailure(CIError):
    """An action ran and failed (non-zero exit, timeout, bad cwd...)."""

    def __init__(
        self,
        action: str,
        message: str,
        *,
        exit_code: int | None = None,
        output: str | None = None,
    ):
        details: dict = {"action": action}
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(kind="action_failure", message=message, details=details)
        self.action = action
        self.exit_code = exit_code
        self.output = output
