"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from matrixci.model import InstanceResult, JobInstance, RunReport


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # instances print from worker threads
        self._lock = threading.Lock()

    def _print(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._print(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        pipeline: str,
        event: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._print(
            "\nRUN STARTED",
            f"Pipeline: {pipeline}",
            f"Event: {event}",
            f"Jobs: {job_count}",
            "",
        )

    def print_job_start(self, name: str, instance_count: int) -> None:
        """Print job start message."""
        self._print(f"\nJOB STARTED: {name} ({instance_count} instance(s))")

    def print_step(self, prefix: str, name: str) -> None:
        """Print step start message."""
        self._print(f"[{prefix}] STEP: {name}")

    def print_step_skipped(self, prefix: str, name: str, condition: str) -> None:
        self._print(f"[{prefix}] SKIPPED: {name} (if: {condition})")

    def print_instance_result(self, job: str, result: InstanceResult) -> None:
        label = result.instance.label
        status = "cancelled" if result.cancelled else result.outcome.value
        self._print(f"[{job} ({label})] STATUS: {status}")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Step or action name
            reason: Failure reason/error message (or captured output)
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        lines = [f"STEP FAILED: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            # Show last line of output for non-debug mode
            tail = reason.strip().splitlines()[-1] if reason and reason.strip() else "Unknown error"
            lines.append(f"Error: {tail}")
        self._print(*lines)

    def print_plan_job(self, name: str, instances: Iterable[JobInstance]) -> None:
        """Print a selected job and its expanded instances."""
        instances = list(instances)
        lines = [f"  {name} ({len(instances)} instance(s))"]
        lines.extend(f"    - {inst.label}" for inst in instances)
        self._print(*lines)

    def print_plan_job_skipped(self, name: str, reason: str) -> None:
        """Print job excluded from the run."""
        self._print(f"  {name} (excluded: {reason})")

    def print_results(self, report: RunReport) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for name, job in report.jobs.items():
            note = ""
            if job.outcome.value == "failure" and not job.blocking:
                note = " (continue-on-error)"
            lines.append(f"  {name}: {job.outcome.value.upper()}{note}")
            for r in job.instances:
                status = "CANCELLED" if r.cancelled else r.outcome.value.upper()
                lines.append(f"    {r.instance.label}: {status}")
        if report.error:
            lines.append(f"  configuration error: {report.error.splitlines()[0]}")
        lines.append("-" * 40)
        lines.append(f"  RUN: {report.status.value.upper()}")
        self._print(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._print(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._print(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug and message:
            self._print(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
