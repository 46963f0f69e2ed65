# executor.py
from __future__ import annotations

import inspect
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .actions import ActionInvoker
from .cancel import CancelToken
from .errors import ConfigurationError
from .expressions import check_template, context_for, parse_condition, render
from .model import Event, InstanceResult, JobInstance, Outcome, StepResult, StepSpec
from .ui.console import get_console

# placeholder outcome used when checking references before anything runs
_ANY_OUTCOME = {"outcome": "success", "conclusion": "success"}


def _accepts_env(invoker: ActionInvoker) -> bool:
    try:
        params = inspect.signature(invoker.invoke).parameters
    except (TypeError, ValueError):
        return True
    return "env" in params or any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values())


def _event_context(event: Optional[Event]) -> Dict[str, str]:
    if event is None:
        return {"type": "", "branch": ""}
    return {"type": event.event_type.value, "branch": event.branch}


class StepExecutor:
    """
    Runs the ordered steps of one job instance.

    `declared_axes` are all axes the job's matrix can set; those missing on
    this instance resolve to empty. `env` is the job environment (pipeline
    env already merged in), rendered per instance.
    """

    def __init__(
        self,
        invoker: ActionInvoker,
        *,
        job: str = "",
        declared_axes: Sequence[str] = (),
        event: Optional[Event] = None,
        token: Optional[CancelToken] = None,
    ):
        self.invoker = invoker
        self._pass_env = _accepts_env(invoker)
        self.job = job
        self.declared_axes = list(declared_axes)
        self.event = event
        self.token = token or CancelToken()

    def _matrix_context(self, instance: JobInstance) -> Dict[str, Any]:
        values: Dict[str, Any] = {axis: None for axis in self.declared_axes}
        values.update(instance.as_dict())
        return values

    def _render_env(self, env: Mapping[str, Any], matrix: Mapping[str, Any], base: Mapping[str, str]) -> Dict[str, str]:
        ctx = context_for(matrix=matrix, env=base, event=_event_context(self.event))
        out = dict(base)
        for k, v in env.items():
            out[k] = render(v, ctx)
        return out

    # ------------------------------------------------------------------
    # Plan-time checks
    # ------------------------------------------------------------------

    def validate(self, instance: JobInstance, steps: Sequence[StepSpec], env: Mapping[str, Any]) -> None:
        """Raise ConfigurationError for anything that would fail to resolve at run time."""
        matrix = self._matrix_context(instance)
        event = _event_context(self.event)
        env_scope = {k: "" for k in env}
        base_ctx = context_for(matrix=matrix, event=event)
        for k, v in env.items():
            try:
                check_template(v, base_ctx)
            except ConfigurationError as e:
                raise ConfigurationError(f"env {k}: {e.message}", job=self.job, **e.details) from e

        seen_ids: Dict[str, Any] = {}
        for step in steps:
            step_env = dict(env_scope)
            step_env.update({k: "" for k in step.env})
            scope = context_for(matrix=matrix, env=step_env, steps=seen_ids, event=event)
            try:
                if step.condition is not None:
                    parse_condition(step.condition).check(scope)
                for value in step.params.values():
                    check_template(value, scope)
                for value in step.env.values():
                    check_template(value, context_for(matrix=matrix, env=env_scope, event=event))
            except ConfigurationError as e:
                raise ConfigurationError(
                    e.message,
                    job=self.job,
                    step=step.display_name,
                    instance=instance.label,
                    **e.details,
                ) from e

            if step.id:
                if step.id in seen_ids:
                    raise ConfigurationError(f"duplicate step id '{step.id}'", job=self.job)
                seen_ids[step.id] = dict(_ANY_OUTCOME)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self, instance: JobInstance, steps: Sequence[StepSpec], env: Mapping[str, Any]) -> InstanceResult:
        console = get_console()
        prefix = f"{self.job} ({instance.label})" if instance.axes else self.job
        matrix = self._matrix_context(instance)
        job_env = self._render_env(env, matrix, {})

        results: List[StepResult] = []
        step_ctx: Dict[str, Dict[str, str]] = {}
        failed = False
        cancelled = False

        for step in steps:
            name = step.display_name

            if cancelled or self.token.cancelled:
                cancelled = True
                results.append(StepResult(name, Outcome.SKIPPED, error="cancelled"))
                self._record(step, step_ctx, Outcome.SKIPPED, Outcome.SKIPPED)
                continue

            if failed and not step.always:
                results.append(StepResult(name, Outcome.SKIPPED))
                self._record(step, step_ctx, Outcome.SKIPPED, Outcome.SKIPPED)
                continue

            step_env = self._render_env(step.env, matrix, job_env)
            ctx = context_for(
                matrix=matrix,
                env=step_env,
                steps=step_ctx,
                event=_event_context(self.event),
            )

            if step.condition is not None:
                functions = {"success": lambda: not failed, "failure": lambda: failed}
                if not parse_condition(step.condition).is_true(ctx, functions):
                    console.print_step_skipped(prefix, name, step.condition)
                    results.append(StepResult(name, Outcome.SKIPPED))
                    self._record(step, step_ctx, Outcome.SKIPPED, Outcome.SKIPPED)
                    continue

            params = {k: render(v, ctx) for k, v in step.params.items()}
            if step.timeout_minutes is not None:
                params.setdefault("timeout-minutes", str(step.timeout_minutes))

            console.print_step(prefix, name)
            started = time.monotonic()
            error: Optional[str] = None
            try:
                if self._pass_env:
                    outcome = self.invoker.invoke(step.action, params, env=step_env)
                else:
                    outcome = self.invoker.invoke(step.action, params)
            except Exception as e:
                outcome = Outcome.FAILURE
                error = f"{type(e).__name__}: {e}"
                console.print_failure(name, error)
            duration = time.monotonic() - started

            results.append(StepResult(name, outcome, error=error, duration_s=duration))
            conclusion = outcome
            if outcome == Outcome.FAILURE:
                if step.continue_on_error:
                    conclusion = Outcome.SUCCESS
                else:
                    failed = True
            self._record(step, step_ctx, outcome, conclusion)

        if cancelled:
            return InstanceResult(instance, Outcome.SKIPPED, results, cancelled=True)
        return InstanceResult(instance, Outcome.FAILURE if failed else Outcome.SUCCESS, results)

    @staticmethod
    def _record(step: StepSpec, step_ctx: Dict[str, Dict[str, str]], outcome: Outcome, conclusion: Outcome) -> None:
        if step.id:
            step_ctx[step.id] = {"outcome": outcome.value, "conclusion": conclusion.value}
