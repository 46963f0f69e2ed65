# src/matrixci/dsl.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import ConfigurationError
from .model import (
    EventType,
    Job,
    MatrixSpec,
    PipelineDefinition,
    StepSpec,
    TriggerFilter,
    frozen_mapping,
)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    id: str | None = None,
    cwd: str | None = None,
    shell: str | None = None,
    when: str | None = None,
    always: bool = False,
    continue_on_error: bool = False,
    env: Optional[Dict[str, Any]] = None,
    timeout_minutes: float | None = None,
) -> StepSpec:
    """Create a shell step. `when` is the step condition (the YAML `if:`)."""
    params: Dict[str, Any] = {"run": cmd}
    if cwd is not None:
        params["working-directory"] = cwd
    if shell is not None:
        params["shell"] = shell
    return StepSpec(
        action="run",
        params=frozen_mapping(params),
        name=name,
        id=id,
        condition=when,
        always=always,
        continue_on_error=continue_on_error,
        env=frozen_mapping(env),
        timeout_minutes=timeout_minutes,
    )


def uses(
    action: str,
    *,
    name: str | None = None,
    id: str | None = None,
    params: Optional[Dict[str, Any]] = None,
    when: str | None = None,
    always: bool = False,
    continue_on_error: bool = False,
    env: Optional[Dict[str, Any]] = None,
) -> StepSpec:
    """Create a step invoking an external action, e.g. uses("actions/checkout@v2")."""
    return StepSpec(
        action=action,
        params=frozen_mapping(params),
        name=name,
        id=id,
        condition=when,
        always=always,
        continue_on_error=continue_on_error,
        env=frozen_mapping(env),
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

def matrix(
    *,
    include: Optional[Iterable[Mapping[str, Any]]] = None,
    exclude: Optional[Iterable[Mapping[str, Any]]] = None,
    **axes: Iterable[Any],
) -> MatrixSpec:
    """
    Example:
        matrix(rust=["stable", "beta"], include=[{"rust": "stable", "features": "x"}])
    """
    return MatrixSpec(
        axes=frozen_mapping({k: tuple(v) for k, v in axes.items()}),
        include=tuple(frozen_mapping(e) for e in include or ()),
        exclude=tuple(frozen_mapping(e) for e in exclude or ()),
    )


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on_push(*branches: str, ignore: Iterable[str] = ()) -> TriggerFilter:
    return TriggerFilter(EventType.PUSH, tuple(branches), tuple(ignore))


def on_pull_request(*branches: str, ignore: Iterable[str] = ()) -> TriggerFilter:
    return TriggerFilter(EventType.PULL_REQUEST, tuple(branches), tuple(ignore))


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: StepSpec,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[StepSpec]] = None,  # allow: job("x", steps_list=[...])
    matrix: Optional[MatrixSpec] = None,
    env: Optional[Dict[str, Any]] = None,
    continue_on_error: bool = False,
    on: Iterable[TriggerFilter] = (),
    max_parallel: int | None = None,
    fail_fast: bool = False,
    runs_on: str | None = None,
) -> Job:
    steps_final: List[StepSpec] = []
    if steps_list:
        steps_final.extend(steps_list)
    steps_final.extend(steps)

    if not steps_final:
        raise ConfigurationError(f"job({name!r}) must have at least one step", job=name)

    return Job(
        name=name,
        steps=tuple(steps_final),
        matrix=matrix or MatrixSpec(),
        env=frozen_mapping(env),
        continue_on_error=continue_on_error,
        triggers=tuple(on),
        max_parallel=max_parallel,
        fail_fast=fail_fast,
        runs_on=runs_on,
    )


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    *jobs: Job,
    name: str = "pipeline",
    env: Optional[Dict[str, Any]] = None,
    on: Iterable[TriggerFilter] = (),
) -> PipelineDefinition:
    """
    Pipeline definition helper. Use this name so you can define your own
    def workflow(): return wf(job(...), job(...)).

    Users can write:
        from matrixci import wf, job, sh, matrix, on_push

        def workflow():
            return wf(
                job("tests", sh("Tests", "cargo test"), matrix=matrix(rust=["stable", "beta"])),
                on=[on_push("master")],
            )

    Or define it directly:
        PIPELINE = wf(job(...), job(...))
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigurationError(f"Duplicate job names found: {dupes}")

    return PipelineDefinition(
        jobs=tuple(jobs),
        name=name,
        env=frozen_mapping(env),
        triggers=tuple(on),
    )
