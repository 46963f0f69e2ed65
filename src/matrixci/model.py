# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


def frozen_mapping(data: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    """Read-only copy of a mapping (definition objects never change after load)."""
    return MappingProxyType(dict(data or {}))


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class EventType(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


@dataclass(frozen=True)
class Event:
    """The trigger of a run: what happened, and on which branch."""
    event_type: EventType
    branch: str

    @property
    def key(self) -> Tuple[str, str]:
        # a newer event with the same key supersedes an in-flight run
        return (self.event_type.value, self.branch)

    def __str__(self) -> str:
        return f"{self.event_type.value} on {self.branch}"


@dataclass(frozen=True)
class TriggerFilter:
    """
    Matches events of one type whose branch matches a glob in `branches`
    (any branch when empty) and none in `branches_ignore`.
    """
    event_type: EventType
    branches: Tuple[str, ...] = ()
    branches_ignore: Tuple[str, ...] = ()

    def matches(self, event: Event) -> bool:
        if event.event_type != self.event_type:
            return False
        if any(fnmatch(event.branch, p) for p in self.branches_ignore):
            return False
        if not self.branches:
            return True
        return any(fnmatch(event.branch, p) for p in self.branches)


# ----------------------------------------------------------------------
# Definition (immutable for the duration of a run)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class StepSpec:
    """
    A single action invocation inside a job.

    `action` is "run" for shell steps, otherwise the referenced action
    (e.g. "actions/checkout@v2"). `params` values may hold ${{ }} templates.
    """
    action: str
    params: Mapping[str, Any] = field(default_factory=frozen_mapping)
    name: str | None = None
    id: str | None = None
    condition: str | None = None
    always: bool = False                # run even after an earlier failure
    continue_on_error: bool = False     # a failure here does not fail the instance
    env: Mapping[str, Any] = field(default_factory=frozen_mapping)
    timeout_minutes: float | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.action == "run":
            cmd = str(self.params.get("run", "")).strip().splitlines()
            return f"Run {cmd[0]}" if cmd else "Run"
        return self.action


@dataclass(frozen=True)
class MatrixSpec:
    """Base axes (declaration order kept) plus include / exclude entries."""
    axes: Mapping[str, Tuple[Any, ...]] = field(default_factory=frozen_mapping)
    include: Tuple[Mapping[str, Any], ...] = ()
    exclude: Tuple[Mapping[str, Any], ...] = ()

    def declared_axes(self) -> List[str]:
        """Every axis name that can appear on an instance, in first-seen order."""
        names: List[str] = [k for k, v in self.axes.items() if len(v) > 0]
        for entry in self.include:
            for k in entry:
                if k not in names:
                    names.append(k)
        return names


@dataclass(frozen=True)
class Job:
    """
    A CI job: a matrix of variants, each running the same ordered steps.

    Empty `triggers` means the pipeline-level triggers apply.
    """
    name: str
    steps: Tuple[StepSpec, ...]
    matrix: MatrixSpec = field(default_factory=MatrixSpec)
    env: Mapping[str, Any] = field(default_factory=frozen_mapping)
    continue_on_error: bool = False
    triggers: Tuple[TriggerFilter, ...] = ()
    max_parallel: int | None = None
    fail_fast: bool = False
    runs_on: str | None = None


@dataclass(frozen=True)
class PipelineDefinition:
    jobs: Tuple[Job, ...]
    name: str = "pipeline"
    env: Mapping[str, Any] = field(default_factory=frozen_mapping)
    triggers: Tuple[TriggerFilter, ...] = ()

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)

    def selects(self, job: Job, event: Event) -> bool:
        triggers = job.triggers or self.triggers
        if not triggers:
            return True
        return any(t.matches(event) for t in triggers)


# ----------------------------------------------------------------------
# Expansion + results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class JobInstance:
    """One concrete variant of a job: ordered (axis, value) pairs."""
    axes: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def of(cls, values: Mapping[str, Any]) -> JobInstance:
        return cls(tuple(values.items()))

    @property
    def key(self) -> Tuple[Tuple[str, Any], ...]:
        return self.axes

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.axes)

    def get(self, axis: str, default: Any = None) -> Any:
        for k, v in self.axes:
            if k == axis:
                return v
        return default

    @property
    def label(self) -> str:
        if not self.axes:
            return "default"
        return ", ".join(f"{k}={v}" for k, v in self.axes)


@dataclass
class StepResult:
    name: str
    outcome: Outcome
    error: Optional[str] = None
    duration_s: float = 0.0


@dataclass
class InstanceResult:
    instance: JobInstance
    outcome: Outcome
    steps: List[StepResult] = field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None


@dataclass
class JobResult:
    name: str
    outcome: Outcome
    continue_on_error: bool = False
    instances: List[InstanceResult] = field(default_factory=list)

    @property
    def blocking(self) -> bool:
        """A failure that fails the whole run."""
        return self.outcome == Outcome.FAILURE and not self.continue_on_error


@dataclass
class RunReport:
    event: Event
    status: Outcome
    jobs: Dict[str, JobResult] = field(default_factory=dict)
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.status != Outcome.FAILURE

    def outcomes(self) -> Dict[str, Dict[Tuple[Tuple[str, Any], ...], Outcome]]:
        return {
            name: {r.instance.key: r.outcome for r in job.instances}
            for name, job in self.jobs.items()
        }

    def executed_instances(self) -> int:
        return sum(len(j.instances) for j in self.jobs.values())
