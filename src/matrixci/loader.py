# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

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

Scalar = Union[str, int, float, bool]

# ----------------------------------------------------------------------
# Document schema
# ----------------------------------------------------------------------


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class BranchFilterDoc(_Schema):
    branches: List[str] = Field(default_factory=list)
    branches_ignore: List[str] = Field(default_factory=list, alias="branches-ignore")


class StepDoc(_Schema):
    name: Optional[str] = None
    id: Optional[str] = None
    uses: Optional[str] = None
    run: Optional[str] = None
    with_: Dict[str, Scalar] = Field(default_factory=dict, alias="with")
    if_: Optional[Union[str, bool]] = Field(default=None, alias="if")
    always: bool = False
    continue_on_error: bool = Field(default=False, alias="continue-on-error")
    env: Dict[str, Scalar] = Field(default_factory=dict)
    working_directory: Optional[str] = Field(default=None, alias="working-directory")
    shell: Optional[str] = None
    timeout_minutes: Optional[float] = Field(default=None, alias="timeout-minutes")

    @model_validator(mode="after")
    def _uses_or_run(self) -> StepDoc:
        if (self.uses is None) == (self.run is None):
            raise ValueError("a step needs exactly one of 'uses' or 'run'")
        if self.run is not None and self.with_:
            raise ValueError("'with' only applies to 'uses' steps")
        return self


class MatrixDoc(BaseModel):
    # free-form: every key other than include/exclude is an axis
    model_config = ConfigDict(extra="allow")

    include: List[Dict[str, Any]] = Field(default_factory=list)
    exclude: List[Dict[str, Any]] = Field(default_factory=list)

    def axes(self) -> Dict[str, Tuple[Any, ...]]:
        out: Dict[str, Tuple[Any, ...]] = {}
        for key, values in (self.model_extra or {}).items():
            if not isinstance(values, list):
                raise ValueError(f"matrix axis '{key}' must be a list of values")
            out[key] = tuple(values)
        return out


class StrategyDoc(_Schema):
    matrix: MatrixDoc = Field(default_factory=MatrixDoc)
    max_parallel: Optional[int] = Field(default=None, alias="max-parallel", ge=1)
    fail_fast: bool = Field(default=False, alias="fail-fast")


class JobDoc(_Schema):
    runs_on: Optional[Union[str, List[str]]] = Field(default=None, alias="runs-on")
    on: Any = None
    env: Dict[str, Scalar] = Field(default_factory=dict)
    continue_on_error: bool = Field(default=False, alias="continue-on-error")
    strategy: StrategyDoc = Field(default_factory=StrategyDoc)
    steps: List[StepDoc]

    @field_validator("steps")
    @classmethod
    def _has_steps(cls, v: List[StepDoc]) -> List[StepDoc]:
        if not v:
            raise ValueError("a job must have at least one step")
        return v


class PipelineDoc(_Schema):
    name: Optional[str] = None
    on: Any = None
    env: Dict[str, Scalar] = Field(default_factory=dict)
    jobs: Dict[str, JobDoc]


# ----------------------------------------------------------------------
# Document -> definition
# ----------------------------------------------------------------------

def parse_triggers(raw: Any) -> Tuple[TriggerFilter, ...]:
    """
    Accepts `push`, `[push, pull_request]` or
    `{push: {branches: [master]}, pull_request: null}`.
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    if isinstance(raw, list):
        raw = {name: None for name in raw}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"'on' must be an event name, a list or a mapping, got {type(raw).__name__}")

    filters: List[TriggerFilter] = []
    for name, body in raw.items():
        try:
            event_type = EventType(name)
        except ValueError:
            raise ConfigurationError(
                f"unsupported trigger event '{name}'",
                known=", ".join(e.value for e in EventType),
            ) from None
        try:
            doc = BranchFilterDoc.model_validate(body or {})
        except ValidationError as exc:
            raise ConfigurationError(f"invalid '{name}' trigger: {exc}") from exc
        filters.append(
            TriggerFilter(
                event_type=event_type,
                branches=tuple(doc.branches),
                branches_ignore=tuple(doc.branches_ignore),
            )
        )
    return tuple(filters)


def _step_from_doc(doc: StepDoc) -> StepSpec:
    if doc.run is not None:
        action = "run"
        params: Dict[str, Any] = {"run": doc.run}
        if doc.working_directory:
            params["working-directory"] = doc.working_directory
        if doc.shell:
            params["shell"] = doc.shell
    else:
        action = doc.uses
        params = dict(doc.with_)

    condition = doc.if_
    if isinstance(condition, bool):
        condition = "true" if condition else "false"

    return StepSpec(
        action=action,
        params=frozen_mapping(params),
        name=doc.name,
        id=doc.id,
        condition=condition,
        always=doc.always,
        continue_on_error=doc.continue_on_error,
        env=frozen_mapping(doc.env),
        timeout_minutes=doc.timeout_minutes,
    )


def _job_from_doc(name: str, doc: JobDoc) -> Job:
    try:
        axes = doc.strategy.matrix.axes()
    except ValueError as exc:
        raise ConfigurationError(str(exc), job=name) from exc

    runs_on = doc.runs_on
    if isinstance(runs_on, list):
        runs_on = ", ".join(runs_on)

    return Job(
        name=name,
        steps=tuple(_step_from_doc(s) for s in doc.steps),
        matrix=MatrixSpec(
            axes=frozen_mapping(axes),
            include=tuple(frozen_mapping(e) for e in doc.strategy.matrix.include),
            exclude=tuple(frozen_mapping(e) for e in doc.strategy.matrix.exclude),
        ),
        env=frozen_mapping(doc.env),
        continue_on_error=doc.continue_on_error,
        triggers=parse_triggers(doc.on),
        max_parallel=doc.strategy.max_parallel,
        fail_fast=doc.strategy.fail_fast,
        runs_on=runs_on,
    )


def _normalize_on_key(data: Dict[Any, Any]) -> Dict[Any, Any]:
    # YAML 1.1 reads a bare `on:` key as boolean True
    if True in data:
        data = dict(data)
        data["on"] = data.pop(True)
    return data


def definition_from_dict(data: Dict[str, Any], *, default_name: str = "pipeline") -> PipelineDefinition:
    if not isinstance(data, dict):
        raise ConfigurationError("pipeline document must be a mapping at the top level")

    data = _normalize_on_key(data)
    if isinstance(data.get("jobs"), dict):
        data["jobs"] = {
            k: _normalize_on_key(v) if isinstance(v, dict) else v
            for k, v in data["jobs"].items()
        }

    try:
        doc = PipelineDoc.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid pipeline definition: {exc}") from exc

    if not doc.jobs:
        raise ConfigurationError("pipeline defines no jobs")

    return PipelineDefinition(
        name=doc.name or default_name,
        env=frozen_mapping(doc.env),
        triggers=parse_triggers(doc.on),
        jobs=tuple(_job_from_doc(name, j) for name, j in doc.jobs.items()),
    )


def load_yaml(path: Path) -> PipelineDefinition:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"could not parse {path.name}: {exc}") from exc
    return definition_from_dict(raw or {}, default_name=path.stem)


# ----------------------------------------------------------------------
# Python workflow files
# ----------------------------------------------------------------------

def load_python(path: Path) -> PipelineDefinition:
    """
    Load a pipeline from a python file.

    The file must define either:
      - workflow() -> PipelineDefinition
      - PIPELINE = PipelineDefinition(...)
    """
    module_name = f"matrixci_workflow_{path.stem}"
    globals_dict = runpy.run_path(str(path), run_name=module_name)

    definition = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            definition = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your workflow() is being called with arguments (name collision with the helper). "
                    "Use the 'wf' helper instead: `from matrixci import wf, job, sh` then "
                    "`def workflow(): return wf(job(...), job(...))`"
                ) from e
            raise
    elif "PIPELINE" in globals_dict:
        definition = globals_dict["PIPELINE"]

    if not isinstance(definition, PipelineDefinition):
        raise ConfigurationError(
            "Workflow must return/define a PipelineDefinition. "
            "Define workflow() -> wf(...) or PIPELINE = wf(...)."
        )
    return definition


def load_pipeline(path: str | Path) -> PipelineDefinition:
    """Load a pipeline definition from a .yml/.yaml document or a .py workflow."""
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Pipeline file not found: {p}")
    if p.suffix in (".yml", ".yaml"):
        return load_yaml(p)
    if p.suffix == ".py":
        return load_python(p)
    raise ConfigurationError(f"Pipeline must be a .yml, .yaml or .py file, got: {p.name}")
