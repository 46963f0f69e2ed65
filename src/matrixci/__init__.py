from .errors import ActionFailure, CIError, ConfigurationError
from .loader import load_pipeline
from .matrix import expand
from .model import Event, EventType, JobInstance, Outcome, PipelineDefinition, RunReport
from .runner import PipelineRunner, RunRegistry
# Imported last: loading the ``matrix`` submodule rebinds the package attribute,
# which would otherwise shadow the ``matrix`` DSL helper.
from .dsl import job, sh, uses, matrix, on_push, on_pull_request, wf

__all__ = [
    "job", "sh", "uses", "matrix", "on_push", "on_pull_request", "wf",
    "ActionFailure", "CIError", "ConfigurationError",
    "load_pipeline", "expand",
    "Event", "EventType", "JobInstance", "Outcome", "PipelineDefinition", "RunReport",
    "PipelineRunner", "RunRegistry",
]
