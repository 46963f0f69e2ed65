# runner.py
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Tuple

from .actions import ActionInvoker
from .cancel import CancelToken
from .errors import ConfigurationError
from .model import Event, Job, JobInstance, JobResult, Outcome, PipelineDefinition, RunReport
from .scheduler import JobScheduler, pool_size
from .ui.console import get_console


class RunRegistry:
    """
    Which run is in flight for each (event type, branch).

    Passed into PipelineRunner so supersede-cancellation is explicit state the
    caller owns; share one registry between runners to cancel across them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Dict[Tuple[str, str], CancelToken] = {}

    def begin(self, event: Event) -> CancelToken:
        """Register a new run for `event`, cancelling the one it supersedes."""
        token = CancelToken()
        with self._lock:
            previous = self._active.get(event.key)
            self._active[event.key] = token
        if previous is not None:
            get_console().print_info(f"Superseded earlier run for {event}")
            previous.cancel()
        return token

    def finish(self, event: Event, token: CancelToken) -> None:
        with self._lock:
            if self._active.get(event.key) is token:
                del self._active[event.key]

    def cancel(self, event: Event) -> bool:
        with self._lock:
            token = self._active.get(event.key)
        if token is None:
            return False
        token.cancel()
        return True


class PipelineRunner:
    """
    Top-level orchestrator:

    - selects the jobs whose triggers match the event
    - plans all of them first (a bad definition aborts before anything runs)
    - runs jobs (bounded by max_parallel_jobs), each through a JobScheduler
    - folds job results into a RunReport, honoring continue-on-error
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        invoker: ActionInvoker,
        *,
        max_workers: int | None = None,
        max_parallel_jobs: int | None = None,
        registry: Optional[RunRegistry] = None,
    ):
        self.definition = definition
        self.scheduler = JobScheduler(invoker, max_workers=max_workers)
        self.max_parallel_jobs = max_parallel_jobs
        self.registry = registry if registry is not None else RunRegistry()

    def select(self, event: Event) -> List[Job]:
        return [j for j in self.definition.jobs if self.definition.selects(j, event)]

    def plan(self, event: Event) -> List[Tuple[Job, List[JobInstance]]]:
        """Expand + validate every selected job. Raises ConfigurationError."""
        names = [j.name for j in self.definition.jobs]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ConfigurationError(f"Duplicate job names found: {dupes}")
        return [
            (job, self.scheduler.plan(job, self.definition.env, event))
            for job in self.select(event)
        ]

    def trigger(self, event: Event) -> RunReport:
        console = get_console()

        try:
            planned = self.plan(event)
        except ConfigurationError as e:
            console.print_error("Invalid pipeline definition", str(e))
            return RunReport(event=event, status=Outcome.FAILURE, error=str(e))

        token = self.registry.begin(event)
        try:
            results = self._run_jobs(planned, event, token)
        finally:
            self.registry.finish(event, token)

        # a supersede that skipped work; fail-fast only marks instances
        cancelled = token.cancelled and any(
            r.cancelled for job in results.values() for r in job.instances
        )
        if any(job.blocking for job in results.values()):
            status = Outcome.FAILURE
        elif cancelled:
            status = Outcome.SKIPPED
        else:
            status = Outcome.SUCCESS

        return RunReport(event=event, status=status, jobs=results, cancelled=cancelled)

    def _run_jobs(
        self,
        planned: List[Tuple[Job, List[JobInstance]]],
        event: Event,
        token: CancelToken,
    ) -> Dict[str, JobResult]:
        results: Dict[str, JobResult] = {}
        workers = pool_size(self.max_parallel_jobs, len(planned))

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(
                    self.scheduler.run,
                    job,
                    env=self.definition.env,
                    event=event,
                    token=token,
                    instances=instances,
                ): job.name
                for job, instances in planned
            }
            for future in as_completed(futures):
                name = futures[future]
                results[name] = future.result()

        # declaration order, not completion order
        return {job.name: results[job.name] for job, _ in planned}
