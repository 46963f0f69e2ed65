# scheduler.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .actions import ActionInvoker
from .cancel import CancelToken
from .executor import StepExecutor
from .matrix import expand
from .model import Event, InstanceResult, Job, JobInstance, JobResult, Outcome
from .ui.console import get_console


def pool_size(limit: int | None, n_tasks: int) -> int:
    """None/0 -> one worker per task ("run all"); 1 -> sequential."""
    if n_tasks <= 0:
        return 1
    if not limit:
        return n_tasks
    return max(1, min(limit, n_tasks))


def job_outcome(instances: Sequence[InstanceResult]) -> Outcome:
    outcomes = [r.outcome for r in instances]
    if Outcome.FAILURE in outcomes:
        return Outcome.FAILURE
    if all(o == Outcome.SUCCESS for o in outcomes):
        return Outcome.SUCCESS
    return Outcome.SKIPPED


class JobScheduler:
    """
    Runs every instance of one job, each on its own worker, bounded by
    `max_workers` (and the job's own max_parallel).
    """

    def __init__(self, invoker: ActionInvoker, *, max_workers: int | None = None):
        self.invoker = invoker
        self.max_workers = max_workers

    def _executor(self, job: Job, event: Optional[Event], token: Optional[CancelToken]) -> StepExecutor:
        return StepExecutor(
            self.invoker,
            job=job.name,
            declared_axes=job.matrix.declared_axes(),
            event=event,
            token=token,
        )

    def _limit(self, job: Job) -> int | None:
        limits = [n for n in (self.max_workers, job.max_parallel) if n]
        return min(limits) if limits else None

    def plan(self, job: Job, env: Mapping[str, Any] | None = None, event: Optional[Event] = None) -> List[JobInstance]:
        """Expand the matrix and check every step reference; raises ConfigurationError."""
        instances = expand(job.matrix, job=job.name)
        executor = self._executor(job, event, None)
        job_env = {**(env or {}), **job.env}
        for instance in instances:
            executor.validate(instance, job.steps, job_env)
        return instances

    def run(
        self,
        job: Job,
        *,
        env: Mapping[str, Any] | None = None,
        event: Optional[Event] = None,
        token: Optional[CancelToken] = None,
        instances: Optional[List[JobInstance]] = None,
    ) -> JobResult:
        console = get_console()
        if instances is None:
            instances = self.plan(job, env, event)

        job_token = (token or CancelToken()).child()
        executor = self._executor(job, event, job_token)
        job_env = {**(env or {}), **job.env}

        console.print_job_start(job.name, len(instances))

        def run_one(instance: JobInstance) -> InstanceResult:
            result = executor.run(instance, job.steps, job_env)
            # cancel from the worker so a queued sibling sees it before starting
            if result.outcome == Outcome.FAILURE and job.fail_fast:
                job_token.cancel()
            return result

        results: Dict[int, InstanceResult] = {}
        workers = pool_size(self._limit(job), len(instances))

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(run_one, inst): idx for idx, inst in enumerate(instances)}

            for future in as_completed(futures):
                idx = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    # executor.run already absorbs action errors; this is a crash in the core
                    result = InstanceResult(
                        instances[idx],
                        Outcome.FAILURE,
                        error=f"{type(e).__name__}: {e}",
                    )
                    console.print_exception(e)

                results[idx] = result
                console.print_instance_result(job.name, result)

        ordered = [results[i] for i in range(len(instances))]
        return JobResult(
            name=job.name,
            outcome=job_outcome(ordered),
            continue_on_error=job.continue_on_error,
            instances=ordered,
        )
