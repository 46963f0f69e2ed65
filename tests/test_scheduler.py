from __future__ import annotations

import threading
import time

import pytest

from matrixci.dsl import job, matrix, sh, uses
from matrixci.errors import ConfigurationError
from matrixci.model import Outcome
from matrixci.scheduler import JobScheduler, pool_size

from conftest import RecordingInvoker


class SlowInvoker(RecordingInvoker):
    """Tracks how many invocations overlap."""

    def __init__(self, delay: float = 0.05, **kw):
        super().__init__(**kw)
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._gauge = threading.Lock()

    def invoke(self, name, params, env):
        with self._gauge:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(self.delay)
            return super().invoke(name, params, env)
        finally:
            with self._gauge:
                self.active -= 1


def test_pool_size_policy() -> None:
    assert pool_size(None, 5) == 5
    assert pool_size(0, 5) == 5
    assert pool_size(1, 5) == 1
    assert pool_size(8, 3) == 3
    assert pool_size(None, 0) == 1


def test_runs_every_instance_and_keeps_expansion_order() -> None:
    invoker = RecordingInvoker()
    j = job("tests", sh("Test", "test ${{ matrix.rust }}"), matrix=matrix(rust=["a", "b", "c", "d"]))

    result = JobScheduler(invoker).run(j)

    assert result.outcome == Outcome.SUCCESS
    assert [r.instance.get("rust") for r in result.instances] == ["a", "b", "c", "d"]
    assert sorted(invoker.commands()) == ["test a", "test b", "test c", "test d"]


def test_one_failing_instance_does_not_stop_siblings() -> None:
    invoker = RecordingInvoker(fail={("run", "test b")})
    j = job("tests", sh("Test", "test ${{ matrix.rust }}"), matrix=matrix(rust=["a", "b", "c"]))

    result = JobScheduler(invoker).run(j)

    assert result.outcome == Outcome.FAILURE
    assert result.blocking
    assert [r.outcome for r in result.instances] == [Outcome.SUCCESS, Outcome.FAILURE, Outcome.SUCCESS]


def test_crash_is_contained_to_its_instance() -> None:
    invoker = RecordingInvoker(crash={"flaky/action@v1"})
    # only the "b" instance reaches the crashing action
    j = job(
        "tests",
        uses("flaky/action@v1", when="matrix.rust == 'b'"),
        sh("Test", "test ${{ matrix.rust }}"),
        matrix=matrix(rust=["a", "b", "c"]),
    )

    result = JobScheduler(invoker).run(j)

    assert [r.outcome for r in result.instances] == [Outcome.SUCCESS, Outcome.FAILURE, Outcome.SUCCESS]
    assert "RuntimeError" in result.instances[1].steps[0].error
    assert sorted(invoker.commands()) == ["flaky/action@v1", "test a", "test c"]


def test_continue_on_error_job_is_non_blocking() -> None:
    invoker = RecordingInvoker(fail={("run", None)})
    j = job("rustfmt", sh("Rustfmt", "cargo fmt -- --check"), continue_on_error=True)

    result = JobScheduler(invoker).run(j)

    assert result.outcome == Outcome.FAILURE
    assert not result.blocking


def test_sequential_when_limited_to_one_worker() -> None:
    invoker = SlowInvoker()
    j = job("tests", sh("Test", "t"), matrix=matrix(n=[1, 2, 3, 4]))

    JobScheduler(invoker, max_workers=1).run(j)

    assert invoker.peak == 1


def test_job_max_parallel_caps_concurrency() -> None:
    invoker = SlowInvoker()
    j = job("tests", sh("Test", "t"), matrix=matrix(n=[1, 2, 3, 4, 5, 6]), max_parallel=2)

    JobScheduler(invoker).run(j)

    assert invoker.peak <= 2


def test_fail_fast_cancels_remaining_instances() -> None:
    invoker = RecordingInvoker(fail={("run", "test 1")})
    j = job(
        "tests",
        sh("Test", "test ${{ matrix.n }}"),
        matrix=matrix(n=[1, 2, 3]),
        fail_fast=True,
    )

    result = JobScheduler(invoker, max_workers=1).run(j)

    assert result.outcome == Outcome.FAILURE
    assert [r.outcome for r in result.instances] == [Outcome.FAILURE, Outcome.SKIPPED, Outcome.SKIPPED]
    assert all(r.cancelled for r in result.instances[1:])
    assert invoker.commands() == ["test 1"]


def test_plan_raises_on_bad_reference() -> None:
    j = job("tests", sh("Test", "echo ${{ matrix.os }}"), matrix=matrix(rust=["stable"]))
    with pytest.raises(ConfigurationError):
        JobScheduler(RecordingInvoker()).plan(j)
