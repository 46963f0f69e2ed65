from __future__ import annotations

import pytest

from matrixci.cancel import CancelToken
from matrixci.dsl import sh, uses
from matrixci.errors import ConfigurationError
from matrixci.executor import StepExecutor
from matrixci.model import Event, EventType, JobInstance, Outcome

from conftest import RecordingInvoker

STABLE = JobInstance.of({"rust": "stable", "features": "quickcheck"})


def _executor(invoker, **kw) -> StepExecutor:
    kw.setdefault("declared_axes", ["rust", "features", "rustfmt"])
    return StepExecutor(invoker, job="tests", **kw)


def test_steps_run_in_order_with_substitution(invoker) -> None:
    steps = [
        uses("actions-rs/toolchain@v1", params={"toolchain": "${{ matrix.rust }}", "override": True}),
        sh("Tests", 'cargo test --features "${{ matrix.features }}"'),
    ]

    result = _executor(invoker).run(STABLE, steps, {"CARGO_TERM_COLOR": "always"})

    assert result.outcome == Outcome.SUCCESS
    assert [s.outcome for s in result.steps] == [Outcome.SUCCESS, Outcome.SUCCESS]
    name, params, env = invoker.calls[0]
    assert name == "actions-rs/toolchain@v1"
    assert params == {"toolchain": "stable", "override": "true"}
    assert env == {"CARGO_TERM_COLOR": "always"}
    assert invoker.calls[1][1]["run"] == 'cargo test --features "quickcheck"'


def test_unmet_condition_is_skipped_and_not_a_failure(invoker) -> None:
    steps = [sh("Rustfmt", "cargo fmt -- --check", when="matrix.rustfmt")]

    result = _executor(invoker).run(STABLE, steps, {})

    assert result.outcome == Outcome.SUCCESS
    assert result.steps[0].outcome == Outcome.SKIPPED
    assert invoker.calls == []


def test_failure_skips_rest_except_always_steps() -> None:
    invoker = RecordingInvoker(fail={("run", "cargo build")})
    steps = [
        sh("Build", "cargo build"),
        sh("Test", "cargo test"),
        sh("Report", "echo report", always=True),
        sh("Only on failure", "echo failed", always=True, when="failure()"),
        sh("Only on success", "echo ok", always=True, when="success()"),
    ]

    result = _executor(invoker).run(STABLE, steps, {})

    assert result.outcome == Outcome.FAILURE
    assert [s.outcome for s in result.steps] == [
        Outcome.FAILURE,
        Outcome.SKIPPED,
        Outcome.SUCCESS,
        Outcome.SUCCESS,
        Outcome.SKIPPED,
    ]
    assert invoker.commands() == ["cargo build", "echo report", "echo failed"]


def test_step_continue_on_error_does_not_fail_instance() -> None:
    invoker = RecordingInvoker(fail={("run", "cargo clippy")})
    steps = [
        sh("Clippy", "cargo clippy", id="clippy", continue_on_error=True),
        sh("Test", "cargo test"),
        sh("Note", "echo clippy failed", when="steps.clippy.outcome == 'failure'"),
    ]

    result = _executor(invoker).run(STABLE, steps, {})

    assert result.outcome == Outcome.SUCCESS
    assert [s.outcome for s in result.steps] == [Outcome.FAILURE, Outcome.SUCCESS, Outcome.SUCCESS]


def test_crashing_invoker_is_recorded_as_failure() -> None:
    invoker = RecordingInvoker(crash={"actions/checkout@v2"})
    steps = [uses("actions/checkout@v2"), sh("Test", "cargo test")]

    result = _executor(invoker).run(STABLE, steps, {})

    assert result.outcome == Outcome.FAILURE
    assert "unreachable" in result.steps[0].error
    assert result.steps[1].outcome == Outcome.SKIPPED


def test_cancelled_token_skips_everything(invoker) -> None:
    token = CancelToken()
    token.cancel()

    result = _executor(invoker, token=token).run(STABLE, [sh("Test", "cargo test")], {})

    assert result.outcome == Outcome.SKIPPED
    assert result.cancelled
    assert invoker.calls == []


def test_env_layers_and_event_context(invoker) -> None:
    event = Event(EventType.PULL_REQUEST, "feature/x")
    steps = [
        sh(
            "Show",
            "echo ${{ env.TOOLCHAIN }} ${{ event.type }}",
            env={"RUST_BACKTRACE": "1", "LEVEL": "step"},
            when="event.branch != 'master'",
        ),
    ]
    env = {"TOOLCHAIN": "${{ matrix.rust }}", "LEVEL": "job"}

    _executor(invoker, event=event).run(STABLE, steps, env)

    _, params, step_env = invoker.calls[0]
    assert params["run"] == "echo stable pull_request"
    assert step_env == {"TOOLCHAIN": "stable", "LEVEL": "step", "RUST_BACKTRACE": "1"}


def test_validate_rejects_unknown_references(invoker) -> None:
    executor = _executor(invoker)
    executor.validate(STABLE, [sh("ok", "echo ${{ matrix.rustfmt }} ${{ env.A }}")], {"A": "1"})

    with pytest.raises(ConfigurationError) as excinfo:
        executor.validate(STABLE, [sh("bad", "echo ${{ matrix.os }}")], {})
    assert excinfo.value.step == "bad"

    with pytest.raises(ConfigurationError):
        executor.validate(STABLE, [sh("bad", "echo", when="steps.later.outcome")], {})

    with pytest.raises(ConfigurationError):
        executor.validate(STABLE, [sh("bad", "echo ${{ env.NOPE }}")], {})

    with pytest.raises(ConfigurationError):
        executor.validate(STABLE, [sh("a", "echo", id="x"), sh("b", "echo", id="x")], {})


def test_validate_allows_references_to_earlier_steps(invoker) -> None:
    steps = [
        sh("Build", "cargo build", id="build"),
        sh("After", "echo", when="steps.build.conclusion == 'success'"),
    ]
    _executor(invoker).validate(STABLE, steps, {})


class TwoArgInvoker:
    """Invoker that only takes (name, params)."""

    def __init__(self):
        self.calls = []

    def invoke(self, name, params):
        self.calls.append((name, dict(params)))
        return Outcome.FAILURE if params.get("run") == "false" else Outcome.SUCCESS


def test_invoker_without_env_parameter() -> None:
    invoker = TwoArgInvoker()
    steps = [sh("Build", "cargo +${{ matrix.rust }} build"), sh("Lint", "false")]

    result = _executor(invoker).run(STABLE, steps, {"CARGO_TERM_COLOR": "always"})

    assert invoker.calls == [("run", {"run": "cargo +stable build"}), ("run", {"run": "false"})]
    assert result.outcome == Outcome.FAILURE
