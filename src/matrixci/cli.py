# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click

from matrixci import settings
from matrixci.actions import LocalActionInvoker
from matrixci.errors import ConfigurationError
from matrixci.git import current_branch, repo_root
from matrixci.loader import load_pipeline
from matrixci.model import Event, EventType, Outcome, PipelineDefinition, RunReport
from matrixci.report import write_report
from matrixci.runner import PipelineRunner
from matrixci.ui.console import Console, get_console, set_console

DEFAULT_PIPELINES = ("matrixci.yml", "matrixci.yaml", "matrixci_workflow.py")


def find_pipeline_files() -> list[Path]:
    """
    Find all pipeline files in the current directory.

    Returns:
        List of Path objects for pipeline files
    """
    current_dir = Path(".")
    found = [current_dir / name for name in DEFAULT_PIPELINES if (current_dir / name).exists()]

    # Look for other *_workflow.py files
    for path in current_dir.glob("*_workflow.py"):
        if path not in found:
            found.append(path)

    return sorted(found)


def discover_pipeline(pipeline_arg: str | None) -> Path:
    """
    Discover pipeline file from argument or default.

    Raises:
        SystemExit: If no pipeline can be found or several candidates exist
    """
    console = get_console()

    if pipeline_arg:
        path = Path(pipeline_arg)
        if not path.exists():
            console.print_error(
                "Pipeline file not found",
                f"Could not find pipeline file: {pipeline_arg}",
                suggestion="Create a pipeline file or specify a different path:\n  matrixci run --pipeline ci.yml",
            )
            sys.exit(1)
        return path

    candidates = find_pipeline_files()

    if len(candidates) == 0:
        console.print_error(
            "No pipeline file found",
            "Could not find any pipeline files.",
            details=["Looked for:", *(f"  {name}" for name in DEFAULT_PIPELINES), "  *_workflow.py"],
            suggestion="Create matrixci.yml, or specify a pipeline explicitly:\n  matrixci run --pipeline ci.yml",
        )
        sys.exit(1)

    if len(candidates) > 1:
        file_list = "\n".join(f"  {f}" for f in candidates)
        console.print_error(
            "Multiple pipeline files found",
            "Found multiple pipeline files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a pipeline explicitly:\n  matrixci run --pipeline matrixci.yml",
        )
        sys.exit(1)

    return candidates[0]


def _event(event_type: str, branch: str | None) -> Event:
    return Event(
        event_type=EventType(event_type),
        branch=branch or current_branch() or settings.DEFAULT_BRANCH,
    )


def _load(pipeline: str | None) -> PipelineDefinition:
    return load_pipeline(discover_pipeline(pipeline))


def _print_plan(runner: PipelineRunner, event: Event) -> None:
    console = get_console()
    selected = {j.name for j in runner.select(event)}
    console.print_header(f"Plan for {event}")
    for job, instances in runner.plan(event):
        console.print_plan_job(job.name, instances)
    for job in runner.definition.jobs:
        if job.name not in selected:
            console.print_plan_job_skipped(job.name, f"no trigger matches {event}")


_event_option = click.option(
    "--event",
    "event_type",
    type=click.Choice([e.value for e in EventType]),
    default=EventType.PUSH.value,
    show_default=True,
    help="Trigger event type",
)
_branch_option = click.option(
    "--branch",
    default=None,
    help="Branch the event happened on (defaults to the current git branch)",
)
_pipeline_option = click.option(
    "--pipeline",
    default=settings.PIPELINE_FILE,
    help="Pipeline file (matrixci.yml / *.yaml / *_workflow.py)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and action output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: matrix-driven CI pipeline runner."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@_pipeline_option
@_event_option
@_branch_option
@click.option(
    "--workers",
    default=None,
    type=int,
    help="Max parallel instances per job (0 = all) [env: MATRIXCI_WORKERS]",
)
@click.option(
    "--job-workers",
    default=None,
    type=int,
    help="Max parallel jobs (0 = all) [env: MATRIXCI_JOB_WORKERS]",
)
@click.option(
    "--assume-ok",
    multiple=True,
    help="Action name pattern to treat as succeeded without running (repeatable), e.g. 'actions/*'",
)
@click.option("--report-json", default=None, type=click.Path(dir_okay=False), help="Write the run report as JSON")
@click.option("--print-plan/--no-print-plan", default=True, show_default=True, help="Print selected jobs and instances")
@click.pass_context
def run(ctx, pipeline, event_type, branch, workers, job_workers, assume_ok, report_json, print_plan):
    """Run a pipeline for one trigger event."""
    console = get_console()

    try:
        workers = workers if workers is not None else settings.workers()
        job_workers = job_workers if job_workers is not None else settings.job_workers()
    except ConfigurationError as e:
        console.print_error("Invalid environment setting", str(e))
        sys.exit(1)

    event = _event(event_type, branch)

    try:
        try:
            definition = _load(pipeline)
        except ConfigurationError as e:
            console.print_error("Invalid pipeline definition", str(e))
            # nothing ran; still emit a report that says why
            if report_json:
                write_report(RunReport(event=event, status=Outcome.FAILURE, error=str(e)), report_json)
            sys.exit(1)

        # steps run from the repository root, like a fresh checkout
        runner = PipelineRunner(
            definition,
            LocalActionInvoker(repo_root() or ".", assume_ok=assume_ok),
            max_workers=workers,
            max_parallel_jobs=job_workers,
        )

        console.print_run_started(
            pipeline=definition.name,
            event=str(event),
            job_count=len(runner.select(event)),
        )
        if print_plan:
            try:
                _print_plan(runner, event)
            except ConfigurationError:
                pass  # trigger() reports it

        report = runner.trigger(event)
        console.print_results(report)

        if report_json:
            out = write_report(report, report_json)
            console.print_info(f"Report written to {out}")

        if not report.ok:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@_pipeline_option
@_event_option
@_branch_option
@click.pass_context
def plan(ctx, pipeline, event_type, branch):
    """Show which jobs an event selects and how their matrices expand."""
    console = get_console()
    event = _event(event_type, branch)

    try:
        runner = PipelineRunner(_load(pipeline), LocalActionInvoker("."))
        _print_plan(runner, event)
    except ConfigurationError as e:
        console.print_error("Invalid pipeline definition", str(e))
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
