"""Command line interface for running and inspecting durable executions."""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from durastep import InterruptAfter, InterruptionToken, WorkflowRunner
from durastep.errors import DurastepError
from durastep.runner import Workflow

app = typer.Typer(help="CLI for durastep executions")

executions_app = typer.Typer(help="Commands for inspecting persisted executions")

app.add_typer(executions_app, name="executions")

EXIT_STEP_FAILURE = 1
EXIT_INTERRUPTED = 3


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    """durastep CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_workflow(target: str) -> Workflow:
    """Resolve ``module:function`` or ``path/to/file.py:function``."""
    module_ref, _, attr = target.rpartition(":")
    if not module_ref or not attr:
        raise typer.BadParameter("expected MODULE:FUNCTION or FILE.py:FUNCTION")

    if module_ref.endswith(".py"):
        path = Path(module_ref).expanduser().resolve()
        if not path.exists():
            raise typer.BadParameter(f"{path} does not exist")
        spec = importlib.util.spec_from_file_location(path.stem, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
    else:
        module = importlib.import_module(module_ref)

    workflow = getattr(module, attr, None)
    if workflow is None or not callable(workflow):
        raise typer.BadParameter(f"{attr!r} is not a callable in {module_ref}")
    return workflow


def _runner() -> WorkflowRunner:
    try:
        return WorkflowRunner()
    except DurastepError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=2)


@app.command("run")
def run(
    target: str,
    execution_id: str = typer.Option(..., "--execution-id", "-e"),
    inputs: Optional[str] = typer.Option(None, help="JSON object of workflow inputs"),
    interrupt_after: Optional[int] = typer.Option(
        None, help="Simulate a crash after N steps have completed in this pass"
    ),
    show_log: bool = typer.Option(
        False, "--show-log", help="Print the progress messages of this pass"
    ),
) -> None:
    """
    Run one execution pass of a workflow function.

    Re-running with the same execution id resumes the execution: steps already
    COMPLETED in the configured store are skipped and their results reused.

    Example:
        durastep run guides/onboarding_workflow.py:onboard_employee -e onboarding-wf-001
        durastep run guides/onboarding_workflow.py:onboard_employee -e wf-2 --interrupt-after 1
    """
    workflow = _load_workflow(target)
    try:
        kwargs = json.loads(inputs) if inputs else {}
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--inputs is not valid JSON: {e}")
    if not isinstance(kwargs, dict):
        raise typer.BadParameter("--inputs must be a JSON object")

    token = InterruptionToken()
    observer = InterruptAfter(token, interrupt_after) if interrupt_after is not None else None
    runner = _runner()
    try:
        outcome = asyncio.run(
            runner.run(workflow, execution_id, token=token, observer=observer, **kwargs)
        )
    except DurastepError as e:
        typer.secho(f"Execution aborted: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    if show_log:
        for message in outcome.messages:
            typer.echo(f"  | {message}")
    typer.echo(
        f"Execution {outcome.execution_id}: {outcome.status.value} "
        f"(executed {outcome.steps_executed}, replayed {outcome.steps_replayed})"
    )
    if outcome.succeeded:
        if outcome.result is not None:
            typer.echo(f"Result: {json.dumps(outcome.result, default=str)}")
        return
    if outcome.interrupted:
        typer.secho(
            f"Interrupted at [{outcome.failed_step}] (seq {outcome.failed_sequence}); "
            "run again with the same execution id to resume.",
            fg=typer.colors.YELLOW,
        )
        raise typer.Exit(code=EXIT_INTERRUPTED)
    typer.secho(
        f"Step [{outcome.failed_step}] (seq {outcome.failed_sequence}) failed: {outcome.error}",
        fg=typer.colors.RED,
    )
    raise typer.Exit(code=EXIT_STEP_FAILURE)


@executions_app.command("list")
def executions_list() -> None:
    """
    List persisted executions with a status rollup.

    Example:
        durastep executions list
        # Output: onboarding-wf-001    steps=4 completed=3 running=1 failed=0
    """
    summaries = asyncio.run(_runner().summaries())
    if not summaries:
        typer.echo("No executions found")
        return
    for s in summaries:
        typer.echo(
            f"{s.execution_id}\tsteps={s.steps} completed={s.completed} "
            f"running={s.running} failed={s.failed}"
        )


@executions_app.command("show")
def executions_show(execution_id: str) -> None:
    """Show the step records of an execution in sequence order."""
    records = asyncio.run(_runner().history(execution_id))
    if not records:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {execution_id}")
    for r in records:
        line = f"  #{r.sequence_number} {r.step_label}: {r.status.value} (attempt {r.attempt}, {r.last_updated})"
        if r.error_message:
            line += f" error={r.error_message}"
        elif r.result_payload is not None:
            line += f" result={json.dumps(r.result_payload, default=str)}"
        typer.echo(line)


@executions_app.command("reset")
def executions_reset(execution_id: str) -> None:
    """Delete every step record of an execution."""
    removed = asyncio.run(_runner().reset(execution_id))
    typer.echo(f"Removed {removed} step records for {execution_id}")


@executions_app.command("retry-failed")
def executions_retry_failed(execution_id: str) -> None:
    """Clear FAILED records so the next run re-executes those steps."""
    cleared = asyncio.run(_runner().retry_failed(execution_id))
    if not cleared:
        typer.echo("No failed steps")
        return
    for key in cleared:
        typer.echo(f"Cleared {key}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
