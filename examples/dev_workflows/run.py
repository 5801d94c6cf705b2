#!/usr/bin/env python3
"""
Development workflow demo runner.

Runs the bugfix or feature workflow against simulated capabilities, asking
for approval in the terminal whenever a session pauses at a gate or a loop
escalates. Sessions and their execution traces are stored on disk, so a
paused run can be picked up again with `resume`.

Usage:
    python -m examples.dev_workflows.run run --workflow bugfix --issue "NPE in parser"
    python -m examples.dev_workflows.run run --workflow feature --auto-approve
    python -m examples.dev_workflows.run list
    python -m examples.dev_workflows.run resume <session_id>
    python -m examples.dev_workflows.run report <session_id>
"""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from phaseflow import Decision, PhaseEngine, SessionSnapshot, WorkflowRunner
from phaseflow.infrastructure import (
    FilesystemSessionStore,
    FilesystemWorkflowEventStore,
    load_engine_config,
    load_workflow_definitions,
)
from phaseflow.infrastructure.console import ConsoleApprovalPrompt, render_report
from phaseflow.logging_setup import setup_logging

from .capabilities import build_registry

SCRIPT_DIR = Path(__file__).parent
WORKFLOWS_DIR = SCRIPT_DIR / "workflows"
DEFAULT_STORE_DIR = SCRIPT_DIR / "output"

console = Console()


def build_runner(store_dir: Path, engine_config: Path | None) -> WorkflowRunner:
    config = load_engine_config(engine_config) if engine_config else None
    engine = PhaseEngine(
        build_registry(),
        config,
        event_store=FilesystemWorkflowEventStore(store_dir),
    )
    runner = WorkflowRunner(engine, FilesystemSessionStore(store_dir))
    for definition in load_workflow_definitions(WORKFLOWS_DIR).values():
        runner.register(definition)
    return runner


def drive(runner: WorkflowRunner, session_id: str, auto_approve: bool) -> SessionSnapshot:
    """Wait for the session, answering every pause until it terminates."""
    prompt = ConsoleApprovalPrompt(console=console)
    snapshot = runner.wait(session_id)
    while snapshot.status.awaits_decision:
        if auto_approve:
            console.print(f"[dim]Auto-approving {snapshot.current_phase_id}[/dim]")
            decision = Decision.approve()
        else:
            decision = prompt.ask(snapshot)
        runner.resume(session_id, decision)
        snapshot = runner.wait(session_id)
    return snapshot


@click.group()
@click.option(
    "--store-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_STORE_DIR,
    show_default=True,
    help="Directory for session checkpoints and traces",
)
@click.option(
    "--engine-config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Engine settings JSON file",
)
@click.option("--log-file", default=None, help="Write a debug log to this file")
@click.option("-v", "--verbose", is_flag=True, help="Debug output on the console")
@click.pass_context
def cli(
    ctx: click.Context,
    store_dir: Path,
    engine_config: Path | None,
    log_file: str | None,
    verbose: bool,
) -> None:
    """Run simulated development workflows."""
    setup_logging(log_file=log_file, verbose=verbose)
    ctx.obj = build_runner(store_dir, engine_config)
    ctx.call_on_close(ctx.obj.close)


@cli.command()
@click.option(
    "--workflow",
    type=click.Choice(["bugfix", "feature"]),
    default="bugfix",
    show_default=True,
)
@click.option("--issue", default="crash on empty input", help="Issue to work on")
@click.option("--auto-approve", is_flag=True, help="Approve every gate and escalation")
@click.pass_obj
def run(runner: WorkflowRunner, workflow: str, issue: str, auto_approve: bool) -> None:
    """Start a new session and drive it to completion."""
    session_id = runner.start(workflow, {"issue": issue})
    console.print(f"[bold]Started {workflow} session {session_id}[/bold]")
    drive(runner, session_id, auto_approve)
    render_report(runner.report(session_id), console)


@cli.command()
@click.argument("session_id")
@click.option("--auto-approve", is_flag=True, help="Approve every gate and escalation")
@click.pass_obj
def resume(runner: WorkflowRunner, session_id: str, auto_approve: bool) -> None:
    """Restore a stored session and continue it."""
    runner.restore(session_id)
    drive(runner, session_id, auto_approve)
    render_report(runner.report(session_id), console)


@cli.command()
@click.argument("session_id")
@click.pass_obj
def report(runner: WorkflowRunner, session_id: str) -> None:
    """Show the report of a stored session."""
    snapshot = runner.restore(session_id)
    if not snapshot.is_terminal and not snapshot.status.awaits_decision:
        runner.wait(session_id)
    render_report(runner.report(session_id), console)


@cli.command(name="list")
@click.pass_context
def list_sessions(ctx: click.Context) -> None:
    """List stored sessions, newest first."""
    store = FilesystemSessionStore(ctx.parent.params["store_dir"])
    table = Table(show_header=True, box=None)
    table.add_column("Session", style="cyan")
    table.add_column("Workflow")
    table.add_column("Status")
    table.add_column("Phase")
    for session_id in store.list_sessions():
        snapshot = store.load(session_id).snapshot()
        table.add_row(
            session_id,
            snapshot.definition_id,
            snapshot.status.value,
            snapshot.current_phase_id or "-",
        )
    console.print(table)


if __name__ == "__main__":
    cli()
