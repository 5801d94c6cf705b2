"""
Rich console adapters: the human approval prompt and the run report renderer.

The engine does no formatting itself; these are the external collaborators
that present sessions to a person.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from phaseflow.application.report import RunReport
from phaseflow.domain.interfaces import ApprovalPromptInterface
from phaseflow.domain.models import Decision
from phaseflow.domain.session import PhaseStatus, SessionSnapshot, SessionStatus

STATUS_STYLES = {
    SessionStatus.RUNNING: "cyan",
    SessionStatus.PAUSED: "yellow",
    SessionStatus.ESCALATED: "magenta",
    SessionStatus.SUCCEEDED: "green",
    SessionStatus.FAILED: "red",
    SessionStatus.ABORTED: "red",
}

PHASE_STYLES = {
    PhaseStatus.COMPLETED: "green",
    PhaseStatus.AWAITING_APPROVAL: "yellow",
    PhaseStatus.EXHAUSTED: "magenta",
    PhaseStatus.FAILED: "red",
    PhaseStatus.CANCELLED: "red",
}


def _preview(content: Any, limit: int = 200) -> str:
    text = content if isinstance(content, str) else json.dumps(content, default=str)
    return text if len(text) <= limit else text[:limit] + "..."


class ConsoleApprovalPrompt(ApprovalPromptInterface):
    """
    Collects a decision for a paused or escalated session from the terminal.

    This implementation uses synchronous CLI prompts. Callers decide when to
    ask; the engine never blocks on it.
    """

    def __init__(
        self,
        prompt_title: str = "APPROVAL REQUIRED",
        console: Console | None = None,
    ):
        """
        Args:
            prompt_title: Title displayed above the session summary
            console: Console to print to (defaults to stdout)
        """
        self.prompt_title = prompt_title
        self.console = console or Console()

    def ask(self, snapshot: SessionSnapshot) -> Decision:
        """
        Display the session state and prompt for a decision.

        Returns:
            Approve, RequestChanges with the reviewer's feedback, or Abort
        """
        self.console.print(f"\n[bold yellow]═══ {self.prompt_title} ═══[/bold yellow]")
        self.console.print(f"[dim]Session: {snapshot.session_id}[/dim]")
        self.console.print(
            f"[dim]Workflow: {snapshot.definition_id} | "
            f"phase {snapshot.current_phase_id} ({snapshot.status.value})[/dim]\n"
        )

        if snapshot.artifacts:
            table = Table(show_header=True, box=None)
            table.add_column("Artifact", style="cyan")
            table.add_column("Rev", width=4)
            table.add_column("Content")
            for key, artifact in snapshot.artifacts.items():
                table.add_row(
                    Text(key), str(artifact.revision), Text(_preview(artifact.content))
                )
            self.console.print(table)

        if snapshot.status is SessionStatus.ESCALATED and snapshot.current_phase_id:
            state = snapshot.phase_states[snapshot.current_phase_id]
            self.console.print(
                f"\n[magenta]Loop exhausted after {state.iteration_count} attempt(s)[/magenta]"
            )
            for result in state.last_results:
                self.console.print(
                    f"  {result.capability}: {result.status.value} {result.diagnostics}",
                    markup=False,
                )

        choice = Prompt.ask(
            "\n[bold]Approve, request changes, or abort?[/bold]",
            choices=["a", "r", "x"],
        )

        if choice == "a":
            return Decision.approve()
        if choice == "r":
            feedback = Prompt.ask("[bold]Requested changes[/bold]")
            return Decision.request_changes(feedback)
        reason = Prompt.ask("[bold]Abort reason[/bold]", default="Aborted by reviewer")
        return Decision.abort(reason)


def render_report(report: RunReport, console: Console | None = None) -> None:
    """Print a run report: per-phase outcome table, artifacts and failure reason."""
    console = console or Console()
    style = STATUS_STYLES.get(report.status, "white")

    header = Text(f"{report.definition_id} ", style="bold blue")
    header.append(report.status.value.upper(), style=f"bold {style}")
    header.append(f"\nSession {report.session_id}", style="dim")
    console.print(Panel(header, expand=False))

    phases = Table(show_header=True, box=None)
    phases.add_column("Phase", style="cyan")
    phases.add_column("Kind")
    phases.add_column("Status")
    phases.add_column("Iterations", justify="right")
    phases.add_column("Final attempt")
    for phase in report.phases:
        iterations = str(phase.iteration_count)
        if phase.max_iterations is not None:
            iterations = f"{phase.iteration_count}/{phase.max_iterations}"
        outcome = ", ".join(
            f"{r.capability}={r.status.value}" for r in phase.results
        )
        phases.add_row(
            phase.phase_id,
            phase.kind.value,
            Text(phase.status.value, style=PHASE_STYLES.get(phase.status, "")),
            iterations,
            outcome,
        )
    console.print(phases)

    if report.artifacts:
        console.print("\n[bold]Artifacts:[/bold]")
        for artifact in report.artifacts:
            line = Text(f"  {artifact.key}", style="cyan")
            line.append(f" r{artifact.revision}: {_preview(artifact.content, 80)}")
            console.print(line)

    if report.failure_reason:
        content = Text(report.failure_reason, style="bold red")
        if report.failed_phase:
            content.append(f"\nPhase: {report.failed_phase}", style="dim")
        console.print(Panel(content, title="Reason", border_style="red"))
