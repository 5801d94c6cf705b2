"""Structured run report, for external rendering."""

from dataclasses import dataclass
from typing import Any

from phaseflow.domain.models import Artifact, PhaseKind, TaskResult
from phaseflow.domain.session import PhaseStatus, RunSession, SessionStatus


@dataclass(frozen=True)
class PhaseReport:
    """Outcome of one phase."""

    phase_id: str
    kind: PhaseKind
    status: PhaseStatus
    iteration_count: int
    max_iterations: int | None  # Loops only
    results: tuple[TaskResult, ...]  # Final attempt


@dataclass(frozen=True)
class RunReport:
    """Everything a renderer needs to summarise a session."""

    session_id: str
    definition_id: str
    status: SessionStatus
    phases: tuple[PhaseReport, ...]
    artifacts: tuple[Artifact, ...]  # Latest revision per key
    failed_phase: str | None
    failure_reason: str
    created_at: str
    updated_at: str

    @property
    def succeeded(self) -> bool:
        return self.status is SessionStatus.SUCCEEDED

    def artifact_contents(self) -> dict[str, Any]:
        return {a.key: a.content for a in self.artifacts}


def build_report(session: RunSession) -> RunReport:
    """Assemble a RunReport from the session's current state."""
    phases = []
    for phase in session.definition.phases:
        state = session.state_of(phase.phase_id)
        phases.append(
            PhaseReport(
                phase_id=phase.phase_id,
                kind=phase.kind,
                status=state.status,
                iteration_count=state.iteration_count,
                max_iterations=(
                    phase.loop_config.max_iterations if phase.loop_config else None
                ),
                results=state.last_results,
            )
        )
    return RunReport(
        session_id=session.session_id,
        definition_id=session.definition.definition_id,
        status=session.status,
        phases=tuple(phases),
        artifacts=tuple(session.artifacts.latest().values()),
        failed_phase=session.failed_phase,
        failure_reason=session.failure_reason,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )
