"""
Run session state for one workflow execution.

RunSession is the explicit, passable state holder of a run: no ambient or
global "current workflow" exists, so independent sessions never share
mutable state. It is mutated only by the PhaseEngine driving it; callers get
frozen SessionSnapshot copies.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from phaseflow.domain.exceptions import SessionStateError
from phaseflow.domain.ledger import ArtifactLedger
from phaseflow.domain.models import (
    Artifact,
    PhaseSpec,
    TaskResult,
    WorkflowDefinition,
)


class PhaseStatus(Enum):
    """Per-phase progress."""

    PENDING = "pending"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"  # Loop consumed all attempts
    FAILED = "failed"  # Single/fan-out task failed, or unrecoverable error
    CANCELLED = "cancelled"  # Session aborted while the phase was running


class SessionStatus(Enum):
    """Session lifecycle. Transitions are monotonic toward a terminal state."""

    RUNNING = "running"
    PAUSED = "paused"  # Waiting at an approval gate
    ESCALATED = "escalated"  # Loop exhausted with on_exhausted=ESCALATE
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def awaits_decision(self) -> bool:
        return self in (SessionStatus.PAUSED, SessionStatus.ESCALATED)


TERMINAL_STATUSES = frozenset(
    {SessionStatus.SUCCEEDED, SessionStatus.FAILED, SessionStatus.ABORTED}
)


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class PhaseState:
    """Mutable per-phase record."""

    iteration_count: int = 0
    last_results: tuple[TaskResult, ...] = ()
    status: PhaseStatus = PhaseStatus.PENDING


@dataclass(frozen=True)
class SessionSnapshot:
    """Copy-on-read view of a RunSession for status and reporting calls."""

    session_id: str
    definition_id: str
    status: SessionStatus
    current_phase_index: int
    current_phase_id: str | None
    phase_states: MappingProxyType[str, PhaseState]
    artifacts: MappingProxyType[str, Artifact]
    failed_phase: str | None
    failure_reason: str
    updated_at: str

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass
class RunSession:
    """Top-level state holder for one workflow execution."""

    session_id: str
    definition: WorkflowDefinition
    initial_input: dict[str, Any] = field(default_factory=dict)
    current_phase_index: int = 0
    phase_states: dict[str, PhaseState] = field(default_factory=dict)
    status: SessionStatus = SessionStatus.RUNNING
    artifacts: ArtifactLedger = field(default_factory=ArtifactLedger)
    revision_feedback: dict[str, str] = field(default_factory=dict)
    failed_phase: str | None = None
    failure_reason: str = ""
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def __post_init__(self) -> None:
        for phase_id in self.definition.phase_ids:
            self.phase_states.setdefault(phase_id, PhaseState())

    @classmethod
    def create(
        cls, definition: WorkflowDefinition, initial_input: dict[str, Any] | None = None
    ) -> "RunSession":
        """Launch a fresh session for a definition."""
        return cls(
            session_id=str(uuid.uuid4()),
            definition=definition,
            initial_input=dict(initial_input or {}),
        )

    @property
    def current_phase(self) -> PhaseSpec | None:
        if self.current_phase_index >= len(self.definition.phases):
            return None
        return self.definition.phases[self.current_phase_index]

    def state_of(self, phase_id: str) -> PhaseState:
        return self.phase_states[phase_id]

    def transition(self, status: SessionStatus) -> None:
        """
        Move to a new status.

        Raises:
            SessionStateError: If the session is already terminal
        """
        if self.status.is_terminal and status is not self.status:
            raise SessionStateError(
                self.session_id,
                self.status.value,
                f"cannot move to {status.value} from a terminal status",
            )
        self.status = status
        self.touch()

    def fail(self, phase_id: str | None, reason: str) -> None:
        """Terminate as FAILED, remembering where and why."""
        if self.status.is_terminal:
            raise SessionStateError(
                self.session_id, self.status.value, "cannot fail a finished session"
            )
        self.failed_phase = phase_id
        self.failure_reason = reason
        self.transition(SessionStatus.FAILED)

    def reset_phase(self, phase_id: str) -> None:
        """Give a phase a fresh state before it re-executes."""
        self.phase_states[phase_id] = PhaseState()

    def touch(self) -> None:
        self.updated_at = _now()

    def snapshot(self) -> SessionSnapshot:
        """Detached, read-only copy of the current state."""
        current = self.current_phase
        return SessionSnapshot(
            session_id=self.session_id,
            definition_id=self.definition.definition_id,
            status=self.status,
            current_phase_index=self.current_phase_index,
            current_phase_id=current.phase_id if current else None,
            phase_states=MappingProxyType(
                {pid: replace(state) for pid, state in self.phase_states.items()}
            ),
            artifacts=MappingProxyType(self.artifacts.latest()),
            failed_phase=self.failed_phase,
            failure_reason=self.failure_reason,
            updated_at=self.updated_at,
        )
