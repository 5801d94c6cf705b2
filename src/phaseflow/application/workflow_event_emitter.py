"""Workflow event emission service."""

import uuid
from datetime import UTC, datetime

from phaseflow.domain.interfaces import WorkflowEventStoreInterface
from phaseflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


class WorkflowEventEmitter:
    """Emits workflow events to a store.

    Provides convenience methods for emitting common events during a
    session's execution, handling ID generation and timestamps.
    """

    def __init__(
        self, event_store: WorkflowEventStoreInterface, session_id: str
    ) -> None:
        self._store = event_store
        self._session_id = session_id

    def _emit(
        self,
        event_type: WorkflowEventType,
        phase_id: str | None = None,
        attempt: int | None = None,
        verdict: str | None = None,
        summary: str = "",
    ) -> str:
        return self._store.store_event(
            WorkflowEvent(
                event_id=str(uuid.uuid4()),
                event_type=event_type,
                session_id=self._session_id,
                phase_id=phase_id,
                attempt=attempt,
                verdict=verdict,
                summary=summary[:500],
                created_at=self._now(),
            )
        )

    def _now(self) -> str:
        return datetime.now(UTC).isoformat()

    def phase_start(self, phase_id: str, kind: str) -> None:
        """Emit PHASE_START when the engine begins a phase."""
        self._emit(WorkflowEventType.PHASE_START, phase_id, summary=kind)

    def phase_complete(self, phase_id: str, attempt: int | None = None) -> None:
        """Emit PHASE_COMPLETE when a phase's artifacts are written."""
        self._emit(
            WorkflowEventType.PHASE_COMPLETE, phase_id, attempt=attempt, verdict="PASS"
        )

    def phase_fail(self, phase_id: str, reason: str) -> None:
        """Emit PHASE_FAIL when a phase fails the session."""
        self._emit(WorkflowEventType.PHASE_FAIL, phase_id, verdict="FAIL", summary=reason)

    def loop_attempt(
        self, phase_id: str, attempt: int, verdict: str, summary: str = ""
    ) -> None:
        """Emit LOOP_ATTEMPT for every rejected or accepted loop attempt."""
        self._emit(
            WorkflowEventType.LOOP_ATTEMPT,
            phase_id,
            attempt=attempt,
            verdict=verdict,
            summary=summary,
        )

    def loop_exhausted(self, phase_id: str, attempts: int, policy: str) -> None:
        """Emit LOOP_EXHAUSTED when a loop used every attempt."""
        self._emit(
            WorkflowEventType.LOOP_EXHAUSTED,
            phase_id,
            attempt=attempts,
            verdict="EXHAUSTED",
            summary=policy,
        )

    def gate_opened(self, phase_id: str) -> None:
        """Emit GATE_OPENED when the session pauses at a gate."""
        self._emit(WorkflowEventType.GATE_OPENED, phase_id)

    def gate_decision(self, phase_id: str, kind: str, feedback: str = "") -> None:
        """Emit GATE_DECISION when a paused or escalated session is resumed."""
        self._emit(
            WorkflowEventType.GATE_DECISION, phase_id, verdict=kind, summary=feedback
        )

    def session_finished(self, status: str, reason: str = "") -> None:
        """Emit SESSION_FINISHED once the session reaches a terminal status."""
        self._emit(WorkflowEventType.SESSION_FINISHED, verdict=status, summary=reason)
