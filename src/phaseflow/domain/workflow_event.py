"""Workflow execution trace models."""

from dataclasses import dataclass
from enum import Enum


class WorkflowEventType(str, Enum):
    """Types of workflow execution events."""

    PHASE_START = "PHASE_START"
    PHASE_COMPLETE = "PHASE_COMPLETE"
    PHASE_FAIL = "PHASE_FAIL"
    LOOP_ATTEMPT = "LOOP_ATTEMPT"
    LOOP_EXHAUSTED = "LOOP_EXHAUSTED"
    GATE_OPENED = "GATE_OPENED"
    GATE_DECISION = "GATE_DECISION"
    SESSION_FINISHED = "SESSION_FINISHED"


@dataclass(frozen=True)
class WorkflowEvent:
    """Single workflow state transition.

    Represents an atomic event in the session execution trace,
    capturing state changes for observability and debugging.
    """

    event_id: str
    event_type: WorkflowEventType
    session_id: str
    phase_id: str | None = None
    attempt: int | None = None
    verdict: str | None = None  # "PASS", "FAIL", "EXHAUSTED", decision kind, status
    summary: str = ""
    created_at: str = ""  # ISO 8601
