"""
Domain layer for the phase orchestration engine.

Contains core business logic with no external dependencies.
"""

from phaseflow.domain.definition import (
    compute_definition_ref,
    definition_from_dict,
    definition_to_dict,
)
from phaseflow.domain.exceptions import (
    ArtifactConflictError,
    DefinitionError,
    DefinitionIntegrityError,
    SessionNotFoundError,
    SessionStateError,
    UnknownDefinitionError,
    UnrecoverableTaskError,
)
from phaseflow.domain.interfaces import (
    ApprovalPromptInterface,
    SessionStoreInterface,
    TaskInvokerInterface,
    WorkflowEventStoreInterface,
)
from phaseflow.domain.ledger import ArtifactLedger
from phaseflow.domain.models import (
    REVIEW_LOOP_ITERATIONS,
    TESTING_LOOP_ITERATIONS,
    Artifact,
    Decision,
    DecisionKind,
    EngineConfig,
    GateConfig,
    LoopConfig,
    LoopExhausted,
    LoopOutcome,
    LoopPassed,
    OnExhausted,
    PhaseKind,
    PhaseSpec,
    TaskInvocation,
    TaskResult,
    TaskStatus,
    WorkflowDefinition,
)
from phaseflow.domain.session import (
    PhaseState,
    PhaseStatus,
    RunSession,
    SessionSnapshot,
    SessionStatus,
)

__all__ = [
    # Models
    "Artifact",
    "Decision",
    "DecisionKind",
    "EngineConfig",
    "GateConfig",
    "LoopConfig",
    "LoopExhausted",
    "LoopOutcome",
    "LoopPassed",
    "OnExhausted",
    "PhaseKind",
    "PhaseSpec",
    "TaskInvocation",
    "TaskResult",
    "TaskStatus",
    "WorkflowDefinition",
    "TESTING_LOOP_ITERATIONS",
    "REVIEW_LOOP_ITERATIONS",
    # Session
    "ArtifactLedger",
    "PhaseState",
    "PhaseStatus",
    "RunSession",
    "SessionSnapshot",
    "SessionStatus",
    # Definition helpers
    "compute_definition_ref",
    "definition_from_dict",
    "definition_to_dict",
    # Interfaces
    "ApprovalPromptInterface",
    "SessionStoreInterface",
    "TaskInvokerInterface",
    "WorkflowEventStoreInterface",
    # Exceptions
    "ArtifactConflictError",
    "DefinitionError",
    "DefinitionIntegrityError",
    "SessionNotFoundError",
    "SessionStateError",
    "UnknownDefinitionError",
    "UnrecoverableTaskError",
]
