"""
phaseflow: phase orchestration and bounded-loop execution engine.

Runs multi-phase development workflows (bugfix, feature, deploy, ...) whose
work is delegated to external task-runners: ordered phases, concurrent
fan-out, bounded retry loops with informed feedback, and approval gates.

Example:
    from phaseflow import (
        PhaseEngine, WorkflowRunner, Decision, definition_from_dict,
    )
    from phaseflow.infrastructure import CapabilityRegistry

    registry = CapabilityRegistry()
    registry.register("implement", implement_fix)
    registry.register("run-tests", run_tests)
    registry.register("judge-tests", lambda payload: {"passed": True})

    runner = WorkflowRunner(PhaseEngine(registry))
    runner.register(definition_from_dict(bugfix_json))
    session_id = runner.start("bugfix", {"issue": "crash on empty input"})
    snapshot = runner.wait(session_id)
    if snapshot.status.awaits_decision:
        runner.resume(session_id, Decision.approve())
"""

# Application layer (orchestration)
from phaseflow.application import (
    ApprovalGate,
    CancellationToken,
    FanOutDispatcher,
    LoopController,
    PhaseEngine,
    RunReport,
    WorkflowRunner,
    build_report,
)

# Definition serialization
from phaseflow.domain.definition import (
    compute_definition_ref,
    definition_from_dict,
    definition_to_dict,
)

# Domain exceptions
from phaseflow.domain.exceptions import (
    DefinitionError,
    DefinitionIntegrityError,
    SessionNotFoundError,
    SessionStateError,
    UnknownDefinitionError,
    UnrecoverableTaskError,
)

# Domain interfaces (for type hints and custom implementations)
from phaseflow.domain.interfaces import (
    ApprovalPromptInterface,
    SessionStoreInterface,
    TaskInvokerInterface,
    WorkflowEventStoreInterface,
)

# Domain models (most commonly used)
from phaseflow.domain.models import (
    REVIEW_LOOP_ITERATIONS,
    TESTING_LOOP_ITERATIONS,
    Artifact,
    Decision,
    DecisionKind,
    EngineConfig,
    GateConfig,
    LoopConfig,
    OnExhausted,
    PhaseKind,
    PhaseSpec,
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

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Domain models
    "Artifact",
    "Decision",
    "DecisionKind",
    "EngineConfig",
    "GateConfig",
    "LoopConfig",
    "OnExhausted",
    "PhaseKind",
    "PhaseSpec",
    "TaskResult",
    "TaskStatus",
    "WorkflowDefinition",
    "TESTING_LOOP_ITERATIONS",
    "REVIEW_LOOP_ITERATIONS",
    # Session
    "PhaseState",
    "PhaseStatus",
    "RunSession",
    "SessionSnapshot",
    "SessionStatus",
    # Definitions
    "compute_definition_ref",
    "definition_from_dict",
    "definition_to_dict",
    # Interfaces
    "ApprovalPromptInterface",
    "SessionStoreInterface",
    "TaskInvokerInterface",
    "WorkflowEventStoreInterface",
    # Exceptions
    "DefinitionError",
    "DefinitionIntegrityError",
    "SessionNotFoundError",
    "SessionStateError",
    "UnknownDefinitionError",
    "UnrecoverableTaskError",
    # Application
    "ApprovalGate",
    "CancellationToken",
    "FanOutDispatcher",
    "LoopController",
    "PhaseEngine",
    "RunReport",
    "WorkflowRunner",
    "build_report",
]
