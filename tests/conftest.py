"""Shared pytest fixtures for phaseflow tests."""

import pytest

from phaseflow.domain.models import (
    REVIEW_LOOP_ITERATIONS,
    TESTING_LOOP_ITERATIONS,
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
from phaseflow.domain.session import PhaseStatus, RunSession, SessionStatus
from phaseflow.infrastructure.persistence.memory import InMemorySessionStore
from phaseflow.infrastructure.persistence.workflow_events import (
    InMemoryWorkflowEventStore,
)


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine settings tuned for fast tests."""
    return EngineConfig(
        max_workers=4, default_task_timeout=5.0, poll_interval=0.01, session_workers=2
    )


@pytest.fixture
def bugfix_definition() -> WorkflowDefinition:
    """implement -> testing loop (escalates) -> review gate -> finalize."""
    return WorkflowDefinition(
        definition_id="bugfix",
        description="Fix a reported defect",
        phases=(
            PhaseSpec("implement", PhaseKind.SINGLE, ("implement",)),
            PhaseSpec(
                "testing",
                PhaseKind.LOOP,
                ("run-tests",),
                loop_config=LoopConfig(
                    TESTING_LOOP_ITERATIONS, "judge-tests", OnExhausted.ESCALATE
                ),
            ),
            PhaseSpec("review", PhaseKind.GATE, gate_config=GateConfig()),
            PhaseSpec("finalize", PhaseKind.SINGLE, ("finalize",)),
        ),
    )


@pytest.fixture
def feature_definition() -> WorkflowDefinition:
    """Fan-out exploration, implementation, bounded review loop that fails."""
    return WorkflowDefinition(
        definition_id="feature",
        phases=(
            PhaseSpec(
                "explore", PhaseKind.FAN_OUT, ("explore-code", "explore-docs", "explore-tests")
            ),
            PhaseSpec("implement", PhaseKind.SINGLE, ("implement",)),
            PhaseSpec(
                "review",
                PhaseKind.LOOP,
                ("review-code",),
                loop_config=LoopConfig(REVIEW_LOOP_ITERATIONS, "judge-review"),
            ),
        ),
    )


@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Create an in-memory session store."""
    return InMemorySessionStore()


@pytest.fixture
def event_store() -> InMemoryWorkflowEventStore:
    """Create an in-memory workflow event store."""
    return InMemoryWorkflowEventStore()


@pytest.fixture
def paused_session(bugfix_definition) -> RunSession:
    """A bugfix session paused at its review gate, with two revisions of output."""
    session = RunSession.create(bugfix_definition, {"issue": "NPE in parser"})
    session.artifacts.write("implement", "implement", {"patch": "+guard"})
    session.artifacts.write("testing", "run-tests", {"failures": 2})
    session.artifacts.write("testing", "run-tests", {"failures": 0})

    session.state_of("implement").status = PhaseStatus.COMPLETED
    session.state_of("implement").iteration_count = 1
    testing = session.state_of("testing")
    testing.status = PhaseStatus.COMPLETED
    testing.iteration_count = 2
    testing.last_results = (
        TaskResult("inv-1", "run-tests", TaskStatus.SUCCESS, {"failures": 0}),
        TaskResult(
            "inv-2", "judge-tests", TaskStatus.SUCCESS, {"passed": True}, "all green"
        ),
    )
    session.state_of("review").status = PhaseStatus.AWAITING_APPROVAL
    session.current_phase_index = 2
    session.revision_feedback["implement"] = "keep the public API"
    session.transition(SessionStatus.PAUSED)
    return session
