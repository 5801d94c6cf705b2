"""
Domain models for the phase orchestration engine.

Pure data structures describing workflow definitions, task invocations,
their results, artifacts and human decisions. Value objects are frozen
dataclasses; the mutable per-run records live in `phaseflow.domain.session`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from phaseflow.domain.exceptions import DefinitionError

# Iteration caps observed in the development workflows. These are defaults for
# definition authors only; the engine reads the cap from each LoopConfig.
TESTING_LOOP_ITERATIONS = 3
REVIEW_LOOP_ITERATIONS = 2


# =============================================================================
# WORKFLOW DEFINITION
# =============================================================================


class PhaseKind(Enum):
    """Closed set of phase variants."""

    SINGLE = "single"  # One task invocation
    FAN_OUT = "fan_out"  # Concurrent independent invocations
    LOOP = "loop"  # Bounded retry loop with exit evaluation
    GATE = "gate"  # Pause for an external decision


class OnExhausted(Enum):
    """Policy applied when a loop consumes all attempts."""

    ESCALATE = "escalate"  # Surface to the caller for a human decision
    FAIL = "fail"  # Terminate the session as failed


@dataclass(frozen=True)
class LoopConfig:
    """Bounds and exit condition of a loop phase."""

    max_iterations: int
    exit_capability: str
    on_exhausted: OnExhausted = OnExhausted.FAIL

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise DefinitionError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if not self.exit_capability:
            raise DefinitionError("exit_capability must be a non-empty name")


@dataclass(frozen=True)
class GateConfig:
    """Approval gate settings.

    revise_target is the phase index re-entered on RequestChanges.
    None means the phase immediately preceding the gate.
    """

    revise_target: int | None = None


@dataclass(frozen=True)
class PhaseSpec:
    """One ordered step of a workflow."""

    phase_id: str
    kind: PhaseKind
    capabilities: tuple[str, ...] = ()
    loop_config: LoopConfig | None = None
    gate_config: GateConfig | None = None
    timeout: float | None = None  # Per-invocation seconds, engine default if None

    def __post_init__(self) -> None:
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        if not self.phase_id:
            raise DefinitionError("phase_id must be a non-empty string")
        where = f"Phase '{self.phase_id}'"

        if self.kind is PhaseKind.SINGLE and len(self.capabilities) != 1:
            raise DefinitionError(
                f"{where}: single phase needs exactly one capability, "
                f"got {len(self.capabilities)}"
            )
        if self.kind is PhaseKind.FAN_OUT and not self.capabilities:
            raise DefinitionError(f"{where}: fan-out phase needs >= 1 capability")
        if self.kind is PhaseKind.LOOP:
            if self.loop_config is None:
                raise DefinitionError(f"{where}: loop phase requires loop_config")
            if not self.capabilities:
                raise DefinitionError(f"{where}: loop phase needs a body capability")
        if self.kind is PhaseKind.GATE:
            if self.gate_config is None:
                raise DefinitionError(f"{where}: gate phase requires gate_config")
            if self.capabilities:
                raise DefinitionError(f"{where}: gate phase takes no capabilities")

        if self.loop_config is not None and self.kind is not PhaseKind.LOOP:
            raise DefinitionError(f"{where}: loop_config on a {self.kind.value} phase")
        if self.gate_config is not None and self.kind is not PhaseKind.GATE:
            raise DefinitionError(f"{where}: gate_config on a {self.kind.value} phase")
        if any(not c for c in self.capabilities):
            raise DefinitionError(f"{where}: capability names must be non-empty")
        if self.timeout is not None and self.timeout <= 0:
            raise DefinitionError(f"{where}: timeout must be > 0, got {self.timeout}")


@dataclass(frozen=True)
class WorkflowDefinition:
    """Ordered sequence of phases. Immutable once a run starts."""

    definition_id: str
    phases: tuple[PhaseSpec, ...]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.definition_id:
            raise DefinitionError("definition_id must be a non-empty string")
        if not self.phases:
            raise DefinitionError(
                f"Workflow '{self.definition_id}' must have at least one phase"
            )

        seen: set[str] = set()
        for index, phase in enumerate(self.phases):
            if phase.phase_id in seen:
                raise DefinitionError(
                    f"Workflow '{self.definition_id}': duplicate phase id "
                    f"'{phase.phase_id}'"
                )
            seen.add(phase.phase_id)

            if phase.kind is PhaseKind.GATE and phase.gate_config is not None:
                target = phase.gate_config.revise_target
                if target is None and index == 0:
                    # Nothing precedes the gate, so RequestChanges has no target
                    continue
                if target is not None and not 0 <= target < index:
                    raise DefinitionError(
                        f"Gate '{phase.phase_id}' at index {index}: revise_target "
                        f"{target} must point to an earlier phase"
                    )

    def index_of(self, phase_id: str) -> int:
        """Return the position of a phase by id."""
        for index, phase in enumerate(self.phases):
            if phase.phase_id == phase_id:
                return index
        raise KeyError(f"Phase not found: {phase_id}")

    @property
    def phase_ids(self) -> tuple[str, ...]:
        return tuple(p.phase_id for p in self.phases)


# =============================================================================
# TASK INVOCATION AND RESULT
# =============================================================================


class TaskStatus(Enum):
    """Outcome of a single task invocation."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class TaskInvocation:
    """One concrete call to a capability within an attempt/fan-out slot."""

    invocation_id: str
    capability: str
    payload: dict[str, Any]
    attempt: int
    deadline: float | None  # time.monotonic() value, None for no deadline
    phase_id: str = ""
    session_id: str = ""


@dataclass(frozen=True)
class TaskResult:
    """Immutable result of a task invocation."""

    invocation_id: str
    capability: str
    status: TaskStatus
    output: dict[str, Any] = field(default_factory=dict)
    diagnostics: str = ""
    fatal: bool = False  # Unrecoverable - abort loops instead of retrying

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.SUCCESS

    @classmethod
    def success(
        cls, output: dict[str, Any] | None = None, diagnostics: str = ""
    ) -> "TaskResult":
        """Build an unbound successful result (the dispatcher binds identity)."""
        return cls("", "", TaskStatus.SUCCESS, dict(output or {}), diagnostics)

    @classmethod
    def failure(cls, diagnostics: str, output: dict[str, Any] | None = None) -> "TaskResult":
        """Build an unbound failed result."""
        return cls("", "", TaskStatus.FAILURE, dict(output or {}), diagnostics)


# =============================================================================
# ARTIFACTS
# =============================================================================


def artifact_key(phase_id: str, capability: str) -> str:
    """Artifact keys are unique per phase-id + capability pair."""
    return f"{phase_id}.{capability}"


@dataclass(frozen=True)
class Artifact:
    """Immutable, phase-attributed output value."""

    key: str
    content: Any
    produced_by_phase: str
    capability: str
    revision: int  # 1 for the first write, +1 per re-execution of the phase
    created_at: str  # ISO timestamp


# =============================================================================
# DECISIONS AND LOOP OUTCOMES
# =============================================================================


class DecisionKind(Enum):
    """External decision resuming a paused or escalated session."""

    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    ABORT = "abort"


@dataclass(frozen=True)
class Decision:
    """Approval gate decision supplied by the external caller."""

    kind: DecisionKind
    feedback: str = ""

    @classmethod
    def approve(cls) -> "Decision":
        return cls(DecisionKind.APPROVE)

    @classmethod
    def request_changes(cls, feedback: str) -> "Decision":
        return cls(DecisionKind.REQUEST_CHANGES, feedback)

    @classmethod
    def abort(cls, reason: str = "") -> "Decision":
        return cls(DecisionKind.ABORT, reason)


@dataclass(frozen=True)
class LoopPassed:
    """Exit condition met on attempt `attempts`."""

    results: tuple[TaskResult, ...]
    attempts: int


@dataclass(frozen=True)
class LoopExhausted:
    """All attempts consumed without meeting the exit condition."""

    results: tuple[TaskResult, ...]  # Final attempt only
    attempts: int
    feedback_history: tuple[str, ...]


LoopOutcome = LoopPassed | LoopExhausted


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class EngineConfig:
    """Typed engine settings. Unknown fields are rejected at construction."""

    max_workers: int = 8  # Threads per fan-out dispatch
    default_task_timeout: float | None = 600.0  # Seconds; None disables deadlines
    poll_interval: float = 0.05  # Seconds between cancellation checks
    session_workers: int = 4  # Sessions driven concurrently by a runner

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.session_workers < 1:
            raise ValueError(
                f"session_workers must be >= 1, got {self.session_workers}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.default_task_timeout is not None and self.default_task_timeout <= 0:
            raise ValueError(
                "default_task_timeout must be > 0 or None, "
                f"got {self.default_task_timeout}"
            )

