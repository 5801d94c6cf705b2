"""
ApprovalGate: turns an external decision into a session transition.

The gate itself never waits. The PhaseEngine pauses the session and returns
control to the caller; a later resume() supplies the Decision and the gate
resolves where execution continues.
"""

import logging
from dataclasses import dataclass

from phaseflow.domain.models import Decision, DecisionKind, PhaseKind, WorkflowDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateResolution:
    """Where a decision sends the session."""

    abort: bool
    next_index: int
    reset_phases: tuple[str, ...] = ()  # Phases re-executing from a fresh state
    feedback_phase: str | None = None  # Phase whose payload receives the feedback
    feedback: str = ""


class ApprovalGate:
    """
    Decision policy for gate phases and escalated loops.

    - APPROVE: continue with the phase after the paused one
    - REQUEST_CHANGES: jump back to the revise target and re-execute from there
    - ABORT: terminate the session
    """

    def revise_target(self, definition: WorkflowDefinition, gate_index: int) -> int | None:
        """
        Phase index a RequestChanges decision re-enters.

        An explicit GateConfig.revise_target wins; otherwise the phase
        immediately preceding the gate. None when the gate is the first phase.
        """
        phase = definition.phases[gate_index]
        if phase.gate_config is not None and phase.gate_config.revise_target is not None:
            return phase.gate_config.revise_target
        if gate_index == 0:
            return None
        return gate_index - 1

    def resolve(
        self, definition: WorkflowDefinition, index: int, decision: Decision
    ) -> GateResolution:
        """
        Resolve a decision taken at the phase at `index`.

        For a gate phase RequestChanges jumps to its revise target; for an
        escalated loop phase it re-runs the loop itself.

        Raises:
            ValueError: If RequestChanges targets a gate with nothing to revise
        """
        phase = definition.phases[index]
        logger.info(
            "Decision %s at phase %s", decision.kind.value, phase.phase_id
        )

        if decision.kind is DecisionKind.ABORT:
            return GateResolution(abort=True, next_index=index, feedback=decision.feedback)

        if decision.kind is DecisionKind.APPROVE:
            return GateResolution(abort=False, next_index=index + 1)

        if phase.kind is PhaseKind.GATE:
            target = self.revise_target(definition, index)
            if target is None:
                raise ValueError(
                    f"Gate '{phase.phase_id}' has no earlier phase to revise"
                )
        else:
            target = index

        reset = tuple(p.phase_id for p in definition.phases[target : index + 1])
        return GateResolution(
            abort=False,
            next_index=target,
            reset_phases=reset,
            feedback_phase=definition.phases[target].phase_id,
            feedback=decision.feedback,
        )
