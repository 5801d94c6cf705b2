"""
PhaseEngine: walks a RunSession through its workflow definition.

Owns all mutation of RunSession and PhaseState. Each advance() executes the
current phase to completion or suspension; gates and escalations suspend by
returning, and a later resume() applies the external decision.
"""

import copy
import logging
from typing import Any

from phaseflow.application.approval_gate import ApprovalGate
from phaseflow.application.cancellation import CancellationToken
from phaseflow.application.fan_out import FanOutDispatcher
from phaseflow.application.loop_controller import LoopController
from phaseflow.application.workflow_event_emitter import WorkflowEventEmitter
from phaseflow.domain.exceptions import SessionStateError, UnrecoverableTaskError
from phaseflow.domain.interfaces import TaskInvokerInterface, WorkflowEventStoreInterface
from phaseflow.domain.models import (
    Decision,
    DecisionKind,
    EngineConfig,
    LoopPassed,
    OnExhausted,
    PhaseKind,
    PhaseSpec,
    TaskResult,
)
from phaseflow.domain.session import PhaseState, PhaseStatus, RunSession, SessionStatus

logger = logging.getLogger(__name__)


class PhaseEngine:
    """
    Sequential phase executor.

    One engine may drive many sessions (it holds no per-session state), but a
    given session must only ever be driven by one thread at a time.
    """

    def __init__(
        self,
        invoker: TaskInvokerInterface,
        config: EngineConfig | None = None,
        event_store: WorkflowEventStoreInterface | None = None,
        approval_gate: ApprovalGate | None = None,
    ):
        """
        Args:
            invoker: Executes capabilities for every phase kind
            config: Engine settings (defaults to EngineConfig())
            event_store: Optional sink for the execution trace
            approval_gate: Decision policy (defaults to ApprovalGate())
        """
        self._config = config or EngineConfig()
        self._dispatcher = FanOutDispatcher(
            invoker,
            max_workers=self._config.max_workers,
            poll_interval=self._config.poll_interval,
        )
        self._loop_controller = LoopController(self._dispatcher)
        self._gate = approval_gate or ApprovalGate()
        self._event_store = event_store

    @property
    def config(self) -> EngineConfig:
        return self._config

    # =========================================================================
    # Driving
    # =========================================================================

    def advance(
        self, session: RunSession, cancellation: CancellationToken | None = None
    ) -> RunSession:
        """
        Execute the current phase to completion or suspension.

        A session that is not RUNNING is returned unchanged.

        Args:
            session: Session to drive (mutated in place)
            cancellation: Token checked before and after the phase runs

        Returns:
            The same session
        """
        if session.status is not SessionStatus.RUNNING:
            return session

        if cancellation is not None and cancellation.cancelled:
            return self.abort(session, cancellation.reason or "Aborted")

        phase = session.current_phase
        if phase is None:
            self._finish(session)
            return session

        state = session.state_of(phase.phase_id)
        emitter = self._emitter(session)
        logger.info(
            "Session %s: phase %d/%d %s (%s)",
            session.session_id,
            session.current_phase_index + 1,
            len(session.definition.phases),
            phase.phase_id,
            phase.kind.value,
        )
        if emitter:
            emitter.phase_start(phase.phase_id, phase.kind.value)

        if phase.kind is PhaseKind.GATE:
            state.status = PhaseStatus.AWAITING_APPROVAL
            session.transition(SessionStatus.PAUSED)
            logger.info(
                "Session %s paused at gate %s", session.session_id, phase.phase_id
            )
            if emitter:
                emitter.gate_opened(phase.phase_id)
            return session

        state.status = PhaseStatus.RUNNING
        session.touch()

        try:
            if phase.kind is PhaseKind.LOOP:
                self._run_loop_phase(session, phase, state, cancellation)
            else:
                self._run_task_phase(session, phase, state, cancellation)
        except UnrecoverableTaskError as e:
            state.last_results = tuple(e.results)
            state.status = PhaseStatus.FAILED
            self._fail(session, phase, str(e))

        return session

    def run(
        self, session: RunSession, cancellation: CancellationToken | None = None
    ) -> RunSession:
        """Advance until the session leaves RUNNING (suspended or terminal)."""
        while session.status is SessionStatus.RUNNING:
            self.advance(session, cancellation)
        return session

    def _run_task_phase(
        self,
        session: RunSession,
        phase: PhaseSpec,
        state: PhaseState,
        cancellation: CancellationToken | None,
    ) -> None:
        """SINGLE and FAN_OUT: one dispatch, every task must succeed."""
        results = tuple(
            self._dispatcher.dispatch(
                phase.capabilities,
                self._compose_payload(session, phase),
                timeout=self._timeout_for(phase),
                phase_id=phase.phase_id,
                session_id=session.session_id,
                cancellation=cancellation,
            )
        )
        state.iteration_count = 1
        state.last_results = results

        if self._cancelled(session, state, cancellation):
            return

        failed = [r for r in results if not r.succeeded]
        if failed:
            state.status = PhaseStatus.FAILED
            reason = "; ".join(
                f"{r.capability} {r.status.value}: {r.diagnostics}" for r in failed
            )
            self._fail(session, phase, reason)
            return

        self._complete(session, phase, state, results)

    def _run_loop_phase(
        self,
        session: RunSession,
        phase: PhaseSpec,
        state: PhaseState,
        cancellation: CancellationToken | None,
    ) -> None:
        """LOOP: bounded retries, then the exhaustion policy."""
        loop_config = phase.loop_config
        assert loop_config is not None  # Guaranteed by PhaseSpec
        emitter = self._emitter(session)

        def on_attempt(attempt: int) -> None:
            state.iteration_count = attempt
            session.touch()

        def on_rejected(attempt: int, diagnostics: str) -> None:
            if emitter:
                emitter.loop_attempt(phase.phase_id, attempt, "FAIL", diagnostics)

        outcome = self._loop_controller.run_loop(
            loop_config,
            phase.capabilities,
            self._compose_payload(session, phase),
            timeout=self._timeout_for(phase),
            phase_id=phase.phase_id,
            session_id=session.session_id,
            cancellation=cancellation,
            on_attempt=on_attempt,
            on_rejected=on_rejected,
        )
        state.last_results = outcome.results

        if self._cancelled(session, state, cancellation):
            return

        if isinstance(outcome, LoopPassed):
            if emitter:
                emitter.loop_attempt(phase.phase_id, outcome.attempts, "PASS")
            self._complete(session, phase, state, outcome.results)
            return

        state.status = PhaseStatus.EXHAUSTED
        logger.warning(
            "Session %s: loop %s exhausted after %d attempt(s), policy %s",
            session.session_id,
            phase.phase_id,
            outcome.attempts,
            loop_config.on_exhausted.value,
        )
        if emitter:
            emitter.loop_exhausted(
                phase.phase_id, outcome.attempts, loop_config.on_exhausted.value
            )

        if loop_config.on_exhausted is OnExhausted.ESCALATE:
            session.transition(SessionStatus.ESCALATED)
            return

        last = outcome.feedback_history[-1] if outcome.feedback_history else ""
        self._fail(
            session,
            phase,
            f"Loop exhausted after {outcome.attempts} attempt(s). {last}".strip(),
        )

    # =========================================================================
    # Decisions
    # =========================================================================

    def resume(self, session: RunSession, decision: Decision) -> RunSession:
        """
        Apply an external decision to a PAUSED or ESCALATED session.

        Only applies the transition; call run() or advance() to continue.

        Raises:
            SessionStateError: If no decision is pending, or RequestChanges
                was given at a gate with nothing to revise
        """
        if not session.status.awaits_decision:
            raise SessionStateError(
                session.session_id, session.status.value, "no decision is pending"
            )

        phase = session.current_phase
        assert phase is not None  # Suspended sessions always sit on a phase
        state = session.state_of(phase.phase_id)

        try:
            resolution = self._gate.resolve(
                session.definition, session.current_phase_index, decision
            )
        except ValueError as e:
            raise SessionStateError(
                session.session_id, session.status.value, str(e)
            ) from e

        emitter = self._emitter(session)
        if emitter:
            emitter.gate_decision(phase.phase_id, decision.kind.value, decision.feedback)

        if resolution.abort:
            return self.abort(session, decision.feedback or f"Aborted at {phase.phase_id}")

        if decision.kind is DecisionKind.APPROVE:
            # An escalated loop's final attempt is accepted as it stands
            accepted = state.last_results if phase.kind is PhaseKind.LOOP else ()
            session.transition(SessionStatus.RUNNING)
            self._complete(session, phase, state, accepted)
            return session

        for phase_id in resolution.reset_phases:
            session.reset_phase(phase_id)
        if resolution.feedback_phase is not None:
            session.revision_feedback[resolution.feedback_phase] = resolution.feedback
        session.current_phase_index = resolution.next_index
        session.transition(SessionStatus.RUNNING)
        logger.info(
            "Session %s: changes requested, revising from %s",
            session.session_id,
            resolution.feedback_phase,
        )
        return session

    def abort(self, session: RunSession, reason: str = "Aborted") -> RunSession:
        """
        Terminate the session as ABORTED.

        Raises:
            SessionStateError: If the session is already terminal
        """
        if session.status.is_terminal:
            raise SessionStateError(
                session.session_id, session.status.value, "cannot abort"
            )

        phase = session.current_phase
        if phase is not None:
            state = session.state_of(phase.phase_id)
            if state.status in (PhaseStatus.RUNNING, PhaseStatus.AWAITING_APPROVAL):
                state.status = PhaseStatus.CANCELLED
        session.failure_reason = reason
        session.transition(SessionStatus.ABORTED)
        logger.info("Session %s aborted: %s", session.session_id, reason)

        emitter = self._emitter(session)
        if emitter:
            emitter.session_finished(session.status.value, reason)
        return session

    # =========================================================================
    # Helpers
    # =========================================================================

    def _compose_payload(self, session: RunSession, phase: PhaseSpec) -> dict[str, Any]:
        return {
            "session_id": session.session_id,
            "phase_id": phase.phase_id,
            "input": copy.deepcopy(session.initial_input),
            "artifacts": session.artifacts.contents(),
            "revision_feedback": session.revision_feedback.get(phase.phase_id, ""),
        }

    def _timeout_for(self, phase: PhaseSpec) -> float | None:
        if phase.timeout is not None:
            return phase.timeout
        return self._config.default_task_timeout

    def _cancelled(
        self,
        session: RunSession,
        state: PhaseState,
        cancellation: CancellationToken | None,
    ) -> bool:
        """Abort instead of writing artifacts when cancellation arrived mid-phase."""
        if cancellation is None or not cancellation.cancelled:
            return False
        reason = cancellation.reason or "Aborted while phase was running"
        self.abort(session, reason)
        return True

    def _complete(
        self,
        session: RunSession,
        phase: PhaseSpec,
        state: PhaseState,
        results: tuple[TaskResult, ...],
    ) -> None:
        """Write artifacts from successful results and move to the next phase."""
        for result in results:
            if result.succeeded:
                session.artifacts.write(phase.phase_id, result.capability, result.output)
        state.status = PhaseStatus.COMPLETED
        session.revision_feedback.pop(phase.phase_id, None)
        session.current_phase_index += 1
        session.touch()

        emitter = self._emitter(session)
        if emitter:
            emitter.phase_complete(phase.phase_id, state.iteration_count or None)
        logger.info("Session %s: phase %s completed", session.session_id, phase.phase_id)

        if session.current_phase is None:
            self._finish(session)

    def _finish(self, session: RunSession) -> None:
        session.transition(SessionStatus.SUCCEEDED)
        logger.info("Session %s succeeded", session.session_id)
        emitter = self._emitter(session)
        if emitter:
            emitter.session_finished(session.status.value)

    def _fail(self, session: RunSession, phase: PhaseSpec, reason: str) -> None:
        session.fail(phase.phase_id, reason)
        logger.warning(
            "Session %s failed at %s: %s", session.session_id, phase.phase_id, reason
        )
        emitter = self._emitter(session)
        if emitter:
            emitter.phase_fail(phase.phase_id, reason)
            emitter.session_finished(session.status.value, reason)

    def _emitter(self, session: RunSession) -> WorkflowEventEmitter | None:
        if self._event_store is None:
            return None
        return WorkflowEventEmitter(self._event_store, session.session_id)
