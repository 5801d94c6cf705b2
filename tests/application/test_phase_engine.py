"""Tests for PhaseEngine: sequencing, loops, fan-out, gates and aborts."""

import threading
import time

import pytest

from phaseflow.application.cancellation import CancellationToken
from phaseflow.application.phase_engine import PhaseEngine
from phaseflow.domain.exceptions import SessionStateError, UnrecoverableTaskError
from phaseflow.domain.models import (
    Decision,
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
from phaseflow.domain.workflow_event import WorkflowEventType
from phaseflow.infrastructure.invokers.scripted import ScriptedTaskInvoker

PASS = {"passed": True}
REJECT = TaskResult.success({"passed": False}, diagnostics="assertion failed")


def make_engine(scripts, engine_config, event_store=None):
    invoker = ScriptedTaskInvoker(scripts)
    return PhaseEngine(invoker, engine_config, event_store=event_store), invoker


def loop_definition(on_exhausted=OnExhausted.FAIL, followed_by_single=True):
    phases = [
        PhaseSpec(
            "testing",
            PhaseKind.LOOP,
            ("run-tests",),
            loop_config=LoopConfig(3, "judge-tests", on_exhausted),
        )
    ]
    if followed_by_single:
        phases.append(PhaseSpec("finalize", PhaseKind.SINGLE, ("finalize",)))
    return WorkflowDefinition("loop-only", tuple(phases))


class TestLoopPhases:
    """Loop phases through the engine."""

    def test_exhausted_loop_fails_session(self, engine_config):
        """Loop exhausts after 3 attempts with FAIL policy: session FAILED."""
        engine, _ = make_engine(
            {"run-tests": [{}], "judge-tests": [REJECT]}, engine_config
        )
        session = RunSession.create(loop_definition(followed_by_single=False))

        engine.run(session)

        state = session.state_of("testing")
        assert session.status is SessionStatus.FAILED
        assert state.iteration_count == 3
        assert state.status is PhaseStatus.EXHAUSTED
        assert session.failed_phase == "testing"
        assert "assertion failed" in session.failure_reason

    def test_loop_passing_on_second_attempt_advances(self, engine_config):
        """Exit met on attempt 2: iteration_count 2 and the next phase runs."""
        engine, invoker = make_engine(
            {
                "run-tests": [{"ran": 1}],
                "judge-tests": [REJECT, PASS],
                "finalize": [{"merged": True}],
            },
            engine_config,
        )
        session = RunSession.create(loop_definition())

        engine.advance(session)

        assert session.state_of("testing").iteration_count == 2
        assert session.state_of("testing").status is PhaseStatus.COMPLETED
        assert session.current_phase_index == 1
        assert session.status is SessionStatus.RUNNING

        engine.advance(session)

        assert session.status is SessionStatus.SUCCEEDED
        assert invoker.call_count("finalize") == 1

    def test_exhausted_loop_escalates(self, engine_config):
        """ESCALATE policy leaves the session waiting for a decision."""
        engine, _ = make_engine(
            {"run-tests": [{}], "judge-tests": [REJECT]}, engine_config
        )
        session = RunSession.create(loop_definition(OnExhausted.ESCALATE))

        engine.run(session)

        assert session.status is SessionStatus.ESCALATED
        assert not session.status.is_terminal
        assert len(session.state_of("testing").last_results) == 2

    def test_approving_escalation_accepts_final_attempt(self, engine_config):
        """Approve on an escalated loop writes its artifacts and advances."""
        engine, _ = make_engine(
            {
                "run-tests": [{"failures": 1}],
                "judge-tests": [REJECT],
                "finalize": [{}],
            },
            engine_config,
        )
        session = RunSession.create(loop_definition(OnExhausted.ESCALATE))
        engine.run(session)

        engine.resume(session, Decision.approve())

        assert session.current_phase_index == 1
        assert session.artifacts.get("testing.run-tests").content == {"failures": 1}
        engine.run(session)
        assert session.status is SessionStatus.SUCCEEDED

    def test_request_changes_on_escalation_reruns_loop(self, engine_config):
        """RequestChanges on an escalated loop re-runs it fresh with feedback."""
        engine, invoker = make_engine(
            {"run-tests": [{}], "judge-tests": [REJECT, REJECT, REJECT, PASS], "finalize": [{}]},
            engine_config,
        )
        session = RunSession.create(loop_definition(OnExhausted.ESCALATE))
        engine.run(session)

        engine.resume(session, Decision.request_changes("mock the clock"))

        assert session.state_of("testing").iteration_count == 0
        engine.run(session)
        assert session.status is SessionStatus.SUCCEEDED
        assert session.state_of("testing").iteration_count == 1
        rerun = invoker.calls_for("run-tests")[3]
        assert rerun.payload["revision_feedback"] == "mock the clock"

    def test_unrecoverable_error_fails_session(self, engine_config):
        """A fatal invoker error inside a loop fails the session at once."""
        engine, invoker = make_engine(
            {"run-tests": [UnrecoverableTaskError("sandbox gone")], "judge-tests": [PASS]},
            engine_config,
        )
        session = RunSession.create(loop_definition())

        engine.run(session)

        assert session.status is SessionStatus.FAILED
        assert session.state_of("testing").status is PhaseStatus.FAILED
        assert session.state_of("testing").iteration_count == 1
        assert "sandbox gone" in session.failure_reason
        assert invoker.call_count("run-tests") == 1


class TestTaskPhases:
    """Single and fan-out phases."""

    def test_single_phase_writes_artifact(self, engine_config):
        """A successful single phase stores its output under phase.capability."""
        definition = WorkflowDefinition(
            "one", (PhaseSpec("implement", PhaseKind.SINGLE, ("implement",)),)
        )
        engine, _ = make_engine({"implement": [{"patch": "+fix"}]}, engine_config)
        session = RunSession.create(definition)

        engine.run(session)

        assert session.status is SessionStatus.SUCCEEDED
        artifact = session.artifacts.get("implement.implement")
        assert artifact.content == {"patch": "+fix"}
        assert artifact.revision == 1

    def test_fan_out_with_one_timeout_fails_phase(self, engine_config):
        """Capability #2 times out: phase fails, all three results kept."""
        release = threading.Event()

        def hang(_payload):
            release.wait(timeout=5)
            return {}

        definition = WorkflowDefinition(
            "fan",
            (
                PhaseSpec(
                    "explore",
                    PhaseKind.FAN_OUT,
                    ("explore-code", "explore-docs", "explore-tests"),
                    timeout=0.1,
                ),
            ),
        )
        engine, _ = make_engine(
            {"explore-code": [{}], "explore-docs": [hang], "explore-tests": [{}]},
            engine_config,
        )
        session = RunSession.create(definition)
        try:
            engine.run(session)
        finally:
            release.set()

        state = session.state_of("explore")
        assert session.status is SessionStatus.FAILED
        assert state.status is PhaseStatus.FAILED
        assert [r.status for r in state.last_results] == [
            TaskStatus.SUCCESS,
            TaskStatus.TIMEOUT,
            TaskStatus.SUCCESS,
        ]
        assert "explore-docs timeout" in session.failure_reason
        assert len(session.artifacts) == 0

    def test_payload_composition(self, engine_config):
        """Tasks receive session, phase, input and prior artifacts."""
        definition = WorkflowDefinition(
            "two",
            (
                PhaseSpec("plan", PhaseKind.SINGLE, ("plan",)),
                PhaseSpec("implement", PhaseKind.SINGLE, ("implement",)),
            ),
        )
        engine, invoker = make_engine(
            {"plan": [{"steps": 2}], "implement": [{}]}, engine_config
        )
        session = RunSession.create(definition, {"ticket": "ABC-1"})

        engine.run(session)

        (call,) = invoker.calls_for("implement")
        assert call.payload["session_id"] == session.session_id
        assert call.payload["phase_id"] == "implement"
        assert call.payload["input"] == {"ticket": "ABC-1"}
        assert call.payload["artifacts"] == {"plan.plan": {"steps": 2}}
        assert call.payload["revision_feedback"] == ""

    def test_phase_timeout_overrides_default(self, engine_config):
        """A phase timeout is used instead of the engine default."""
        definition = WorkflowDefinition(
            "t", (PhaseSpec("a", PhaseKind.SINGLE, ("a",), timeout=1000.0),)
        )
        engine, invoker = make_engine({"a": [{}]}, engine_config)

        engine.run(RunSession.create(definition))

        (call,) = invoker.calls
        assert call.deadline - time.monotonic() > 100


class TestGates:
    """Approval gates."""

    def test_gate_pauses_without_advancing(self, engine_config, bugfix_definition):
        """Reaching a gate pauses the session at the gate index."""
        engine, _ = make_engine(
            {"implement": [{}], "run-tests": [{}], "judge-tests": [PASS], "finalize": [{}]},
            engine_config,
        )
        session = RunSession.create(bugfix_definition)

        engine.run(session)

        assert session.status is SessionStatus.PAUSED
        assert session.current_phase_index == 2
        assert session.state_of("review").status is PhaseStatus.AWAITING_APPROVAL

    def test_approve_advances_exactly_one(self, engine_config, bugfix_definition):
        """Approve moves from the gate index to gate index + 1."""
        engine, _ = make_engine(
            {"implement": [{}], "run-tests": [{}], "judge-tests": [PASS], "finalize": [{}]},
            engine_config,
        )
        session = RunSession.create(bugfix_definition)
        engine.run(session)
        before = session.current_phase_index

        engine.resume(session, Decision.approve())

        assert session.current_phase_index == before + 1
        assert session.status is SessionStatus.RUNNING
        assert session.state_of("review").status is PhaseStatus.COMPLETED
        engine.run(session)
        assert session.status is SessionStatus.SUCCEEDED

    def test_request_changes_jumps_to_revise_target(self, engine_config):
        """RequestChanges re-executes the target with fresh loop state."""
        definition = WorkflowDefinition(
            "revise",
            (
                PhaseSpec("plan", PhaseKind.SINGLE, ("plan",)),
                PhaseSpec(
                    "testing",
                    PhaseKind.LOOP,
                    ("run-tests",),
                    loop_config=LoopConfig(3, "judge-tests"),
                ),
                PhaseSpec("approve", PhaseKind.GATE, gate_config=GateConfig(1)),
            ),
        )
        engine, invoker = make_engine(
            {
                "plan": [{}],
                "run-tests": [{"run": 1}, {"run": 2}, {"run": 3}],
                "judge-tests": [REJECT, PASS, PASS],
            },
            engine_config,
        )
        session = RunSession.create(definition)
        engine.run(session)
        assert session.state_of("testing").iteration_count == 2

        engine.resume(session, Decision.request_changes("cover the edge case"))

        assert session.current_phase_index == 1
        assert session.status is SessionStatus.RUNNING
        assert session.state_of("testing").iteration_count == 0
        assert session.state_of("approve").status is PhaseStatus.PENDING

        engine.run(session)

        assert session.status is SessionStatus.PAUSED
        assert session.state_of("testing").iteration_count == 1
        assert invoker.call_count("plan") == 1
        rerun = invoker.calls_for("run-tests")[-1]
        assert rerun.payload["revision_feedback"] == "cover the edge case"
        assert session.artifacts.get("testing.run-tests").revision == 2

    def test_default_revise_target_is_preceding_phase(self, engine_config, bugfix_definition):
        """Without a configured target the phase before the gate re-runs."""
        engine, _ = make_engine(
            {"implement": [{}], "run-tests": [{}], "judge-tests": [PASS], "finalize": [{}]},
            engine_config,
        )
        session = RunSession.create(bugfix_definition)
        engine.run(session)

        engine.resume(session, Decision.request_changes("more tests"))

        assert session.current_phase_index == 1

    def test_request_changes_at_leading_gate_rejected(self, engine_config):
        """A first-phase gate has nothing to revise."""
        definition = WorkflowDefinition(
            "confirm-first",
            (
                PhaseSpec("confirm", PhaseKind.GATE, gate_config=GateConfig()),
                PhaseSpec("deploy", PhaseKind.SINGLE, ("deploy",)),
            ),
        )
        engine, _ = make_engine({"deploy": [{}]}, engine_config)
        session = RunSession.create(definition)
        engine.run(session)

        with pytest.raises(SessionStateError, match="no earlier phase"):
            engine.resume(session, Decision.request_changes("?"))
        assert session.status is SessionStatus.PAUSED

    def test_abort_decision_is_terminal(self, engine_config, bugfix_definition):
        """Abort at a gate ends the session as ABORTED."""
        engine, _ = make_engine(
            {"implement": [{}], "run-tests": [{}], "judge-tests": [PASS], "finalize": [{}]},
            engine_config,
        )
        session = RunSession.create(bugfix_definition)
        engine.run(session)

        engine.resume(session, Decision.abort("wrong approach"))

        assert session.status is SessionStatus.ABORTED
        assert session.failure_reason == "wrong approach"
        assert session.state_of("review").status is PhaseStatus.CANCELLED

    def test_resume_requires_pending_decision(self, engine_config, bugfix_definition):
        """resume on a RUNNING session is a state error."""
        engine, _ = make_engine({}, engine_config)
        session = RunSession.create(bugfix_definition)

        with pytest.raises(SessionStateError):
            engine.resume(session, Decision.approve())


class TestAbortAndTerminalStates:
    """Cancellation and monotonic terminal status."""

    def test_abort_mid_fan_out_writes_no_artifacts(self, engine_config):
        """Aborting during a fan-out cancels it and stores nothing for the phase."""
        release = threading.Event()
        started = threading.Event()
        token = CancellationToken()

        def slow(_payload):
            started.set()
            release.wait(timeout=5)
            return {"late": True}

        definition = WorkflowDefinition(
            "abortable",
            (
                PhaseSpec("explore", PhaseKind.FAN_OUT, ("quick", "slow")),
                PhaseSpec("implement", PhaseKind.SINGLE, ("implement",)),
            ),
        )
        engine, invoker = make_engine(
            {"quick": [{"fast": True}], "slow": [slow], "implement": [{}]}, engine_config
        )
        session = RunSession.create(definition)

        def cancel_when_started():
            started.wait(timeout=5)
            token.cancel()

        canceller = threading.Thread(target=cancel_when_started)
        canceller.start()
        try:
            engine.run(session, token)
        finally:
            release.set()
            canceller.join()

        assert session.status is SessionStatus.ABORTED
        assert session.state_of("explore").status is PhaseStatus.CANCELLED
        assert len(session.artifacts) == 0
        assert invoker.call_count("implement") == 0

    def test_advance_on_terminal_session_is_noop(self, engine_config):
        """advance never leaves a terminal status."""
        definition = WorkflowDefinition(
            "one", (PhaseSpec("a", PhaseKind.SINGLE, ("a",)),)
        )
        engine, invoker = make_engine({"a": [TaskResult.failure("nope")]}, engine_config)
        session = RunSession.create(definition)
        engine.run(session)
        assert session.status is SessionStatus.FAILED

        engine.advance(session)

        assert session.status is SessionStatus.FAILED
        assert invoker.call_count("a") == 1

    def test_abort_terminal_session_rejected(self, engine_config):
        """A finished session cannot be aborted."""
        definition = WorkflowDefinition(
            "one", (PhaseSpec("a", PhaseKind.SINGLE, ("a",)),)
        )
        engine, _ = make_engine({"a": [{}]}, engine_config)
        session = RunSession.create(definition)
        engine.run(session)

        with pytest.raises(SessionStateError):
            engine.abort(session)
        assert session.status is SessionStatus.SUCCEEDED


class TestExecutionTrace:
    """Events emitted while driving a session."""

    def test_events_for_loop_and_gate(self, engine_config, bugfix_definition, event_store):
        """Loop attempts, gate and decisions are traced in order."""
        engine, _ = make_engine(
            {
                "implement": [{}],
                "run-tests": [{}],
                "judge-tests": [REJECT, PASS],
                "finalize": [{}],
            },
            engine_config,
            event_store=event_store,
        )
        session = RunSession.create(bugfix_definition)
        engine.run(session)
        engine.resume(session, Decision.approve())
        engine.run(session)

        events = event_store.get_events(session.session_id)
        types = [e.event_type for e in events]
        assert types.count(WorkflowEventType.PHASE_START) == 4
        assert types.count(WorkflowEventType.GATE_OPENED) == 1
        assert types[-1] is WorkflowEventType.SESSION_FINISHED

        attempts = event_store.get_events(
            session.session_id, WorkflowEventType.LOOP_ATTEMPT, "testing"
        )
        assert [(e.attempt, e.verdict) for e in attempts] == [(1, "FAIL"), (2, "PASS")]

        (decision,) = event_store.get_events(
            session.session_id, WorkflowEventType.GATE_DECISION
        )
        assert decision.verdict == "approve"
