"""
Application layer for the phase orchestration engine.

Contains the execution machinery that coordinates domain objects: the
fan-out dispatcher, loop controller, approval gate, phase engine and the run
control surface.
"""

from phaseflow.application.approval_gate import ApprovalGate, GateResolution
from phaseflow.application.cancellation import CancellationToken
from phaseflow.application.fan_out import FanOutDispatcher
from phaseflow.application.loop_controller import LoopController, exit_condition_met
from phaseflow.application.phase_engine import PhaseEngine
from phaseflow.application.report import PhaseReport, RunReport, build_report
from phaseflow.application.run_service import WorkflowRunner
from phaseflow.application.workflow_event_emitter import WorkflowEventEmitter

__all__ = [
    "ApprovalGate",
    "CancellationToken",
    "FanOutDispatcher",
    "GateResolution",
    "LoopController",
    "PhaseEngine",
    "PhaseReport",
    "RunReport",
    "WorkflowEventEmitter",
    "WorkflowRunner",
    "build_report",
    "exit_condition_met",
]
