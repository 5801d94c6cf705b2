"""
JSON-compatible (de)serialization of RunSession checkpoints.

The stored form embeds the workflow definition and its content reference so
a restore can detect that the registered definition has since changed.
"""

from typing import Any

from phaseflow.domain.definition import (
    compute_definition_ref,
    definition_from_dict,
    definition_to_dict,
)
from phaseflow.domain.ledger import ArtifactLedger
from phaseflow.domain.models import Artifact, TaskResult, TaskStatus
from phaseflow.domain.session import PhaseState, PhaseStatus, RunSession, SessionStatus

SCHEMA_VERSION = "1.0"


def _result_to_dict(result: TaskResult) -> dict[str, Any]:
    return {
        "invocation_id": result.invocation_id,
        "capability": result.capability,
        "status": result.status.value,
        "output": result.output,
        "diagnostics": result.diagnostics,
        "fatal": result.fatal,
    }


def _dict_to_result(data: dict[str, Any]) -> TaskResult:
    return TaskResult(
        invocation_id=data["invocation_id"],
        capability=data["capability"],
        status=TaskStatus(data["status"]),
        output=data.get("output") or {},
        diagnostics=data.get("diagnostics", ""),
        fatal=data.get("fatal", False),
    )


def _artifact_to_dict(artifact: Artifact) -> dict[str, Any]:
    return {
        "key": artifact.key,
        "content": artifact.content,
        "produced_by_phase": artifact.produced_by_phase,
        "capability": artifact.capability,
        "revision": artifact.revision,
        "created_at": artifact.created_at,
    }


def _dict_to_artifact(data: dict[str, Any]) -> Artifact:
    return Artifact(
        key=data["key"],
        content=data["content"],
        produced_by_phase=data["produced_by_phase"],
        capability=data["capability"],
        revision=data["revision"],
        created_at=data["created_at"],
    )


def session_to_dict(session: RunSession) -> dict[str, Any]:
    """Serialize a session, including every artifact revision."""
    return {
        "version": SCHEMA_VERSION,
        "session_id": session.session_id,
        "definition": definition_to_dict(session.definition),
        "definition_ref": compute_definition_ref(session.definition),
        "initial_input": session.initial_input,
        "current_phase_index": session.current_phase_index,
        "status": session.status.value,
        "phase_states": {
            phase_id: {
                "iteration_count": state.iteration_count,
                "status": state.status.value,
                "last_results": [_result_to_dict(r) for r in state.last_results],
            }
            for phase_id, state in session.phase_states.items()
        },
        "artifacts": [_artifact_to_dict(a) for a in session.artifacts.history()],
        "revision_feedback": dict(session.revision_feedback),
        "failed_phase": session.failed_phase,
        "failure_reason": session.failure_reason,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }


def session_from_dict(data: dict[str, Any]) -> RunSession:
    """Rebuild a session from its stored form.

    Raises:
        DefinitionError: If the embedded definition is malformed
        ArtifactConflictError: If the stored artifact history is out of sequence
    """
    definition = definition_from_dict(data["definition"])
    phase_states = {
        phase_id: PhaseState(
            iteration_count=state["iteration_count"],
            status=PhaseStatus(state["status"]),
            last_results=tuple(_dict_to_result(r) for r in state["last_results"]),
        )
        for phase_id, state in data["phase_states"].items()
    }
    return RunSession(
        session_id=data["session_id"],
        definition=definition,
        initial_input=data.get("initial_input") or {},
        current_phase_index=data["current_phase_index"],
        phase_states=phase_states,
        status=SessionStatus(data["status"]),
        artifacts=ArtifactLedger(_dict_to_artifact(a) for a in data["artifacts"]),
        revision_feedback=dict(data.get("revision_feedback") or {}),
        failed_phase=data.get("failed_phase"),
        failure_reason=data.get("failure_reason", ""),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )
