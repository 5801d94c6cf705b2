"""
Workflow definition serialization and reference hashing.

Implements:
- dict <-> WorkflowDefinition conversion (the static definition source schema)
- D_ref content-addressed definition hashing, used to verify on restore that a
  stored session still matches the definition it was started with
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from phaseflow.domain.exceptions import DefinitionError
from phaseflow.domain.models import (
    GateConfig,
    LoopConfig,
    OnExhausted,
    PhaseKind,
    PhaseSpec,
    WorkflowDefinition,
)


def definition_to_dict(definition: WorkflowDefinition) -> dict[str, Any]:
    """Serialize a definition to a JSON-compatible dict."""
    phases = []
    for phase in definition.phases:
        data: dict[str, Any] = {
            "id": phase.phase_id,
            "kind": phase.kind.value,
            "capabilities": list(phase.capabilities),
        }
        if phase.loop_config is not None:
            data["loop"] = {
                "max_iterations": phase.loop_config.max_iterations,
                "exit_capability": phase.loop_config.exit_capability,
                "on_exhausted": phase.loop_config.on_exhausted.value,
            }
        if phase.gate_config is not None:
            data["gate"] = {"revise_target": phase.gate_config.revise_target}
        if phase.timeout is not None:
            data["timeout"] = phase.timeout
        phases.append(data)

    return {
        "id": definition.definition_id,
        "description": definition.description,
        "phases": phases,
    }


def definition_from_dict(data: dict[str, Any]) -> WorkflowDefinition:
    """Build a definition from its dict form.

    A gate's revise_target may be given as a phase index or as the id of an
    earlier phase.

    Raises:
        DefinitionError: If fields are missing, unknown or inconsistent.
    """
    if not isinstance(data, dict):
        raise DefinitionError(f"Expected dict, got {type(data).__name__}")

    try:
        definition_id = data["id"]
        raw_phases = data["phases"]
    except KeyError as e:
        raise DefinitionError(f"Workflow definition missing field {e}") from e

    if not isinstance(definition_id, str):
        raise DefinitionError(f"Workflow 'id' must be a string, got {definition_id!r}")
    if not isinstance(raw_phases, list):
        raise DefinitionError(f"Workflow '{definition_id}': 'phases' must be a list")

    phase_ids = [p.get("id") for p in raw_phases if isinstance(p, dict)]
    phases = tuple(
        _phase_from_dict(raw, index, phase_ids)
        for index, raw in enumerate(raw_phases)
    )
    return WorkflowDefinition(
        definition_id=definition_id,
        phases=phases,
        description=data.get("description", ""),
    )


def _phase_from_dict(raw: Any, index: int, phase_ids: list[str]) -> PhaseSpec:
    if not isinstance(raw, dict):
        raise DefinitionError(f"Phase {index}: expected dict, got {type(raw).__name__}")

    phase_id = raw.get("id")
    if not isinstance(phase_id, str):
        raise DefinitionError(f"Phase {index}: 'id' must be a string, got {phase_id!r}")
    if "kind" not in raw:
        raise DefinitionError(f"Phase '{phase_id}': missing field 'kind'")
    try:
        kind = PhaseKind(raw["kind"])
    except (TypeError, ValueError) as e:
        raise DefinitionError(f"Phase '{phase_id}': unknown kind {raw['kind']!r}") from e

    capabilities = raw.get("capabilities", [])
    if not isinstance(capabilities, list) or not all(
        isinstance(c, str) for c in capabilities
    ):
        raise DefinitionError(
            f"Phase '{phase_id}': 'capabilities' must be a list of strings, "
            f"got {capabilities!r}"
        )

    # bool is an int subclass and never a meaningful timeout
    timeout = raw.get("timeout")
    if timeout is not None and (
        isinstance(timeout, bool) or not isinstance(timeout, (int, float))
    ):
        raise DefinitionError(
            f"Phase '{phase_id}': 'timeout' must be a number, got {timeout!r}"
        )

    loop_config = None
    if "loop" in raw:
        loop = raw["loop"]
        try:
            max_iterations = int(loop["max_iterations"])
            exit_capability = loop["exit_capability"]
            on_exhausted = OnExhausted(loop.get("on_exhausted", "fail"))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DefinitionError(f"Phase '{phase_id}': invalid loop config: {e}") from e
        if not isinstance(exit_capability, str):
            raise DefinitionError(
                f"Phase '{phase_id}': invalid loop config: exit_capability "
                f"must be a string, got {exit_capability!r}"
            )
        loop_config = LoopConfig(max_iterations, exit_capability, on_exhausted)

    gate_config = None
    if "gate" in raw or kind is PhaseKind.GATE:
        gate = raw.get("gate") or {}
        if not isinstance(gate, dict):
            raise DefinitionError(f"Phase '{phase_id}': 'gate' must be an object")
        target = gate.get("revise_target")
        if isinstance(target, str):
            if target not in phase_ids:
                raise DefinitionError(
                    f"Phase '{phase_id}': revise_target '{target}' is not a phase id"
                )
            target = phase_ids.index(target)
        elif target is not None and (
            isinstance(target, bool) or not isinstance(target, int)
        ):
            raise DefinitionError(
                f"Phase '{phase_id}': revise_target must be a phase id or index, "
                f"got {target!r}"
            )
        gate_config = GateConfig(revise_target=target)

    return PhaseSpec(
        phase_id=phase_id,
        kind=kind,
        capabilities=tuple(capabilities),
        loop_config=loop_config,
        gate_config=gate_config,
        timeout=timeout,
    )


def compute_definition_ref(definition: WorkflowDefinition | dict[str, Any]) -> str:
    """Compute content-addressed hash of a workflow definition.

    Produces a deterministic hash by:
    1. Canonical JSON serialization (sorted keys, no whitespace)
    2. SHA-256 hash of the canonical form

    Args:
        definition: Definition object or its dict form.

    Returns:
        Hex-encoded SHA-256 hash string.
    """
    if isinstance(definition, WorkflowDefinition):
        definition = definition_to_dict(definition)
    canonical = json.dumps(definition, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
