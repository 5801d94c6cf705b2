"""phaseflow JSON Schema definitions and validation utilities.

Schemas:
    - workflow.schema.json: Workflow definition (ordered phases and their configs)
    - engine.schema.json: Engine settings file

Usage:
    from phaseflow.schemas import validate_workflow

    with open("bugfix.json") as f:
        data = json.load(f)
    validate_workflow(data)  # Raises jsonschema.ValidationError if invalid
"""

from __future__ import annotations

import json
from importlib.resources import files
from typing import Any

import jsonschema


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'workflow.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("phaseflow.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_workflow_schema() -> dict[str, Any]:
    """Get the workflow definition schema."""
    return _load_schema("workflow.schema.json")


def get_engine_schema() -> dict[str, Any]:
    """Get the engine settings schema."""
    return _load_schema("engine.schema.json")


def validate_workflow(data: dict[str, Any]) -> None:
    """Validate a workflow definition against the schema.

    Structural checks only; cross-phase rules (unique ids, revise targets)
    are enforced when the WorkflowDefinition is built.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_workflow_schema())


def validate_engine_config(data: dict[str, Any]) -> None:
    """Validate engine settings against the schema.

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_engine_schema())


__all__ = [
    "get_workflow_schema",
    "get_engine_schema",
    "validate_workflow",
    "validate_engine_config",
]
