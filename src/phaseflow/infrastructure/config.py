"""Configuration loading for engine settings and workflow definitions."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import jsonschema

from phaseflow.domain.definition import definition_from_dict
from phaseflow.domain.models import EngineConfig, WorkflowDefinition
from phaseflow.schemas import validate_engine_config, validate_workflow

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration files are invalid or missing."""

    pass


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e


def _schema_error(path: Path, error: jsonschema.ValidationError) -> ConfigurationError:
    location = "/".join(str(p) for p in error.absolute_path) or "<root>"
    return ConfigurationError(f"{path}: {location}: {error.message}")


def load_engine_config(path: Path) -> EngineConfig:
    """
    Load engine settings from a JSON file.

    Args:
        path: Path to the settings file

    Returns:
        EngineConfig with file values over the defaults

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    path = Path(path)
    data = _read_json(path)
    try:
        validate_engine_config(data)
    except jsonschema.ValidationError as e:
        raise _schema_error(path, e) from e

    try:
        return EngineConfig(**data)
    except ValueError as e:
        raise ConfigurationError(f"{path}: {e}") from e


def load_workflow_definition(path: Path) -> WorkflowDefinition:
    """
    Load and validate a workflow definition.

    The file is checked against the packaged JSON schema first, then built
    into a WorkflowDefinition, which enforces the cross-phase rules.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or fails the schema
        DefinitionError: If the phases are structurally inconsistent
    """
    path = Path(path)
    data = _read_json(path)
    try:
        validate_workflow(data)
    except jsonschema.ValidationError as e:
        raise _schema_error(path, e) from e

    definition = definition_from_dict(data)
    logger.debug(
        "Loaded definition %s (%d phases) from %s",
        definition.definition_id,
        len(definition.phases),
        path,
    )
    return definition


def load_workflow_definitions(directory: Path) -> dict[str, WorkflowDefinition]:
    """
    Load every *.json definition in a directory, keyed by definition id.

    Raises:
        ConfigurationError: If the directory is missing or two files share an id
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"Definition directory not found: {directory}")

    definitions: dict[str, WorkflowDefinition] = {}
    for path in sorted(directory.glob("*.json")):
        definition = load_workflow_definition(path)
        if definition.definition_id in definitions:
            raise ConfigurationError(
                f"Duplicate definition id '{definition.definition_id}' in {path}"
            )
        definitions[definition.definition_id] = definition
    return definitions
