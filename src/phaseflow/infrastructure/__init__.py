"""
Infrastructure layer for the phase orchestration engine.

Contains adapters for external concerns (persistence, invokers, config, console).
"""

from phaseflow.infrastructure.config import (
    ConfigurationError,
    load_engine_config,
    load_workflow_definition,
    load_workflow_definitions,
)
from phaseflow.infrastructure.invokers import CapabilityRegistry, ScriptedTaskInvoker
from phaseflow.infrastructure.persistence import (
    FilesystemSessionStore,
    FilesystemWorkflowEventStore,
    InMemorySessionStore,
    InMemoryWorkflowEventStore,
)

__all__ = [
    # Persistence
    "InMemorySessionStore",
    "FilesystemSessionStore",
    "InMemoryWorkflowEventStore",
    "FilesystemWorkflowEventStore",
    # Invokers
    "CapabilityRegistry",
    "ScriptedTaskInvoker",
    # Configuration
    "ConfigurationError",
    "load_engine_config",
    "load_workflow_definition",
    "load_workflow_definitions",
]
