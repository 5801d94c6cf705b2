"""
Persistence adapters for session checkpoints and the execution trace.
"""

from phaseflow.infrastructure.persistence.filesystem import FilesystemSessionStore
from phaseflow.infrastructure.persistence.memory import InMemorySessionStore
from phaseflow.infrastructure.persistence.serialization import (
    session_from_dict,
    session_to_dict,
)
from phaseflow.infrastructure.persistence.workflow_events import (
    FilesystemWorkflowEventStore,
    InMemoryWorkflowEventStore,
)

__all__ = [
    "InMemorySessionStore",
    "FilesystemSessionStore",
    "InMemoryWorkflowEventStore",
    "FilesystemWorkflowEventStore",
    "session_from_dict",
    "session_to_dict",
]
