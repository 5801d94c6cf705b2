"""
Domain exceptions for the phase orchestration engine.

These represent business rule violations in the domain layer. Task-level
failures are not exceptions: they travel as TaskResult values and are
absorbed by the loop and fan-out layers.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from phaseflow.domain.models import TaskResult


class DefinitionError(ValueError):
    """
    Raised when a workflow definition is malformed.

    Detected at construction/load time, before any task is invoked, so a
    malformed workflow never partially executes.
    """

    pass


class UnrecoverableTaskError(Exception):
    """
    Raised by a task invoker when retrying cannot help.

    Inside a loop this aborts the loop immediately regardless of the
    remaining attempts; the session fails with the results gathered so far.
    """

    def __init__(self, message: str, results: tuple["TaskResult", ...] = ()):
        """
        Args:
            message: Human-readable error message
            results: Task results available when the error surfaced
        """
        super().__init__(message)
        self.results = results


class SessionStateError(Exception):
    """Raised when a control call does not fit the session's current status."""

    def __init__(self, session_id: str, status: str, message: str):
        """
        Args:
            session_id: The session the call targeted
            status: Its status value at the time of the call
            message: What was attempted
        """
        super().__init__(f"Session {session_id} is {status}: {message}")
        self.session_id = session_id
        self.status = status


class SessionNotFoundError(KeyError):
    """Raised when a session id is unknown to the runner or store."""

    pass


class UnknownDefinitionError(KeyError):
    """Raised when starting a run for a definition id that is not registered."""

    pass


class DefinitionIntegrityError(Exception):
    """Raised when a restored session's definition differs from the registered one."""

    pass


class ArtifactConflictError(Exception):
    """Raised when an artifact revision would be written twice."""

    pass
