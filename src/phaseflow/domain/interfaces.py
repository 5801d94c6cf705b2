"""
Domain interfaces (Ports) for the phase orchestration engine.

These abstract base classes define the contracts that adapters must satisfy.
They have no external dependencies and represent the core domain boundaries.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from phaseflow.domain.models import Decision, TaskResult
    from phaseflow.domain.session import RunSession, SessionSnapshot, SessionStatus
    from phaseflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


class TaskInvokerInterface(ABC):
    """
    Port for delegated work.

    Capability names are opaque strings resolved by the implementation to
    whatever performs the work (a coding, test or review task-runner). The
    engine has no knowledge of how a capability is implemented.

    Note (Threading):
        The fan-out dispatcher calls invoke() from worker threads, possibly
        for several capabilities at once. Implementations must be safe to
        call concurrently.

    Note (Deadlines):
        The dispatcher enforces the deadline by abandoning the call; a running
        invoke() cannot be interrupted. Long-running implementations should
        check the deadline themselves and return early.
    """

    @abstractmethod
    def invoke(
        self,
        capability: str,
        payload: dict[str, Any],
        deadline: float | None,
    ) -> "TaskResult":
        """
        Execute one unit of delegated work.

        Args:
            capability: Name of the capability to run
            payload: Structured input (read it, do not mutate it)
            deadline: time.monotonic() value after which the result is ignored

        Returns:
            TaskResult describing success or failure. Identity fields may be
            left empty; the dispatcher binds them to the invocation.

        Raises:
            UnrecoverableTaskError: When retrying cannot help
        """
        pass


class SessionStoreInterface(ABC):
    """
    Port for session persistence.

    Stores enough of a RunSession to resume a paused or escalated run after a
    process restart.
    """

    @abstractmethod
    def save(self, session: "RunSession") -> str:
        """
        Store (or overwrite) a session.

        Args:
            session: The session to store

        Returns:
            The session_id
        """
        pass

    @abstractmethod
    def load(self, session_id: str) -> "RunSession":
        """
        Load a session by ID.

        Raises:
            SessionNotFoundError: If the session is not stored
        """
        pass

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove a session. Unknown ids are ignored."""
        pass

    @abstractmethod
    def list_sessions(self, status: "SessionStatus | None" = None) -> list[str]:
        """
        List stored session ids, optionally filtered by status.

        Returns:
            Session ids, most recently updated first
        """
        pass


class WorkflowEventStoreInterface(ABC):
    """Port for the workflow execution trace."""

    @abstractmethod
    def store_event(self, event: "WorkflowEvent") -> str:
        """Append an event and return its event_id."""
        pass

    @abstractmethod
    def get_events(
        self,
        session_id: str,
        event_type: "WorkflowEventType | None" = None,
        phase_id: str | None = None,
    ) -> list["WorkflowEvent"]:
        """Return a session's events in chronological order, optionally filtered."""
        pass


class ApprovalPromptInterface(ABC):
    """Port for collecting a human decision on a paused or escalated session."""

    @abstractmethod
    def ask(self, snapshot: "SessionSnapshot") -> "Decision":
        """Present the session and return the reviewer's decision."""
        pass
