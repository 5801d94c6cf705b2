"""
In-memory implementation of the session store.

Useful for testing and single-process runs.
"""

import copy
import threading
from typing import Any

from phaseflow.domain.exceptions import SessionNotFoundError
from phaseflow.domain.interfaces import SessionStoreInterface
from phaseflow.domain.session import RunSession, SessionStatus
from phaseflow.infrastructure.persistence.serialization import (
    session_from_dict,
    session_to_dict,
)


class InMemorySessionStore(SessionStoreInterface):
    """Simple in-memory store for testing.

    Sessions are kept in serialized form, so a loaded session never shares
    state with the one that was saved.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save(self, session: RunSession) -> str:
        data = copy.deepcopy(session_to_dict(session))
        with self._lock:
            self._sessions[session.session_id] = data
        return session.session_id

    def load(self, session_id: str) -> RunSession:
        with self._lock:
            if session_id not in self._sessions:
                raise SessionNotFoundError(session_id)
            data = copy.deepcopy(self._sessions[session_id])
        return session_from_dict(data)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def list_sessions(self, status: SessionStatus | None = None) -> list[str]:
        with self._lock:
            entries = list(self._sessions.values())
        if status is not None:
            entries = [e for e in entries if e["status"] == status.value]
        entries.sort(key=lambda e: e["updated_at"], reverse=True)
        return [e["session_id"] for e in entries]
