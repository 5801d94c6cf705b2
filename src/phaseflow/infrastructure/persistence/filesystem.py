"""
Filesystem implementation of the session store.

Persists session checkpoints so a paused or escalated run can be resumed
after the process restarts.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any

from phaseflow.domain.exceptions import SessionNotFoundError
from phaseflow.domain.interfaces import SessionStoreInterface
from phaseflow.domain.session import RunSession, SessionStatus
from phaseflow.infrastructure.persistence.serialization import (
    session_from_dict,
    session_to_dict,
)

logger = logging.getLogger(__name__)


class FilesystemSessionStore(SessionStoreInterface):
    """
    Persistent session store.

    Stores one JSON file per session under prefix directories, with an
    index for listing. Saving a session overwrites its previous checkpoint.
    Task payloads and outputs must be JSON-serializable.
    """

    def __init__(self, base_dir: str | Path):
        self._base_dir = Path(base_dir)
        self._sessions_dir = self._base_dir / "sessions"
        self._index_path = self._base_dir / "index.json"
        self._lock = threading.Lock()
        self._index: dict[str, Any] = self._load_or_create_index()

    def _load_or_create_index(self) -> dict[str, Any]:
        """Load existing index or create new one."""
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._sessions_dir.mkdir(parents=True, exist_ok=True)

        if self._index_path.exists():
            with open(self._index_path) as f:
                result: dict[str, Any] = json.load(f)
                return result

        return {"version": "1.0", "sessions": {}}

    def _update_index_atomic(self) -> None:
        """Atomically update index.json using write-to-temp + rename."""
        temp_path = self._index_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self._index, f, indent=2)
        temp_path.replace(self._index_path)  # Atomic on POSIX

    def _get_object_path(self, session_id: str) -> Path:
        """Get filesystem path for a session (using prefix directories)."""
        prefix = session_id[:2]
        return self._sessions_dir / prefix / f"{session_id}.json"

    def save(self, session: RunSession) -> str:
        """
        Write the session checkpoint and update the index.

        Raises:
            TypeError: If a payload or output is not JSON-serializable
        """
        data = session_to_dict(session)
        serialized = json.dumps(data, indent=2)

        object_path = self._get_object_path(session.session_id)
        with self._lock:
            object_path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = object_path.with_suffix(".tmp")
            temp_path.write_text(serialized)
            temp_path.replace(object_path)

            self._index["sessions"][session.session_id] = {
                "path": str(object_path.relative_to(self._base_dir)),
                "definition_id": session.definition.definition_id,
                "status": session.status.value,
                "updated_at": session.updated_at,
            }
            self._update_index_atomic()

        logger.debug(
            "Checkpointed session %s (%s)", session.session_id, session.status.value
        )
        return session.session_id

    def load(self, session_id: str) -> RunSession:
        with self._lock:
            entry = self._index["sessions"].get(session_id)
        if entry is None:
            raise SessionNotFoundError(session_id)

        with open(self._base_dir / entry["path"]) as f:
            data = json.load(f)
        return session_from_dict(data)

    def delete(self, session_id: str) -> None:
        with self._lock:
            entry = self._index["sessions"].pop(session_id, None)
            if entry is None:
                return
            (self._base_dir / entry["path"]).unlink(missing_ok=True)
            self._update_index_atomic()

    def list_sessions(self, status: SessionStatus | None = None) -> list[str]:
        with self._lock:
            entries = list(self._index["sessions"].items())
        if status is not None:
            entries = [(sid, e) for sid, e in entries if e["status"] == status.value]
        entries.sort(key=lambda item: item[1]["updated_at"], reverse=True)
        return [sid for sid, _ in entries]
