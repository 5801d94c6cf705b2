"""
Append-only artifact ledger owned by a RunSession.

Each (key, revision) pair is written exactly once. Re-executing a phase after
a RequestChanges decision appends a new revision; earlier revisions stay in the
history untouched and readers see the latest revision per key.
"""

import copy
import threading
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from phaseflow.domain.exceptions import ArtifactConflictError
from phaseflow.domain.models import Artifact, artifact_key


class ArtifactLedger:
    """
    Single-writer, multi-reader artifact store.

    The Phase Engine is the only writer. Readers (status and report calls)
    get copies taken under the lock, so they never observe a half-written
    entry.
    """

    def __init__(self, artifacts: Iterable[Artifact] = ()) -> None:
        self._lock = threading.Lock()
        self._history: list[Artifact] = []
        self._latest: dict[str, Artifact] = {}
        for artifact in artifacts:
            self.append(artifact)

    def write(self, phase_id: str, capability: str, content: Any) -> Artifact:
        """
        Record the output of a capability in a phase as the next revision.

        Args:
            phase_id: Phase that produced the content
            capability: Capability that produced the content
            content: Output value (deep-copied so later mutation cannot leak in)

        Returns:
            The stored Artifact
        """
        key = artifact_key(phase_id, capability)
        with self._lock:
            previous = self._latest.get(key)
            artifact = Artifact(
                key=key,
                content=copy.deepcopy(content),
                produced_by_phase=phase_id,
                capability=capability,
                revision=previous.revision + 1 if previous else 1,
                created_at=datetime.now(UTC).isoformat(),
            )
            self._history.append(artifact)
            self._latest[key] = artifact
        return artifact

    def append(self, artifact: Artifact) -> None:
        """
        Append an existing artifact (used when restoring a stored session).

        Raises:
            ArtifactConflictError: If the revision is not the next one for its key
        """
        with self._lock:
            previous = self._latest.get(artifact.key)
            expected = previous.revision + 1 if previous else 1
            if artifact.revision != expected:
                raise ArtifactConflictError(
                    f"Artifact {artifact.key} revision {artifact.revision} "
                    f"out of sequence (expected {expected})"
                )
            self._history.append(artifact)
            self._latest[artifact.key] = artifact

    def get(self, key: str) -> Artifact:
        """
        Latest revision of an artifact.

        Raises:
            KeyError: If no artifact has been written under the key
        """
        with self._lock:
            if key not in self._latest:
                raise KeyError(f"Artifact not found: {key}")
            return self._latest[key]

    def latest(self) -> dict[str, Artifact]:
        """Latest revision per key, in first-write order."""
        with self._lock:
            return dict(self._latest)

    def history(self, key: str | None = None) -> tuple[Artifact, ...]:
        """Every revision ever written, optionally for one key, oldest first."""
        with self._lock:
            if key is None:
                return tuple(self._history)
            return tuple(a for a in self._history if a.key == key)

    def contents(self) -> dict[str, Any]:
        """Detached copy of the latest content per key, for task payloads."""
        with self._lock:
            return {k: copy.deepcopy(a.content) for k, a in self._latest.items()}

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._latest

    def __len__(self) -> int:
        with self._lock:
            return len(self._latest)
