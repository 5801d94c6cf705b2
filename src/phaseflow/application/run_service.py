"""Run control surface: start, observe, resume and abort workflow sessions.

Every session is driven by its own worker from a session pool, so a paused
or long-running session never blocks another. Sessions are checkpointed to an
optional SessionStoreInterface whenever their driver stops, so a paused run
can be restored after a process restart.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import TYPE_CHECKING, Any

from phaseflow.application.cancellation import CancellationToken
from phaseflow.application.phase_engine import PhaseEngine
from phaseflow.application.report import RunReport, build_report
from phaseflow.domain.definition import compute_definition_ref
from phaseflow.domain.exceptions import (
    DefinitionIntegrityError,
    SessionNotFoundError,
    SessionStateError,
    UnknownDefinitionError,
)
from phaseflow.domain.models import Decision, WorkflowDefinition
from phaseflow.domain.session import RunSession, SessionSnapshot, SessionStatus

if TYPE_CHECKING:
    from phaseflow.domain.interfaces import SessionStoreInterface

logger = logging.getLogger(__name__)


class _SessionHandle:
    """Runner-side bookkeeping for one live session."""

    def __init__(self, session: RunSession) -> None:
        self.session = session
        self.token = CancellationToken()
        self.lock = threading.Lock()
        self.driver: Future[None] | None = None

    @property
    def driving(self) -> bool:
        return self.driver is not None and not self.driver.done()


class WorkflowRunner:
    """Application service owning the live sessions of one process.

    Each session has its own CancellationToken; aborting one session never
    touches another. Status and report reads take copies and never wait on a
    running driver.
    """

    def __init__(
        self,
        engine: PhaseEngine,
        store: SessionStoreInterface | None = None,
        session_workers: int | None = None,
        evict_terminal: bool = False,
    ) -> None:
        """
        Args:
            engine: Executes phases for every session
            store: Optional checkpoint store used by restore()
            session_workers: Sessions driven at once (defaults to the engine config)
            evict_terminal: Drop finished sessions from memory once their final
                checkpoint is stored; they stay reachable through restore()
        """
        self._engine = engine
        self._store = store
        self._evict_terminal = evict_terminal and store is not None
        self._pool = ThreadPoolExecutor(
            max_workers=session_workers or engine.config.session_workers,
            thread_name_prefix="phaseflow-session",
        )
        self._definitions: dict[str, WorkflowDefinition] = {}
        self._handles: dict[str, _SessionHandle] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> WorkflowRunner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Definitions
    # =========================================================================

    def register(self, definition: WorkflowDefinition) -> str:
        """Make a definition startable. Returns its content reference."""
        with self._lock:
            self._definitions[definition.definition_id] = definition
        ref = compute_definition_ref(definition)
        logger.debug("Registered definition %s (%s)", definition.definition_id, ref[:12])
        return ref

    def definition(self, definition_id: str) -> WorkflowDefinition:
        """
        Raises:
            UnknownDefinitionError: If no definition is registered under the id
        """
        with self._lock:
            if definition_id not in self._definitions:
                raise UnknownDefinitionError(definition_id)
            return self._definitions[definition_id]

    # =========================================================================
    # Control
    # =========================================================================

    def start(
        self, definition_id: str, initial_input: dict[str, Any] | None = None
    ) -> str:
        """Create a session for a registered definition and begin driving it.

        Returns:
            The new session_id

        Raises:
            UnknownDefinitionError: If the definition is not registered
            SessionStateError: If the runner is closed

        Errors from the store's first save propagate and leave no session behind.
        """
        definition = self.definition(definition_id)
        session = RunSession.create(definition, initial_input)
        if self._closed:
            raise SessionStateError(
                session.session_id, session.status.value, "runner is closed"
            )
        # Store errors propagate here: nothing has been registered yet
        if self._store is not None:
            self._store.save(session)

        handle = _SessionHandle(session)
        logger.info(
            "Starting session %s for definition %s", session.session_id, definition_id
        )
        with handle.lock:
            with self._lock:
                self._handles[session.session_id] = handle
            self._launch(handle)
        return session.session_id

    def status(self, session_id: str) -> SessionSnapshot:
        """Read-only copy of a session's current state."""
        return self._handle(session_id).session.snapshot()

    def resume(self, session_id: str, decision: Decision) -> SessionSnapshot:
        """Apply a decision to a PAUSED or ESCALATED session.

        Execution continues on the session pool; use wait() to join it.

        A driver that has already suspended the session but is still writing
        its checkpoint is waited for rather than treated as running.

        Raises:
            SessionStateError: If the session is still running, terminal, or
                the decision cannot apply
        """
        handle = self._handle(session_id)
        with handle.lock:
            if handle.driving and handle.session.status.awaits_decision:
                wait_futures([handle.driver])
            if handle.driving:
                raise SessionStateError(
                    session_id, handle.session.status.value, "driver still running"
                )
            self._engine.resume(handle.session, decision)
            if handle.session.status is SessionStatus.RUNNING:
                self._launch(handle)
            else:
                self._settle(handle)
        return handle.session.snapshot()

    def abort(self, session_id: str, reason: str = "Aborted") -> SessionSnapshot:
        """Abort a session, cancelling its in-flight work.

        Running invocations are abandoned rather than interrupted; the call
        returns once the session's driver has settled.

        Raises:
            SessionStateError: If the session is already terminal
        """
        handle = self._handle(session_id)
        with handle.lock:
            if handle.session.status.is_terminal:
                raise SessionStateError(
                    session_id, handle.session.status.value, "cannot abort"
                )
            handle.token.cancel(reason)
            driver = handle.driver if handle.driving else None

        if driver is not None:
            driver.result()

        with handle.lock:
            if not handle.session.status.is_terminal:
                self._engine.abort(handle.session, reason)
            self._settle(handle)
        return handle.session.snapshot()

    def wait(self, session_id: str, timeout: float | None = None) -> SessionSnapshot:
        """Block until the session's driver stops (suspended or terminal) or timeout."""
        handle = self._handle(session_id)
        driver = handle.driver
        if driver is not None:
            wait_futures([driver], timeout=timeout)
        return handle.session.snapshot()

    def report(self, session_id: str) -> RunReport:
        return build_report(self._handle(session_id).session)

    def sessions(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def discard(self, session_id: str) -> None:
        """Forget a session here and in the store.

        Finished sessions are kept in memory until discarded, unless the
        runner was built with evict_terminal.

        Raises:
            SessionStateError: If the session's driver is still running
        """
        handle = self._handle(session_id)
        with handle.lock:
            if handle.driving:
                raise SessionStateError(
                    session_id, handle.session.status.value, "driver still running"
                )
            with self._lock:
                del self._handles[session_id]
            if self._store is not None:
                self._store.delete(session_id)
        logger.debug("Discarded session %s", session_id)

    def restore(self, session_id: str) -> SessionSnapshot:
        """Reload a checkpointed session, e.g. after a process restart.

        A session that was still RUNNING when checkpointed is driven again
        from its current phase.

        Raises:
            SessionNotFoundError: If there is no store or the session is not in it
            UnknownDefinitionError: If its definition is not registered
            DefinitionIntegrityError: If the registered definition has changed
        """
        with self._lock:
            if session_id in self._handles:
                return self._handles[session_id].session.snapshot()
        if self._store is None:
            raise SessionNotFoundError(session_id)

        session = self._store.load(session_id)
        registered = self.definition(session.definition.definition_id)
        stored_ref = compute_definition_ref(session.definition)
        current_ref = compute_definition_ref(registered)
        if stored_ref != current_ref:
            raise DefinitionIntegrityError(
                f"Definition {registered.definition_id} changed since session "
                f"{session_id} was stored ({stored_ref[:12]} != {current_ref[:12]})"
            )

        handle = _SessionHandle(session)
        with self._lock:
            self._handles[session_id] = handle
        logger.info(
            "Restored session %s at phase %d (%s)",
            session_id,
            session.current_phase_index,
            session.status.value,
        )
        with handle.lock:
            if session.status is SessionStatus.RUNNING:
                self._launch(handle)
        return session.snapshot()

    def close(self, cancel_running: bool = False) -> None:
        """Stop accepting work and wait for drivers to stop."""
        with self._lock:
            self._closed = True
            handles = list(self._handles.values())
        if cancel_running:
            for handle in handles:
                if handle.driving:
                    handle.token.cancel("Runner closed")
        self._pool.shutdown(wait=True)

    # =========================================================================
    # Driving
    # =========================================================================

    def _launch(self, handle: _SessionHandle) -> None:
        """Submit the session's driver. Caller holds handle.lock."""
        if self._closed:
            raise SessionStateError(
                handle.session.session_id, handle.session.status.value, "runner is closed"
            )
        handle.driver = self._pool.submit(self._drive, handle)

    def _drive(self, handle: _SessionHandle) -> None:
        session = handle.session
        try:
            self._engine.run(session, handle.token)
        except Exception as e:
            logger.exception("Driver for session %s crashed", session.session_id)
            if not session.status.is_terminal:
                phase = session.current_phase
                session.fail(
                    phase.phase_id if phase else None, f"{type(e).__name__}: {e}"
                )
        finally:
            self._settle(handle)
        logger.info(
            "Session %s driver stopped: %s", session.session_id, session.status.value
        )

    def _checkpoint(self, handle: _SessionHandle) -> bool:
        """Save the session. Store errors are logged, never raised.

        Callers have already changed the session's state; the in-memory
        session stays authoritative when a checkpoint is lost.
        """
        if self._store is None:
            return False
        try:
            self._store.save(handle.session)
        except Exception:
            logger.exception(
                "Checkpoint of session %s (%s) failed",
                handle.session.session_id,
                handle.session.status.value,
            )
            return False
        return True

    def _settle(self, handle: _SessionHandle) -> None:
        """Checkpoint, then evict the session if it finished and eviction is on."""
        stored = self._checkpoint(handle)
        session = handle.session
        if stored and self._evict_terminal and session.status.is_terminal:
            with self._lock:
                if self._handles.get(session.session_id) is handle:
                    del self._handles[session.session_id]
            logger.debug("Evicted finished session %s", session.session_id)

    def _handle(self, session_id: str) -> _SessionHandle:
        with self._lock:
            if session_id not in self._handles:
                raise SessionNotFoundError(session_id)
            return self._handles[session_id]
