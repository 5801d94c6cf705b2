"""
FanOutDispatcher: runs independent task invocations concurrently and joins
on all of them.

Partial failure never cancels siblings: every invocation runs to completion
or to its deadline, and all results come back together, index-aligned with
the requested capabilities regardless of completion order.
"""

import copy
import logging
import time
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Any

from phaseflow.application.cancellation import CancellationToken
from phaseflow.domain.exceptions import UnrecoverableTaskError
from phaseflow.domain.interfaces import TaskInvokerInterface
from phaseflow.domain.models import TaskInvocation, TaskResult, TaskStatus

logger = logging.getLogger(__name__)


class FanOutDispatcher:
    """
    Concurrent dispatcher over a TaskInvokerInterface.

    Invocations run on a thread pool created per dispatch. The calling thread
    is the join point: it waits for completions, the shared deadline, or
    cancellation, whichever comes first.
    """

    def __init__(
        self,
        invoker: TaskInvokerInterface,
        max_workers: int = 8,
        poll_interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            invoker: Executes each capability
            max_workers: Upper bound on threads per dispatch
            poll_interval: Seconds between cancellation checks while joining
            clock: Monotonic clock used for deadlines
        """
        self._invoker = invoker
        self._max_workers = max_workers
        self._poll_interval = poll_interval
        self._clock = clock

    @property
    def invoker(self) -> TaskInvokerInterface:
        return self._invoker

    def dispatch(
        self,
        capabilities: Sequence[str],
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
        attempt: int = 1,
        phase_id: str = "",
        session_id: str = "",
        cancellation: CancellationToken | None = None,
    ) -> list[TaskResult]:
        """
        Invoke every capability concurrently and join on all of them.

        Args:
            capabilities: Capabilities to invoke, one invocation each
            payload: Input given to every invocation (each gets its own copy)
            timeout: Seconds from dispatch until the shared deadline
            attempt: Attempt number recorded on each invocation
            phase_id: Owning phase, for tracing
            session_id: Owning session, for tracing
            cancellation: Token that stops the join early

        Returns:
            One TaskResult per capability, in input order
        """
        if not capabilities:
            return []

        deadline = self._clock() + timeout if timeout is not None else None
        invocations = [
            TaskInvocation(
                invocation_id=str(uuid.uuid4()),
                capability=capability,
                payload=copy.deepcopy(payload),
                attempt=attempt,
                deadline=deadline,
                phase_id=phase_id,
                session_id=session_id,
            )
            for capability in capabilities
        ]
        results: list[TaskResult | None] = [None] * len(invocations)

        logger.debug(
            "Dispatching %d invocation(s) for phase %s attempt %d: %s",
            len(invocations),
            phase_id or "-",
            attempt,
            ", ".join(capabilities),
        )

        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(invocations)),
            thread_name_prefix=f"phaseflow-{phase_id or 'dispatch'}",
        )
        futures: dict[Future[TaskResult], int] = {}
        cancelled = False
        try:
            for index, invocation in enumerate(invocations):
                futures[executor.submit(self._invoke, invocation)] = index

            pending = set(futures)
            while pending:
                if cancellation is not None and cancellation.cancelled:
                    cancelled = True
                    break
                wait_for = self._poll_interval
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        break
                    wait_for = min(wait_for, remaining)
                done, pending = wait(
                    pending, timeout=wait_for, return_when=FIRST_COMPLETED
                )
                for future in done:
                    results[futures[future]] = future.result()

            for future in pending:
                index = futures[future]
                if future.done() and not future.cancelled():
                    results[index] = future.result()
                    continue
                future.cancel()
                results[index] = self._unfinished(invocations[index], cancelled)
        finally:
            # Abandoned invocations may still be running; never block on them
            executor.shutdown(wait=False, cancel_futures=True)

        return [r for r in results if r is not None]

    def _invoke(self, invocation: TaskInvocation) -> TaskResult:
        """Run one invocation, converting every outcome into a TaskResult."""
        try:
            result = self._invoker.invoke(
                invocation.capability, invocation.payload, invocation.deadline
            )
        except UnrecoverableTaskError as e:
            logger.error(
                "Capability %s reported an unrecoverable error: %s",
                invocation.capability,
                e,
            )
            return self._bind(
                invocation, TaskStatus.FAILURE, diagnostics=str(e), fatal=True
            )
        except Exception as e:
            logger.exception("Capability %s raised", invocation.capability)
            return self._bind(
                invocation,
                TaskStatus.FAILURE,
                diagnostics=f"{type(e).__name__}: {e}",
            )

        if not isinstance(result, TaskResult):
            return self._bind(
                invocation,
                TaskStatus.FAILURE,
                diagnostics=(
                    f"Invoker returned {type(result).__name__} instead of TaskResult"
                ),
            )
        if invocation.deadline is not None and self._clock() > invocation.deadline:
            return self._bind(
                invocation,
                TaskStatus.TIMEOUT,
                diagnostics="Completed after deadline",
            )
        return replace(
            result,
            invocation_id=invocation.invocation_id,
            capability=invocation.capability,
        )

    def _unfinished(self, invocation: TaskInvocation, cancelled: bool) -> TaskResult:
        if cancelled:
            logger.warning(
                "Invocation of %s cancelled before completion", invocation.capability
            )
            return self._bind(
                invocation, TaskStatus.FAILURE, diagnostics="cancelled"
            )
        logger.warning(
            "Invocation of %s exceeded its deadline", invocation.capability
        )
        return self._bind(
            invocation, TaskStatus.TIMEOUT, diagnostics="Deadline exceeded"
        )

    @staticmethod
    def _bind(
        invocation: TaskInvocation,
        status: TaskStatus,
        diagnostics: str = "",
        fatal: bool = False,
    ) -> TaskResult:
        return TaskResult(
            invocation_id=invocation.invocation_id,
            capability=invocation.capability,
            status=status,
            diagnostics=diagnostics,
            fatal=fatal,
        )
