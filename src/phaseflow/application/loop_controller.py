"""
LoopController: bounded retry loop with informed retries.

Drives one loop phase: invoke the body, evaluate the exit capability, retry
up to max_iterations carrying the prior attempts' diagnostics forward, else
report exhaustion. The testing loop (3 attempts) and the review loop
(2 attempts) are both this primitive with different LoopConfig values.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from phaseflow.application.cancellation import CancellationToken
from phaseflow.application.fan_out import FanOutDispatcher
from phaseflow.domain.exceptions import UnrecoverableTaskError
from phaseflow.domain.models import (
    LoopConfig,
    LoopExhausted,
    LoopOutcome,
    LoopPassed,
    TaskResult,
)

logger = logging.getLogger(__name__)


def result_payload(result: TaskResult) -> dict[str, Any]:
    """Plain-dict view of a result, as handed to the exit capability."""
    return {
        "capability": result.capability,
        "status": result.status.value,
        "output": result.output,
        "diagnostics": result.diagnostics,
    }


def exit_condition_met(result: TaskResult) -> bool:
    """The exit capability judges success through output['passed']."""
    return result.succeeded and bool(result.output.get("passed"))


class LoopController:
    """
    Stateless executor for a single loop phase.

    Manages only the attempt loop; the PhaseEngine owns PhaseState and is
    told about progress through the on_attempt / on_rejected callbacks.

    Body task failures count as "exit condition not met" and are retried.
    A fatal result (unrecoverable invoker error) aborts the loop at once.
    """

    def __init__(self, dispatcher: FanOutDispatcher):
        """
        Args:
            dispatcher: Runs body and exit invocations
        """
        self._dispatcher = dispatcher

    def run_loop(
        self,
        loop_config: LoopConfig,
        body_capabilities: Sequence[str],
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
        phase_id: str = "",
        session_id: str = "",
        cancellation: CancellationToken | None = None,
        on_attempt: Callable[[int], None] | None = None,
        on_rejected: Callable[[int, str], None] | None = None,
    ) -> LoopOutcome:
        """
        Execute the loop with retry logic.

        Args:
            loop_config: Iteration cap and exit capability
            body_capabilities: Capabilities run on every attempt
            payload: Base input; each attempt adds 'attempt' and 'feedback'
            timeout: Per-invocation timeout in seconds
            phase_id: Owning phase, for tracing
            session_id: Owning session, for tracing
            cancellation: Checked before every attempt. When set the loop stops
                early and returns LoopExhausted; callers check the token first.
            on_attempt: Called with the attempt number before it starts
            on_rejected: Called with (attempt, diagnostics) after a failed attempt

        Returns:
            LoopPassed on the first attempt meeting the exit condition,
            otherwise LoopExhausted with the final attempt's results

        Raises:
            UnrecoverableTaskError: If any invocation reported a fatal error
        """
        feedback_history: list[str] = []
        results: tuple[TaskResult, ...] = ()
        attempts = 0

        for attempt in range(1, loop_config.max_iterations + 1):
            if cancellation is not None and cancellation.cancelled:
                logger.info("Loop %s cancelled before attempt %d", phase_id, attempt)
                break

            attempts = attempt
            if on_attempt is not None:
                on_attempt(attempt)

            attempt_payload = {
                **payload,
                "attempt": attempt,
                "feedback": list(feedback_history),
            }
            dispatch_args: dict[str, Any] = {
                "timeout": timeout,
                "attempt": attempt,
                "phase_id": phase_id,
                "session_id": session_id,
                "cancellation": cancellation,
            }

            body = tuple(
                self._dispatcher.dispatch(
                    body_capabilities, attempt_payload, **dispatch_args
                )
            )
            self._raise_if_fatal(phase_id, body)

            failed = [r for r in body if not r.succeeded]
            if failed:
                results = body
                diagnostics = "; ".join(
                    f"{r.capability} {r.status.value}: {r.diagnostics}" for r in failed
                )
            else:
                exit_payload = {
                    **attempt_payload,
                    "results": [result_payload(r) for r in body],
                }
                (exit_result,) = self._dispatcher.dispatch(
                    [loop_config.exit_capability], exit_payload, **dispatch_args
                )
                results = (*body, exit_result)
                self._raise_if_fatal(phase_id, results)

                if exit_condition_met(exit_result):
                    logger.info(
                        "Loop %s passed on attempt %d/%d",
                        phase_id,
                        attempt,
                        loop_config.max_iterations,
                    )
                    return LoopPassed(results=results, attempts=attempt)
                diagnostics = exit_result.diagnostics or "Exit condition not met"

            # Recoverable failure - retry informed by this attempt
            feedback_history.append(f"Attempt {attempt}: {diagnostics}")
            logger.info(
                "Loop %s attempt %d/%d rejected: %s",
                phase_id,
                attempt,
                loop_config.max_iterations,
                diagnostics,
            )
            if on_rejected is not None:
                on_rejected(attempt, diagnostics)

        return LoopExhausted(
            results=results,
            attempts=attempts,
            feedback_history=tuple(feedback_history),
        )

    @staticmethod
    def _raise_if_fatal(phase_id: str, results: tuple[TaskResult, ...]) -> None:
        fatal = [r for r in results if r.fatal]
        if fatal:
            raise UnrecoverableTaskError(
                f"Loop {phase_id} aborted: {fatal[0].capability}: {fatal[0].diagnostics}",
                results=results,
            )
