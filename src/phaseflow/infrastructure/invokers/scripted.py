"""
Scripted task invoker for testing and demos without real task-runners.

Returns predefined results per capability in sequence.
"""

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from phaseflow.domain.exceptions import UnrecoverableTaskError
from phaseflow.domain.interfaces import TaskInvokerInterface
from phaseflow.domain.models import TaskResult

# A scripted step: a result, an output mapping (success), an exception to
# raise, or a callable computing one of those from the payload.
ScriptStep = Union[
    TaskResult,
    Mapping[str, Any],
    BaseException,
    Callable[[dict[str, Any]], Any],
]


@dataclass(frozen=True)
class RecordedCall:
    """One invoke() call as seen by the scripted invoker."""

    capability: str
    payload: dict[str, Any]
    deadline: float | None


class ScriptedTaskInvoker(TaskInvokerInterface):
    """Returns predefined results for testing.

    Each capability has its own script. Once a script runs out, its last step
    repeats when repeat_last is set; otherwise the invocation fails.
    """

    def __init__(
        self,
        scripts: Mapping[str, Sequence[ScriptStep]],
        repeat_last: bool = True,
    ):
        """
        Args:
            scripts: Steps to play back per capability, in call order
            repeat_last: Keep returning the final step once a script is used up
        """
        self._scripts = {name: list(steps) for name, steps in scripts.items()}
        self._repeat_last = repeat_last
        self._positions: dict[str, int] = dict.fromkeys(self._scripts, 0)
        self._calls: list[RecordedCall] = []
        self._lock = threading.Lock()

    def invoke(
        self,
        capability: str,
        payload: dict[str, Any],
        deadline: float | None,
    ) -> TaskResult:
        """Play back the next scripted step for the capability."""
        with self._lock:
            self._calls.append(RecordedCall(capability, payload, deadline))
            if capability not in self._scripts:
                raise UnrecoverableTaskError(f"Unknown capability: {capability}")
            steps = self._scripts[capability]
            position = self._positions[capability]
            if position >= len(steps):
                if not self._repeat_last or not steps:
                    raise RuntimeError(f"Script for {capability} exhausted")
                position = len(steps) - 1
            self._positions[capability] = position + 1
            step = steps[position]

        if callable(step) and not isinstance(step, (TaskResult, BaseException)):
            step = step(payload)
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, TaskResult):
            return step
        return TaskResult.success(dict(step))

    @property
    def calls(self) -> list[RecordedCall]:
        """Every call so far, in arrival order."""
        with self._lock:
            return list(self._calls)

    def calls_for(self, capability: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.capability == capability]

    def call_count(self, capability: str | None = None) -> int:
        """Number of times invoke() has been called, optionally per capability."""
        if capability is None:
            return len(self.calls)
        return len(self.calls_for(capability))

    def reset(self) -> None:
        """Rewind every script and forget recorded calls."""
        with self._lock:
            self._positions = dict.fromkeys(self._scripts, 0)
            self._calls.clear()
