"""
Capability Registry with Entry Points Discovery.

Maps opaque capability names to the callables that perform the work.
External packages can contribute capabilities in their pyproject.toml:

    [project.entry-points."phaseflow.capabilities"]
    run-tests = "mypackage.capabilities:run_tests"

A capability callable receives the task payload and returns either a
TaskResult or an output mapping (treated as success).
"""

import logging
import warnings
from collections.abc import Callable, Mapping
from importlib.metadata import entry_points
from typing import Any

from phaseflow.domain.exceptions import UnrecoverableTaskError
from phaseflow.domain.interfaces import TaskInvokerInterface
from phaseflow.domain.models import TaskResult

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "phaseflow.capabilities"

Capability = Callable[[dict[str, Any]], "TaskResult | Mapping[str, Any]"]


class CapabilityRegistry(TaskInvokerInterface):
    """
    Task invoker dispatching to registered capability callables.

    Discovers capabilities via the 'phaseflow.capabilities' entry point group.
    Uses lazy loading - entry points are only loaded on first lookup, and
    manual registrations take precedence over discovered ones.

    Example usage:
        registry = CapabilityRegistry()
        registry.register("review", review_changes)
        engine = PhaseEngine(registry)
    """

    def __init__(self, discover: bool = True) -> None:
        """
        Args:
            discover: Load entry-point capabilities on first lookup
        """
        self._capabilities: dict[str, Capability] = {}
        self._loaded = not discover

    def _load_entry_points(self) -> None:
        """Load capabilities from entry points (lazy, called once)."""
        if self._loaded:
            return

        for ep in entry_points(group=ENTRY_POINT_GROUP):
            if ep.name in self._capabilities:
                continue
            try:
                self._capabilities[ep.name] = ep.load()
            except Exception as e:
                warnings.warn(
                    f"Failed to load capability '{ep.name}' from entry point: {e}",
                    stacklevel=2,
                )

        self._loaded = True

    def register(self, name: str, capability: Capability) -> "CapabilityRegistry":
        """
        Manually register a capability.

        Args:
            name: Capability identifier used in workflow definitions
            capability: Callable taking the payload

        Returns:
            Self for fluent chaining
        """
        self._capabilities[name] = capability
        return self

    def get(self, name: str) -> Capability:
        """
        Raises:
            KeyError: If the capability is not registered
        """
        self._load_entry_points()
        if name not in self._capabilities:
            available = ", ".join(sorted(self._capabilities)) or "(none)"
            raise KeyError(
                f"Capability '{name}' not found. Available capabilities: {available}"
            )
        return self._capabilities[name]

    def available(self) -> list[str]:
        self._load_entry_points()
        return sorted(self._capabilities)

    def invoke(
        self,
        capability: str,
        payload: dict[str, Any],
        deadline: float | None,
    ) -> TaskResult:
        """
        Run a registered capability.

        Raises:
            UnrecoverableTaskError: If the capability is not registered
        """
        try:
            fn = self.get(capability)
        except KeyError as e:
            raise UnrecoverableTaskError(str(e.args[0])) from e

        logger.debug("Invoking capability %s", capability)
        outcome = fn(payload)
        if isinstance(outcome, TaskResult):
            return outcome
        if isinstance(outcome, Mapping):
            return TaskResult.success(dict(outcome))
        return TaskResult.failure(
            f"Capability returned {type(outcome).__name__}; "
            "expected TaskResult or mapping"
        )
