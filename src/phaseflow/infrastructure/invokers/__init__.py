"""
Task invoker adapters.
"""

from phaseflow.infrastructure.invokers.registry import CapabilityRegistry
from phaseflow.infrastructure.invokers.scripted import RecordedCall, ScriptedTaskInvoker

__all__ = [
    "CapabilityRegistry",
    "RecordedCall",
    "ScriptedTaskInvoker",
]
