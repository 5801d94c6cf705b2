"""Execution trace stores: in memory, or one JSONL file per session."""

import dataclasses
import json
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from phaseflow.domain.interfaces import WorkflowEventStoreInterface
from phaseflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


def _select(
    events: Iterable[WorkflowEvent],
    session_id: str,
    event_type: WorkflowEventType | None,
    phase_id: str | None,
) -> list[WorkflowEvent]:
    """Filter a trace and order it by time; equal timestamps keep arrival order."""
    selected = [
        e
        for e in events
        if e.session_id == session_id
        and (event_type is None or e.event_type == event_type)
        and (phase_id is None or e.phase_id == phase_id)
    ]
    return sorted(selected, key=lambda e: e.created_at)


def event_to_dict(event: WorkflowEvent) -> dict[str, Any]:
    data = dataclasses.asdict(event)
    data["event_type"] = event.event_type.value
    return data


def event_from_dict(data: dict[str, Any]) -> WorkflowEvent:
    known = {f.name for f in dataclasses.fields(WorkflowEvent)}
    fields = {k: v for k, v in data.items() if k in known}
    fields["event_type"] = WorkflowEventType(fields["event_type"])
    return WorkflowEvent(**fields)


class InMemoryWorkflowEventStore(WorkflowEventStoreInterface):
    """Keeps the trace of every session in one list. For tests and demos."""

    def __init__(self) -> None:
        self._events: list[WorkflowEvent] = []
        self._lock = threading.Lock()

    def store_event(self, event: WorkflowEvent) -> str:
        with self._lock:
            self._events.append(event)
        return event.event_id

    def get_events(
        self,
        session_id: str,
        event_type: WorkflowEventType | None = None,
        phase_id: str | None = None,
    ) -> list[WorkflowEvent]:
        with self._lock:
            events = list(self._events)
        return _select(events, session_id, event_type, phase_id)


class FilesystemWorkflowEventStore(WorkflowEventStoreInterface):
    """Appends each session's trace to events/<session_id>.jsonl under base_path."""

    def __init__(self, base_path: str | Path) -> None:
        self.events_dir = Path(base_path) / "events"
        self.events_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _trace_file(self, session_id: str) -> Path:
        return self.events_dir / f"{session_id}.jsonl"

    def store_event(self, event: WorkflowEvent) -> str:
        line = json.dumps(event_to_dict(event)) + "\n"
        with self._lock, self._trace_file(event.session_id).open("a") as f:
            f.write(line)
        return event.event_id

    def get_events(
        self,
        session_id: str,
        event_type: WorkflowEventType | None = None,
        phase_id: str | None = None,
    ) -> list[WorkflowEvent]:
        path = self._trace_file(session_id)
        if not path.exists():
            return []
        with self._lock:
            lines = path.read_text().splitlines()
        events = (event_from_dict(json.loads(line)) for line in lines if line.strip())
        return _select(events, session_id, event_type, phase_id)
