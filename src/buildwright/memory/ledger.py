"""Build ledger — append-only record of what happened during a build.

The executor writes to it; presentation code (CLI, progress views) only
reads it.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

from buildwright.utils import atomic_write_text


class EventKind(str, Enum):
    TRANSITION = "transition"
    ERROR = "error"
    SUGGESTION = "suggestion"
    TIMER = "timer"
    SYSTEM = "system"


@dataclass
class Event:
    kind: EventKind
    content: str
    module_id: str | None = None
    task_id: str | None = None
    metadata: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["kind"] = self.kind.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Event:
        data = data.copy()
        data["kind"] = EventKind(data["kind"])
        return cls(**data)


class Ledger:
    """Append-only event log for one orchestrator.

    With a *limit*, only the most recent events are kept, so a project
    that is resumed many times doesn't grow its ledger file forever.
    """

    def __init__(self, limit: int | None = None) -> None:
        self.limit = limit
        self._events: list[Event] = []

    def _trim(self) -> None:
        if self.limit and len(self._events) > self.limit:
            del self._events[: len(self._events) - self.limit]

    def append(self, event: Event) -> Event:
        self._events.append(event)
        self._trim()
        return event

    def record(
        self,
        kind: EventKind,
        content: str,
        module_id: str | None = None,
        task_id: str | None = None,
        **metadata,
    ) -> Event:
        return self.append(Event(
            kind=kind, content=content,
            module_id=module_id, task_id=task_id, metadata=metadata,
        ))

    def filter(
        self,
        kind: EventKind | None = None,
        module_id: str | None = None,
        task_id: str | None = None,
    ) -> list[Event]:
        results = self._events
        if kind:
            results = [e for e in results if e.kind == kind]
        if module_id:
            results = [e for e in results if e.module_id == module_id]
        if task_id:
            results = [e for e in results if e.task_id == task_id]
        return results

    def transitions(self, task_id: str) -> list[str]:
        """Status names a task went through, in order."""
        return [
            e.metadata["to"]
            for e in self.filter(kind=EventKind.TRANSITION, task_id=task_id)
        ]

    def save(self, path: Path) -> None:
        data = [e.to_dict() for e in self._events]
        atomic_write_text(path, json.dumps(data, indent=2))

    def load(self, path: Path) -> None:
        if path.exists():
            data = json.loads(path.read_text())
            self._events = [Event.from_dict(d) for d in data]
            self._trim()

    @property
    def count(self) -> int:
        return len(self._events)
