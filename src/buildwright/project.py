"""Project, module and task records plus their status rules.

Everything here is plain data with ``to_dict``/``from_dict`` so a project
can be written to ``.buildwright/project.json`` and picked up again later.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

from buildwright.exceptions import PromotionBlockedError
from buildwright.tools.classifier import ErrorRecord
from buildwright.utils import atomic_write_text

PROJECT_FILE = Path(".buildwright") / "project.json"


class ProjectMode(str, Enum):
    DEV = "dev"
    TEST = "test"
    PROD = "prod"


class ModuleStatus(str, Enum):
    DRAFT = "draft"
    BUILDING = "building"
    COMPLETE = "complete"
    NEEDS_WORK = "needs-work"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    GENERATING = "generating"
    WRITING = "writing"
    VERIFYING = "verifying"
    FIXING = "fixing"
    WORKING = "working"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.WORKING, TaskStatus.FAILED)


class StepType(str, Enum):
    CONTRACTS = "contracts"
    SHELL = "shell"
    SHARED = "shared"
    MODULE = "module"
    INTEGRATION = "integration"
    SIMPLIFY = "simplify"


_NEXT_MODE = {ProjectMode.DEV: ProjectMode.TEST, ProjectMode.TEST: ProjectMode.PROD}


@dataclass
class Suggestion:
    kind: str  # "pattern", "improvement", "warning"
    description: str
    source: str = ""  # component or module the suggestion came from
    applied: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Suggestion:
        return cls(**data)


@dataclass
class Task:
    id: str
    description: str
    step_type: StepType = StepType.MODULE
    status: TaskStatus = TaskStatus.QUEUED
    attempts: int = 0
    subtask_index: int | None = None
    depends_on: list[str] = field(default_factory=list)
    acceptance: str = ""
    last_error: ErrorRecord | None = None
    raw_output: str = ""

    def reset(self) -> None:
        """Back to a fresh queued task with a full attempt budget."""
        self.status = TaskStatus.QUEUED
        self.attempts = 0
        self.last_error = None
        self.raw_output = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "step_type": self.step_type.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "subtask_index": self.subtask_index,
            "depends_on": list(self.depends_on),
            "acceptance": self.acceptance,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "raw_output": self.raw_output,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Task:
        data = data.copy()
        data["step_type"] = StepType(data["step_type"])
        data["status"] = TaskStatus(data["status"])
        if data.get("last_error"):
            data["last_error"] = ErrorRecord.from_dict(data["last_error"])
        return cls(**data)


@dataclass
class Module:
    id: str
    name: str
    description: str = ""
    step_type: StepType = StepType.MODULE
    status: ModuleStatus = ModuleStatus.DRAFT
    version: int = 0
    tasks: list[Task] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
    files: list[str] = field(default_factory=list)

    def task(self, task_id: str) -> Task:
        for t in self.tasks:
            if t.id == task_id:
                return t
        raise KeyError(f"Module {self.id} has no task {task_id!r}")

    def record_files(self, paths: list[str]) -> None:
        for p in paths:
            if p not in self.files:
                self.files.append(p)

    def recompute_status(self) -> ModuleStatus:
        """needs-work iff any task failed; complete iff every task works."""
        if any(t.status is TaskStatus.FAILED for t in self.tasks):
            self.status = ModuleStatus.NEEDS_WORK
        elif self.tasks and all(t.status is TaskStatus.WORKING for t in self.tasks):
            self.status = ModuleStatus.COMPLETE
        return self.status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "step_type": self.step_type.value,
            "status": self.status.value,
            "version": self.version,
            "tasks": [t.to_dict() for t in self.tasks],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Module:
        data = data.copy()
        data["step_type"] = StepType(data["step_type"])
        data["status"] = ModuleStatus(data["status"])
        data["tasks"] = [Task.from_dict(t) for t in data.get("tasks", [])]
        data["suggestions"] = [Suggestion.from_dict(s) for s in data.get("suggestions", [])]
        return cls(**data)


@dataclass
class VersionEntry:
    version: int
    module_id: str
    description: str
    files: list[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> VersionEntry:
        return cls(**data)


@dataclass
class Project:
    name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    mode: ProjectMode = ProjectMode.DEV
    modules: list[Module] = field(default_factory=list)
    version: int = 0
    deploy_urls: dict[str, str] = field(default_factory=dict)
    history: list[VersionEntry] = field(default_factory=list)

    def module(self, module_id: str) -> Module:
        for m in self.modules:
            if m.id == module_id:
                return m
        raise KeyError(f"Project has no module {module_id!r}")

    def files_for(self, module_ids: list[str]) -> list[str]:
        """Files touched by the given modules, in module order, deduplicated."""
        seen: list[str] = []
        for m in self.modules:
            if m.id in module_ids:
                seen.extend(p for p in m.files if p not in seen)
        return seen

    def bump_version(self, module: Module, description: str, files: list[str]) -> VersionEntry:
        self.version += 1
        module.version += 1
        entry = VersionEntry(
            version=self.version,
            module_id=module.id,
            description=description,
            files=list(files),
        )
        self.history.append(entry)
        return entry

    def ready_for_promotion(self) -> bool:
        return bool(self.modules) and all(
            m.status is ModuleStatus.COMPLETE for m in self.modules
        )

    def promote(self, url: str | None = None) -> ProjectMode:
        """Move dev → test → prod. Blocked while any module needs work."""
        blocked = [m.id for m in self.modules if m.status is ModuleStatus.NEEDS_WORK]
        if blocked:
            raise PromotionBlockedError(
                f"Modules need work before promotion: {', '.join(blocked)}"
            )
        if not self.ready_for_promotion():
            pending = [m.id for m in self.modules if m.status is not ModuleStatus.COMPLETE]
            raise PromotionBlockedError(
                f"Modules not complete: {', '.join(pending) or '(no modules)'}"
            )
        nxt = _NEXT_MODE.get(self.mode)
        if nxt is None:
            raise PromotionBlockedError("Project is already in prod")
        self.mode = nxt
        if url:
            self.deploy_urls[nxt.value] = url
        return nxt

    # ── persistence ──

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mode": self.mode.value,
            "modules": [m.to_dict() for m in self.modules],
            "version": self.version,
            "deploy_urls": dict(self.deploy_urls),
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Project:
        data = data.copy()
        data["mode"] = ProjectMode(data["mode"])
        data["modules"] = [Module.from_dict(m) for m in data.get("modules", [])]
        data["history"] = [VersionEntry.from_dict(h) for h in data.get("history", [])]
        return cls(**data)

    def save(self, root: Path) -> Path:
        path = root / PROJECT_FILE
        atomic_write_text(path, json.dumps(self.to_dict(), indent=2))
        return path

    @classmethod
    def load(cls, root: Path) -> Project:
        path = root / PROJECT_FILE
        return cls.from_dict(json.loads(path.read_text()))
