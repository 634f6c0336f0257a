from __future__ import annotations

import asyncio
import json

import pytest

from buildwright.config import Config
from buildwright.exceptions import PreviewUnreachableError
from buildwright.memory import InMemoryHistoryStore
from buildwright.models.mock import MockOllamaClient
from buildwright.orchestrator import Orchestrator
from buildwright.project import Module, Project, StepType, Task
from buildwright.tools.installer import InstallResult


class FakePreview:
    """Stands in for PreviewController: no process, scripted reachability."""

    def __init__(self, unreachable: bool = False, console: str = "", output: str = "") -> None:
        self.unreachable = unreachable
        self.console = console
        self.output = output
        self.restarts = 0
        self.stops = 0
        self.running = False
        self.on_restart = None

    @property
    def url(self) -> str:
        return "http://127.0.0.1:5173"

    async def restart(self) -> int:
        await asyncio.sleep(0)
        self.restarts += 1
        if self.on_restart is not None:
            self.on_restart()
        if self.unreachable:
            self.running = False
            raise PreviewUnreachableError("Preview did not answer on port 5173", output=self.output)
        self.running = True
        return 5173

    async def stop(self) -> None:
        self.stops += 1
        self.running = False

    def console_snapshot(self) -> str:
        return self.console

    def clear_console(self) -> None:
        self.console = ""


class FakeInstaller:
    """Stands in for DependencyInstaller: hands out scripted results."""

    def __init__(self, results: list[InstallResult] | None = None) -> None:
        self.results = list(results or [])
        self.calls = 0

    async def ensure(self) -> InstallResult:
        self.calls += 1
        if self.results:
            return self.results.pop(0)
        return InstallResult(ok=True, ran=False)


class FakeScreenshots:
    def __init__(self, png: bytes | None = b"\x89PNG fake", console_errors: list[str] | None = None) -> None:
        self.png = png
        self.console_errors = list(console_errors or [])
        self.captures = 0

    async def capture(self, url: str) -> bytes | None:
        self.captures += 1
        return self.png


def verdict(working: bool, diagnosis: str = "") -> str:
    return json.dumps({"verdict": "WORKING" if working else "BROKEN", "diagnosis": diagnosis})


def files_reply(files: dict[str, str], marker: str = "---TASK-COMPLETE---") -> str:
    blocks = "".join(
        f'---FILE-START path="{path}"---\n{content}\n---FILE-END---\n'
        for path, content in files.items()
    )
    return f"Here you go.\n\n{blocks}\n{marker}"


def one_module_project(tasks: int = 1, module_id: str = "notes") -> Project:
    module = Module(id=module_id, name="Notes", description="Take notes")
    for i in range(tasks):
        module.tasks.append(Task(
            id=f"{module_id}-{i + 1}",
            description=f"Build part {i + 1} of the notes feature",
            depends_on=["contracts", "shell", "shared"],
            acceptance="The notes page renders",
        ))
    return Project(name="Demo", modules=[module])


@pytest.fixture
def config(tmp_path) -> Config:
    cfg = Config()
    cfg.memory.path = str(tmp_path / "memory")
    cfg.screenshots.enabled = False
    cfg.install.enabled = False
    return cfg


@pytest.fixture
def make_orchestrator(tmp_path, config):
    """Build an Orchestrator on fakes; returns (orchestrator, client, preview)."""

    def _make(script: dict[str, list] | None = None, preview: FakePreview | None = None,
              screenshots: FakeScreenshots | None = None, installer: FakeInstaller | None = None):
        client = MockOllamaClient(script)
        preview = preview or FakePreview()
        orch = Orchestrator(
            config,
            tmp_path / "app",
            client=client,
            preview=preview,
            screenshots=screenshots or FakeScreenshots(),
            installer=installer,
            store=InMemoryHistoryStore(),
        )
        return orch, client, preview

    return _make
