"""Build orchestration — plans a project and drives its modules to done."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from rich.rule import Rule
from rich.table import Table

from buildwright.agents.generator import CodeGenerator
from buildwright.agents.judge import VerdictJudge
from buildwright.config import Config
from buildwright.exceptions import BuildInProgressError
from buildwright.executor import BuildContext, ModuleRunner, console
from buildwright.memory import HistoryStore, MemoryStore
from buildwright.memory.ledger import EventKind, Ledger
from buildwright.models.ollama import OllamaClient
from buildwright.planner import ModulePlanner, ProductSpec
from buildwright.project import PROJECT_FILE, Module, ModuleStatus, Project, StepType, TaskStatus
from buildwright.tools.installer import DependencyInstaller
from buildwright.tools.preview import PreviewController
from buildwright.tools.screenshot import ScreenshotService
from buildwright.tools.workspace import FileMaterializer
from buildwright.verifier import Verifier

log = logging.getLogger(__name__)

LEDGER_FILE = Path(".buildwright") / "ledger.json"

STATUS_STYLE = {
    ModuleStatus.DRAFT: "dim",
    ModuleStatus.BUILDING: "cyan",
    ModuleStatus.COMPLETE: "green",
    ModuleStatus.NEEDS_WORK: "red",
}


class Orchestrator:
    """Drives the plan → build → verify → fix loop for one project directory."""

    def __init__(
        self,
        config: Config,
        root: Path,
        client=None,
        preview: PreviewController | None = None,
        screenshots: ScreenshotService | None = None,
        installer: DependencyInstaller | None = None,
        store: HistoryStore | None = None,
        stream: bool = False,
    ) -> None:
        self.config = config
        self.root = root
        self.ledger = Ledger(limit=config.orchestration.ledger_max_events)
        self.ledger.load(root / LEDGER_FILE)
        self.client = client or OllamaClient(
            base_url=config.ollama.base_url,
            timeout=config.ollama.timeout,
            keep_alive=config.ollama.keep_alive,
        )
        self.materializer = FileMaterializer(root)
        self.preview = preview or PreviewController(root, config.preview)
        self.screenshots = screenshots or ScreenshotService(config.screenshots)
        self.memory = MemoryStore(config.memory, store=store)
        self.judge = VerdictJudge("judge", config.agents["judge"], self.client)
        self.installer = installer or DependencyInstaller(root, config.install)
        self.verifier = Verifier(self.preview, self.screenshots, self.judge, self.installer)
        self.stream = stream
        self.reference = ""

        self._generators: dict[str, CodeGenerator] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._skipped: dict[tuple[str, str], set[str]] = {}
        self._abort = asyncio.Event()

    # ── planning ──

    def plan(self, spec: ProductSpec) -> Project:
        """Fresh project with the planned modules."""
        self.reference = spec.reference()
        modules = ModulePlanner(self.config.orchestration).plan(spec)
        project = Project(name=spec.name, modules=modules)
        self.ledger.record(
            EventKind.SYSTEM,
            f"Planned {len(modules)} module(s) for {spec.name}",
            project_id=project.id,
        )
        return project

    def load_or_plan(self, spec: ProductSpec) -> Project:
        """Resume the project saved in the root, or plan a new one."""
        if (self.root / PROJECT_FILE).exists():
            self.reference = spec.reference()
            project = Project.load(self.root)
            console.print(f"[dim]Resuming {project.name} (v{project.version}) from {self.root}[/dim]")
            return project
        return self.plan(spec)

    # ── building ──

    def _generator_for(self, step: StepType) -> CodeGenerator:
        agent_config = self.config.agent_for_step(step.value)
        key = agent_config.model
        if key not in self._generators:
            self._generators[key] = CodeGenerator(
                "generator", agent_config, self.client, stream=self.stream,
            )
        return self._generators[key]

    def _context(self, project: Project) -> BuildContext:
        return BuildContext(
            project=project,
            materializer=self.materializer,
            verifier=self.verifier,
            generator_for=self._generator_for,
            memory=self.memory,
            ledger=self.ledger,
            abort=self._abort,
            reference=self.reference,
        )

    def _lock_for(self, project: Project) -> asyncio.Lock:
        lock = self._locks.setdefault(project.id, asyncio.Lock())
        if lock.locked():
            raise BuildInProgressError(f"Project {project.name!r} is already building")
        return lock

    async def build(self, project: Project, module_ids: list[str] | None = None) -> Project:
        """Build the requested modules (all by default), in plan order.

        A module that ends in needs-work doesn't stop the ones after it.
        """
        async with self._lock_for(project):
            if not await self.client.health_check():
                console.print("[bold red]✗ Cannot connect to Ollama. Is it running?[/bold red]")
                return project

            wanted = set(module_ids) if module_ids else None
            if wanted:
                unknown = wanted - {m.id for m in project.modules}
                if unknown:
                    raise KeyError(f"Unknown module(s): {', '.join(sorted(unknown))}")
            targets = [m for m in project.modules if wanted is None or m.id in wanted]

            self._abort.clear()
            runner = ModuleRunner(self.config.orchestration, self._context(project))
            try:
                for module in targets:
                    if self._abort.is_set():
                        console.print("[yellow]⏹ Build aborted.[/yellow]")
                        break
                    if module.status is ModuleStatus.COMPLETE:
                        console.print(f"[dim]✓ {module.id} already complete[/dim]")
                        continue
                    await self._run_module(runner, project, module)
            except KeyboardInterrupt:
                console.print("\n[yellow]⚠ Interrupted — saving current state...[/yellow]")
            finally:
                await self.preview.stop()
                self._save_state(project)

        self.print_summary(project)
        return project

    async def _run_module(self, runner: ModuleRunner, project: Project, module: Module) -> None:
        console.print(Rule(f"[bold]{module.name}[/bold] [dim]({module.id}, {len(module.tasks)} task(s))[/dim]"))
        skip = self._skipped.get((project.id, module.id), set())
        await runner.run(module, skip=skip)
        style = STATUS_STYLE[module.status]
        console.print(f"[{style}]● {module.id}: {module.status.value}[/{style}]\n")
        project.save(self.root)

    async def _rerun(self, project: Project, module: Module) -> Project:
        async with self._lock_for(project):
            self._abort.clear()
            runner = ModuleRunner(self.config.orchestration, self._context(project))
            try:
                await self._run_module(runner, project, module)
            finally:
                await self.preview.stop()
                self._save_state(project)
        return project

    async def retry_task(self, project: Project, module_id: str, task_id: str) -> Project:
        """Give a task a fresh attempt budget and resume its module from it."""
        module = project.module(module_id)
        task = module.task(task_id)
        task.reset()
        self._skipped.get((project.id, module_id), set()).discard(task_id)
        self.ledger.record(EventKind.SYSTEM, f"Manual retry of {task_id}", module_id=module_id, task_id=task_id)
        return await self._rerun(project, module)

    async def skip_task(self, project: Project, module_id: str, task_id: str) -> Project:
        """Leave a failed task failed and carry on with the tasks after it."""
        module = project.module(module_id)
        task = module.task(task_id)
        if task.status is not TaskStatus.FAILED:
            raise ValueError(f"Only failed tasks can be skipped ({task_id} is {task.status.value})")
        self._skipped.setdefault((project.id, module_id), set()).add(task_id)
        self.ledger.record(EventKind.SYSTEM, f"Skipped {task_id}", module_id=module_id, task_id=task_id)
        return await self._rerun(project, module)

    def abort(self) -> None:
        """Ask the running build to stop at the next task transition."""
        self._abort.set()

    async def close(self) -> None:
        await self.preview.stop()
        await self.client.close()

    # ── output ──

    def _save_state(self, project: Project) -> None:
        """Persist the project and the ledger for resume / debugging."""
        project.save(self.root)
        ledger_path = self.root / LEDGER_FILE
        self.ledger.save(ledger_path)
        console.print(f"[dim]Ledger saved: {ledger_path} ({self.ledger.count} events)[/dim]")

    def print_summary(self, project: Project) -> None:
        table = Table(title=f"{project.name} — v{project.version} ({project.mode.value})")
        table.add_column("Module")
        table.add_column("Status")
        table.add_column("Tasks", justify="right")
        table.add_column("Attempts", justify="right")
        table.add_column("Version", justify="right")
        for m in project.modules:
            style = STATUS_STYLE[m.status]
            working = sum(1 for t in m.tasks if t.status is TaskStatus.WORKING)
            table.add_row(
                m.id,
                f"[{style}]{m.status.value}[/{style}]",
                f"{working}/{len(m.tasks)}",
                str(sum(t.attempts for t in m.tasks)),
                str(m.version),
            )
        console.print(table)

        for m in project.modules:
            for s in m.suggestions:
                if not s.applied and s.kind == "warning":
                    console.print(f"  [yellow]⚠ {s.description}[/yellow]")
