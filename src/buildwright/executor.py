"""Task state machine and the module runner that drives it.

A task moves queued → generating → writing → verifying → working, looping
back through fixing while it still has attempts left. Every transition is
written to the build ledger. An abort request is only honoured between
transitions, never in the middle of a write or a verification.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from buildwright.agents.generator import CodeGenerator
from buildwright.autofix import AttemptRecord, build_corrective_context
from buildwright.config import OrchestrationConfig
from buildwright.exceptions import ResourceError
from buildwright.memory import MemoryStore, PatternFact
from buildwright.memory.ledger import EventKind, Ledger
from buildwright.project import Module, ModuleStatus, Project, StepType, Task, TaskStatus
from buildwright.tools import classifier
from buildwright.tools.classifier import ErrorCategory, ErrorRecord
from buildwright.tools.workspace import FileMaterializer
from buildwright.utils import Generation, GeneratedFile, Marker, truncate
from buildwright.verifier import Verifier

log = logging.getLogger(__name__)

console = Console()

# Step display styles
STEP_STYLE = {
    StepType.CONTRACTS: ("bold blue", "📐"),
    StepType.SHELL: ("bold cyan", "🧱"),
    StepType.SHARED: ("bold magenta", "🧩"),
    StepType.MODULE: ("bold green", "💻"),
    StepType.INTEGRATION: ("bold yellow", "🔌"),
    StepType.SIMPLIFY: ("bold white", "🧹"),
}


def step_header(step: StepType, message: str) -> Panel:
    """Pretty header for task activity."""
    style, icon = STEP_STYLE.get(step, ("bold white", "⚙"))
    return Panel(
        Text(message, style="white"),
        title=f"{icon} {step.value.upper()}",
        border_style=style,
        expand=False,
    )


class _Aborted(Exception):
    """Internal: abort was seen at a transition boundary."""


@dataclass
class BuildContext:
    """Everything a task needs from the outside world during a build."""

    project: Project
    materializer: FileMaterializer
    verifier: Verifier
    generator_for: Callable[[StepType], CodeGenerator]
    memory: MemoryStore
    ledger: Ledger
    abort: asyncio.Event = field(default_factory=asyncio.Event)
    reference: str = ""


@dataclass
class TaskOutcome:
    status: TaskStatus
    files: list[str] = field(default_factory=list)
    learned: list[PatternFact] = field(default_factory=list)


class TaskExecutor:
    """Runs one task through the state machine until it works or fails."""

    def __init__(self, config: OrchestrationConfig, ctx: BuildContext) -> None:
        self.config = config
        self.ctx = ctx
        self.ceiling = config.max_attempts

    # ── transitions ──

    def _transition(self, module: Module, task: Task, status: TaskStatus) -> None:
        if self.ctx.abort.is_set() and status is not TaskStatus.FAILED:
            raise _Aborted()
        old = task.status
        task.status = status
        self.ctx.ledger.record(
            EventKind.TRANSITION,
            f"{task.id}: {old.value} → {status.value}",
            module_id=module.id,
            task_id=task.id,
            to=status.value,
            attempt=task.attempts,
        )
        log.debug("%s: %s → %s (attempt %d)", task.id, old.value, status.value, task.attempts)

    def _fail(self, module: Module, task: Task, record: ErrorRecord) -> None:
        task.last_error = record
        self._error_event(module, task, [record])
        self._transition(module, task, TaskStatus.FAILED)

    def _error_event(self, module: Module, task: Task, records: list[ErrorRecord]) -> None:
        self.ctx.ledger.record(
            EventKind.ERROR,
            classifier.summarize(records),
            module_id=module.id,
            task_id=task.id,
            attempt=task.attempts,
            errors=[r.to_dict() for r in records],
        )

    # ── main loop ──

    async def run_task(self, module: Module, task: Task) -> TaskOutcome:
        if task.status is TaskStatus.WORKING:
            return TaskOutcome(TaskStatus.WORKING)
        if task.status is TaskStatus.FAILED or task.attempts >= self.ceiling:
            if task.status is not TaskStatus.FAILED:
                self._transition(module, task, TaskStatus.FAILED)
            return TaskOutcome(TaskStatus.FAILED)

        try:
            return await self._run(module, task)
        except _Aborted:
            console.print(f"  [yellow]⏹ {task.id} aborted[/yellow]")
            self._fail(module, task, classifier.aborted())
            return TaskOutcome(TaskStatus.FAILED)

    async def _run(self, module: Module, task: Task) -> TaskOutcome:
        started = time.monotonic()
        generator = self.ctx.generator_for(task.step_type)
        base_temp = generator.config.temperature
        records: list[ErrorRecord] = []
        previous: AttemptRecord | None = None
        touched: list[str] = []

        try:
            while True:
                self._transition(module, task, TaskStatus.GENERATING)
                task.attempts += 1
                label = f"(attempt {task.attempts}/{self.ceiling})"
                console.print(step_header(task.step_type, f"{task.id}: {truncate(task.description, 120)} {label}"))

                # Temperature ramp: nudge the model off the path that just failed
                if task.attempts > 1:
                    generator._temperature_override = min(base_temp + 0.2 * (task.attempts - 1), 1.0)
                    console.print(f"  [dim]🌡 Temperature ramped to {generator._temperature_override:.1f}[/dim]")
                else:
                    generator._temperature_override = None

                generation, records = await self._generate(module, task, generator, records, previous)
                attempt = AttemptRecord(
                    number=task.attempts,
                    files=generation.files if generation is not None else [],
                )
                attempt.before = {f.path: self.ctx.materializer.read(f.path) for f in attempt.files}

                if generation is not None and not records:
                    self._transition(module, task, TaskStatus.WRITING)
                    try:
                        report = self.ctx.materializer.apply(generation.files)
                    except ResourceError as e:
                        console.print(f"  [bold red]✗ Write failed: {e}[/bold red]")
                        self._fail(module, task, classifier.resource_failure(e.path, e.reason))
                        return TaskOutcome(TaskStatus.FAILED, touched)
                    attempt.written = True
                    module.record_files(report.touched)
                    touched.extend(p for p in report.touched if p not in touched)
                    for path in report.written:
                        console.print(f"  [green]📄 {path}[/green]")
                    if report.unchanged:
                        console.print(f"  [dim]⏭ {len(report.unchanged)} unchanged file(s) skipped[/dim]")

                    self._transition(module, task, TaskStatus.VERIFYING)
                    console.print("  [dim]🔍 Verifying preview...[/dim]")
                    records = await self._verify(task)
                    if not records:
                        task.last_error = None
                        task.raw_output = ""
                        self._transition(module, task, TaskStatus.WORKING)
                        console.print(f"  [green]✓ {task.id} working[/green]\n")
                        learned = self._learn(module, task, generation.files, time.monotonic() - started)
                        return TaskOutcome(TaskStatus.WORKING, touched, learned)

                # BROKEN
                task.last_error = records[0]
                task.raw_output = records[0].raw
                self._error_event(module, task, records)
                console.print(f"  [red]✗ Broken:[/red] {classifier.summarize(records)}")
                for r in records[:5]:
                    loc = f" ({r.location})" if r.location else ""
                    console.print(f"    [red]• [{r.category.value}][/red] {truncate(r.message, 150)}{loc}")

                if task.attempts >= self.ceiling:
                    self._transition(module, task, TaskStatus.FAILED)
                    console.print(f"  [bold red]✗ {task.id} failed after {task.attempts} attempt(s)[/bold red]\n")
                    return TaskOutcome(TaskStatus.FAILED, touched)

                self._transition(module, task, TaskStatus.FIXING)
                previous = attempt
        finally:
            generator._temperature_override = None

    async def _generate(
        self,
        module: Module,
        task: Task,
        generator: CodeGenerator,
        records: list[ErrorRecord],
        previous: AttemptRecord | None,
    ) -> tuple[Generation | None, list[ErrorRecord]]:
        """One generation call. Returns the generation and any records that
        make this attempt BROKEN before anything is written."""
        ctx = self.ctx
        corrective = build_corrective_context(task, records, previous) if records else ""
        files = ctx.materializer.select_context(
            ctx.project.files_for(task.depends_on),
            self.config.context_max_files,
            self.config.context_max_chars,
        )
        try:
            patterns = ctx.memory.patterns.format_for_prompt(ctx.project.id)
        except Exception as e:
            # Memory should never break the build
            log.warning("Pattern lookup failed: %s", e)
            patterns = ""

        try:
            generation = await generator.generate(
                module, task,
                files=files,
                patterns=patterns,
                corrective=corrective,
                reference=ctx.reference,
            )
        except httpx.HTTPError as e:
            log.warning("%s: generation call failed: %s", task.id, e)
            return None, [classifier.transport_failure(e)]

        if generation.protocol_violation:
            return generation, [classifier.protocol_violation(generation.raw)]
        if generation.marker is Marker.FAILED:
            return generation, classifier.generation_failed(generation.reason, generation.raw)
        if not generation.files:
            return generation, [classifier.no_files(generation.raw)]
        return generation, []

    async def _verify(self, task: Task) -> list[ErrorRecord]:
        try:
            verdict = await self.ctx.verifier.verify(task)
        except httpx.HTTPError as e:
            log.warning("%s: judge call failed: %s", task.id, e)
            return [classifier.transport_failure(e)]
        if verdict.working:
            if verdict.diagnosis:
                console.print(f"  [dim]{truncate(verdict.diagnosis, 200)}[/dim]")
            return []
        return verdict.errors or [ErrorRecord(
            category=ErrorCategory.UNKNOWN,
            kind="judged_broken",
            message=verdict.diagnosis or "Preview judged broken",
        )]

    def _learn(
        self, module: Module, task: Task, files: list[GeneratedFile], seconds: float,
    ) -> list[PatternFact]:
        ctx = self.ctx
        try:
            learned = ctx.memory.learn_from_task(ctx.project.id, task.step_type, seconds, files)
        except Exception as e:
            log.warning("Learning failed (non-fatal): %s", e)
            return []
        ctx.ledger.record(
            EventKind.TIMER,
            f"{task.step_type.value} took {seconds:.1f}s",
            module_id=module.id,
            task_id=task.id,
            seconds=seconds,
            estimate=ctx.memory.timers.estimate(task.step_type),
        )
        return learned


class ModuleRunner:
    """Runs a module's tasks one after another, stopping at the first failure."""

    def __init__(self, config: OrchestrationConfig, ctx: BuildContext) -> None:
        self.ctx = ctx
        self.executor = TaskExecutor(config, ctx)

    async def run(self, module: Module, skip: set[str] | frozenset[str] = frozenset()) -> Module:
        """Build *module*. Failed tasks listed in *skip* don't stop the run."""
        ctx = self.ctx
        module.status = ModuleStatus.BUILDING
        ctx.ledger.record(EventKind.SYSTEM, f"Building module {module.id}", module_id=module.id)

        touched: list[str] = []
        learned: list[PatternFact] = []
        for task in module.tasks:
            if task.status is TaskStatus.WORKING:
                continue
            if task.status is TaskStatus.FAILED and task.id in skip:
                console.print(f"  [yellow]⏭ Skipping failed task {task.id}[/yellow]")
                continue

            remaining = ctx.memory.timers.estimate_remaining(module.tasks)
            console.print(f"  [dim]⏱ ~{remaining:.0f}s left in {module.id}[/dim]")

            outcome = await self.executor.run_task(module, task)
            touched.extend(p for p in outcome.files if p not in touched)
            learned.extend(outcome.learned)
            if outcome.status is TaskStatus.FAILED:
                break

        status = module.recompute_status()
        if status is ModuleStatus.BUILDING:
            # Nothing failed but not everything works: some tasks never ran
            module.status = ModuleStatus.DRAFT

        ctx.project.bump_version(module, f"{module.name}: {module.status.value}", touched)

        try:
            suggestions = ctx.memory.suggestions.for_module(module, learned)
        except Exception as e:
            log.warning("Suggestions failed (non-fatal): %s", e)
            suggestions = []
        for s in suggestions:
            module.suggestions.append(s)
            ctx.ledger.record(
                EventKind.SUGGESTION, s.description,
                module_id=module.id, suggestion_kind=s.kind,
            )
        return module
