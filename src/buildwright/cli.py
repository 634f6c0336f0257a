"""CLI entry point — plan, build and promote generated apps."""

from __future__ import annotations

import asyncio
import logging
import shlex
import signal
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from buildwright.exceptions import BuildwrightError

app = typer.Typer(
    name="buildwright",
    help="Turn a product spec into a working React app, one verified task at a time.",
    no_args_is_help=True,
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_spec(spec_path: Path):
    from buildwright.planner import load_product_spec

    try:
        return load_product_spec(spec_path)
    except BuildwrightError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(1)


def _dry_run_config(config) -> None:
    """Mock model, static file server instead of the dev server, no browser
    and no package install."""
    server = f"{shlex.quote(sys.executable)} -m http.server {{port}} --bind {config.preview.host}"
    config.preview.command = server
    config.preview.settle_delay = 0.0
    config.screenshots.enabled = False
    config.install.enabled = False


def _make_orchestrator(config, project_dir: Path, dry_run: bool):
    from buildwright.orchestrator import Orchestrator

    client = store = None
    if dry_run:
        from buildwright.memory import InMemoryHistoryStore
        from buildwright.models.mock import MockOllamaClient

        client = MockOllamaClient()
        # Canned timings would only skew the real estimates
        store = InMemoryHistoryStore()
        _dry_run_config(config)
        console.print(
            "[bold magenta]🧪 DRY-RUN MODE — using MockOllamaClient "
            "(no Ollama needed)[/bold magenta]\n"
        )
    return Orchestrator(config, project_dir, client=client, store=store, stream=not dry_run)


async def _drive(orchestrator, coro):
    """Run *coro* with Ctrl-C mapped to a graceful abort."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.abort)
    except NotImplementedError:  # pragma: no cover - Windows
        pass
    try:
        return await coro
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:  # pragma: no cover
            pass
        await orchestrator.close()


@app.command()
def plan(
    spec_path: Path = typer.Argument(..., help="Product spec (YAML or JSON)"),
    config_path: Path = typer.Option(
        "buildwright.yaml", "--config", "-c", help="Path to config file"
    ),
) -> None:
    """Show the modules and tasks a spec would be built as."""
    from buildwright.config import load_config
    from buildwright.planner import ModulePlanner

    spec = _load_spec(spec_path)
    config = load_config(config_path)
    try:
        modules = ModulePlanner(config.orchestration).plan(spec)
    except BuildwrightError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(1)

    table = Table(title=f"📋 {spec.name}: {len(modules)} module(s)")
    table.add_column("Module")
    table.add_column("Step")
    table.add_column("Task")
    table.add_column("Depends on", style="dim")
    for m in modules:
        for i, t in enumerate(m.tasks):
            table.add_row(
                m.id if i == 0 else "",
                m.step_type.value if i == 0 else "",
                t.description,
                ", ".join(t.depends_on),
            )
    console.print(table)


@app.command()
def build(
    spec_path: Path = typer.Argument(..., help="Product spec (YAML or JSON)"),
    project_dir: Path = typer.Option(
        Path("app"), "--project-dir", "-p", help="Where the generated app lives",
    ),
    config_path: Path = typer.Option(
        "buildwright.yaml", "--config", "-c", help="Path to config file"
    ),
    module: list[str] = typer.Option(
        None, "--module", "-m", help="Only build these module ids (repeatable)",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Mock model calls and serve files statically",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build (or resume building) the app described by a spec."""
    from buildwright.config import load_config

    _setup_logging(verbose)
    spec = _load_spec(spec_path)
    config = load_config(config_path)

    console.print(
        Panel(
            f"[bold cyan]{spec.name}[/bold cyan]\n[dim]{spec.description}[/dim]",
            title="[bold]🏗  buildwright[/bold]",
            border_style="cyan",
        )
    )

    orchestrator = _make_orchestrator(config, project_dir, dry_run)
    try:
        project = orchestrator.load_or_plan(spec)
        asyncio.run(_drive(orchestrator, orchestrator.build(project, module or None)))
    except (BuildwrightError, KeyError) as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(1)


def _task_command(
    action: str,
    project_dir: Path,
    module_id: str,
    task_id: str,
    spec_path: Path | None,
    config_path: Path,
    dry_run: bool,
) -> None:
    from buildwright.config import load_config
    from buildwright.project import Project

    config = load_config(config_path)
    orchestrator = _make_orchestrator(config, project_dir, dry_run)
    if spec_path is not None:
        orchestrator.reference = _load_spec(spec_path).reference()
    try:
        project = Project.load(project_dir)
        run = orchestrator.retry_task if action == "retry" else orchestrator.skip_task
        project = asyncio.run(_drive(orchestrator, run(project, module_id, task_id)))
    except FileNotFoundError:
        console.print(f"[bold red]✗ No project in {project_dir}[/bold red]")
        raise typer.Exit(1)
    except (BuildwrightError, KeyError, ValueError) as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(1)
    orchestrator.print_summary(project)


@app.command()
def retry(
    project_dir: Path = typer.Argument(..., help="Project directory"),
    module_id: str = typer.Argument(...),
    task_id: str = typer.Argument(...),
    spec_path: Path | None = typer.Option(None, "--spec", help="Product spec for prompt context"),
    config_path: Path = typer.Option("buildwright.yaml", "--config", "-c"),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Give a failed task a fresh attempt budget and resume its module."""
    _task_command("retry", project_dir, module_id, task_id, spec_path, config_path, dry_run)


@app.command()
def skip(
    project_dir: Path = typer.Argument(..., help="Project directory"),
    module_id: str = typer.Argument(...),
    task_id: str = typer.Argument(...),
    spec_path: Path | None = typer.Option(None, "--spec", help="Product spec for prompt context"),
    config_path: Path = typer.Option("buildwright.yaml", "--config", "-c"),
    dry_run: bool = typer.Option(False, "--dry-run"),
) -> None:
    """Leave a failed task as-is and carry on with the rest of its module."""
    _task_command("skip", project_dir, module_id, task_id, spec_path, config_path, dry_run)


@app.command()
def promote(
    project_dir: Path = typer.Argument(..., help="Project directory"),
    url: str | None = typer.Option(None, "--url", help="Deploy URL for the new stage"),
) -> None:
    """Move a project dev → test → prod once every module is complete."""
    from buildwright.project import Project

    try:
        project = Project.load(project_dir)
        mode = project.promote(url)
    except FileNotFoundError:
        console.print(f"[bold red]✗ No project in {project_dir}[/bold red]")
        raise typer.Exit(1)
    except BuildwrightError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(1)
    project.save(project_dir)
    console.print(f"[bold green]✓ {project.name} promoted to {mode.value}[/bold green]")


@app.command()
def timers(
    config_path: Path = typer.Option(
        "buildwright.yaml", "--config", "-c", help="Path to config file"
    ),
) -> None:
    """Show the learned per-step time estimates."""
    from buildwright.config import load_config
    from buildwright.memory import MemoryStore

    config = load_config(config_path)
    memory = MemoryStore(config.memory)
    table = Table(title="⏱ Step estimates")
    table.add_column("Step")
    table.add_column("Estimate", justify="right")
    table.add_column("Samples", justify="right")
    for step, stat in memory.timers.snapshot().items():
        table.add_row(step, f"{stat['avg']:.1f}s", str(stat["samples"]))
    console.print(table)


@app.command()
def status(
    config_path: Path = typer.Option(
        "buildwright.yaml", "--config", "-c", help="Path to config file"
    ),
) -> None:
    """Check Ollama connection and list available models."""
    from buildwright.config import load_config
    from buildwright.models.ollama import OllamaClient

    config = load_config(config_path)

    async def _check() -> None:
        client = OllamaClient(base_url=config.ollama.base_url)
        healthy = await client.health_check()
        if not healthy:
            console.print("[bold red]✗ Ollama is not running![/bold red]")
            console.print("  Start it with: [bold]ollama serve[/bold]")
            await client.close()
            return

        console.print("[bold green]✓ Ollama is running[/bold green]")
        models = await client.list_models()
        console.print(f"\n[bold]Available models ({len(models)}):[/bold]")
        wanted = {a.model for a in config.agents.values()}
        for model in models:
            mark = " [green](configured)[/green]" if model in wanted else ""
            console.print(f"  • {model}{mark}")
        missing = wanted - set(models)
        for model in sorted(missing):
            console.print(f"  [yellow]⚠ {model} is configured but not pulled[/yellow]")
        await client.close()

    asyncio.run(_check())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
