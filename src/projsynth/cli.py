"""CLI entry point for project synthesis.

Provides commands:
  - synthesize: Analyze a batch of files and write the resulting project JSON
  - validate: Check a batch of files against the submission rules
  - ask: Question the AI assistant about a synthesized project
  - config: Manage configuration (API key)
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from projsynth.config import SERVICE_NAME, find_api_key, load_synthesis_config
from projsynth.exceptions import ProjsynthError
from projsynth.models import FileState, SourceFile
from projsynth.pipeline.validation import classify_file, validate_files

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Project synthesis - Turn Salesforce exports, email threads and images into a project",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (API keys, settings)")
app.add_typer(config_app, name="config")


def _load_files(paths: list[Path]) -> list[SourceFile]:
    missing = [p for p in paths if not p.is_file()]
    if missing:
        for path in missing:
            console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(code=1)
    return [SourceFile.from_path(p) for p in paths]


def _enable_debug_log() -> None:
    debug_dir = Path.home() / ".projsynth"
    debug_dir.mkdir(exist_ok=True)
    fh = logging.FileHandler(debug_dir / "debug.log")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    root = logging.getLogger("projsynth")
    root.setLevel(logging.DEBUG)
    root.addHandler(fh)


@app.command()
def validate(
    files: Annotated[list[Path], typer.Argument(help="Files to check")],
) -> None:
    """Check files against the batch rules without calling the AI service."""
    sources = _load_files(files)

    table = Table(title="Submitted Files")
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Role", style="green")
    table.add_column("Size", justify="right")
    for source in sources:
        size_kb = source.size / 1024
        size_str = f"{size_kb:.1f} KB" if size_kb < 1024 else f"{size_kb / 1024:.1f} MB"
        table.add_row(source.name, classify_file(source).value, size_str)
    console.print(table)

    errors = validate_files(sources)
    if errors:
        console.print(Panel("\n".join(errors), title="[red]Validation Failed[/red]"))
        raise typer.Exit(code=1)
    console.print("[green]✓[/green] Batch is valid")


@app.command()
def synthesize(
    files: Annotated[list[Path], typer.Argument(help="Salesforce, email, image and PDF files")],
    out: Annotated[
        Path,
        typer.Option("--out", "-o", help="Where to write the project JSON"),
    ] = Path("project.json"),
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", "-n", help="Max concurrent analysis calls"),
    ] = None,
    min_confidence: Annotated[
        float | None,
        typer.Option("--min-confidence", help="Keep image details at or above this confidence (0.0-1.0)"),
    ] = None,
    review: Annotated[
        bool,
        typer.Option("--review/--no-review", help="Import reviewed image details (default: on)"),
    ] = True,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="JSON config file (default: config/projsynth.json)"),
    ] = None,
    debug: Annotated[
        bool, typer.Option("--debug", help="Write debug log to ~/.projsynth/debug.log")
    ] = False,
) -> None:
    """Analyze a batch of files and write the synthesized project as JSON."""
    if debug:
        _enable_debug_log()

    config = load_synthesis_config(config_path)
    if concurrency is not None:
        config.pool.max_concurrent = concurrency
    if min_confidence is not None:
        config.min_review_confidence = min_confidence
    if not config.api_key:
        console.print(
            "[red]Gemini API key not found.[/red]\n"
            "Set it with: [bold]projsynth config set-api-key YOUR_KEY[/bold]\n"
            "Or: export GEMINI_API_KEY=your-key"
        )
        raise typer.Exit(code=1)

    sources = _load_files(files)

    # Import pipeline modules here to keep CLI startup fast for validate/config
    from projsynth.analysis.client import GeminiAnalysisClient
    from projsynth.pipeline import Collaborators, Lifecycle, ProjectOrchestrator
    from projsynth.progress import PipelineProgressTracker
    from projsynth.review import ImageSelection, apply_selection, auto_approve

    console.print(
        Panel(
            f"Synthesizing [bold]{len(sources)}[/bold] files with [bold]{config.model}[/bold]\n"
            f"Concurrency: {config.pool.max_concurrent} | "
            f"Min review confidence: {config.min_review_confidence}",
            title="Project Synthesis",
        )
    )

    async def _run() -> tuple:
        client = GeminiAnalysisClient(config)
        orchestrator = ProjectOrchestrator(Collaborators.from_config(config, client))
        tracker = PipelineProgressTracker(console)
        unsubscribe = orchestrator.subscribe(tracker.update)
        try:
            with tracker:
                orchestrator.submit_files(sources)
                state = await orchestrator.wait_until_settled()
                if state.value is Lifecycle.AWAITING_REVIEW:
                    raws = state.context.analysis_payload.image_data
                    if review:
                        images = auto_approve(raws, config.min_review_confidence)
                    else:
                        images = [apply_selection(raw, ImageSelection()) for raw in raws]
                    orchestrator.confirm_review(images)
                    state = await orchestrator.wait_for(Lifecycle.COMPLETE, Lifecycle.ERROR)
        finally:
            unsubscribe()
            await orchestrator.drain()
            await client.close()
        return state, orchestrator.history

    try:
        state, history = asyncio.run(_run())
    except ProjsynthError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    logger.debug("Pipeline history: %s", " -> ".join(v.value for v in history))
    _print_file_statuses(state.context.file_processing_status)

    project = state.context.newly_created_project
    if project is None:
        console.print(Panel(state.context.error or "Pipeline stopped", title="[red]Synthesis Failed[/red]"))
        raise typer.Exit(code=1)

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(project.model_dump_json(indent=2), encoding="utf-8")

    summary = Table(title=project.name)
    summary.add_column("Field", style="bold")
    summary.add_column("Value")
    summary.add_row("Project id", project.id)
    summary.add_row("Opportunity", project.opportunity_number)
    summary.add_row("Account", project.data.project_details.account_name or "-")
    summary.add_row("Action items", str(len(project.data.action_items)))
    summary.add_row("Conversation nodes", str(len(project.data.conversation_nodes)))
    summary.add_row("Images", str(len(project.images)))
    console.print(Panel(summary, title="Project Created"))
    console.print(f"[green]✓[/green] Wrote {out}")


def _print_file_statuses(statuses) -> None:
    if not statuses:
        return
    table = Table(title="Files")
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Detail", style="dim")
    styles = {
        FileState.SUCCESS: "[green]success[/green]",
        FileState.ERROR: "[red]error[/red]",
        FileState.PROCESSING: "[yellow]processing[/yellow]",
        FileState.QUEUED: "queued",
    }
    for name, entry in statuses.items():
        table.add_row(name, styles[entry.state], entry.error or entry.detail or "")
    console.print(table)


@app.command()
def ask(
    project_file: Annotated[Path, typer.Argument(help="Project JSON written by synthesize")],
    question: Annotated[str, typer.Argument(help="Question about the project")],
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="JSON config file (default: config/projsynth.json)"),
    ] = None,
) -> None:
    """Ask the AI assistant a question answered only from a project's data."""
    if not project_file.is_file():
        console.print(f"[red]Error:[/red] File not found: {project_file}")
        raise typer.Exit(code=1)

    from pydantic import ValidationError

    from projsynth.analysis.client import GeminiAnalysisClient
    from projsynth.project import Project

    try:
        project = Project.model_validate_json(project_file.read_text(encoding="utf-8"))
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Not a project file ({e.error_count()} problem(s)): {project_file}")
        raise typer.Exit(code=1)

    config = load_synthesis_config(config_path)
    if not config.api_key:
        console.print(
            "[red]Gemini API key not found.[/red]\n"
            "Set it with: [bold]projsynth config set-api-key YOUR_KEY[/bold]\n"
            "Or: export GEMINI_API_KEY=your-key"
        )
        raise typer.Exit(code=1)

    async def _ask() -> str:
        client = GeminiAnalysisClient(config)
        try:
            return await client.chat(project, question)
        finally:
            await client.close()

    try:
        answer = asyncio.run(_ask())
    except ProjsynthError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(Panel(answer, title=f"[bold]{project.name}[/bold]"))


@config_app.command("set-api-key")
def set_api_key(
    key: Annotated[
        str,
        typer.Argument(help="Gemini API key to store in system keyring"),
    ],
) -> None:
    """Store the Gemini API key in the system keyring (service: projsynth-gemini)."""
    if not key or key.strip() == "":
        console.print("[red]Error:[/red] API key cannot be empty")
        raise typer.Exit(code=1)

    from projsynth.config import set_api_key as _store_key

    try:
        _store_key(key.strip())
        console.print(
            "[green]✓[/green] API key stored successfully in system keyring "
            f"(service: {SERVICE_NAME})"
        )
    except Exception as e:
        console.print(f"[red]Error:[/red] Failed to store API key: {e}")
        raise typer.Exit(code=1)


@config_app.command("show")
def show_config(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="JSON config file (default: config/projsynth.json)"),
    ] = None,
) -> None:
    """Show the effective configuration with the API key masked."""
    config = load_synthesis_config(config_path)
    api_key = find_api_key()

    table = Table(title="Configuration")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    if api_key:
        masked = api_key[:8] + "*" * max(1, len(api_key) - 8)
        table.add_row("API key", masked)
    else:
        table.add_row("API key", "[yellow]not set[/yellow]")
    table.add_row("Model", config.model)
    table.add_row("Temperature", str(config.temperature))
    table.add_row("Min review confidence", str(config.min_review_confidence))
    table.add_row("Max concurrent", str(config.pool.max_concurrent))
    table.add_row("Breaker threshold", str(config.pool.failure_threshold))
    table.add_row("Breaker timeout", f"{config.pool.timeout}s")
    table.add_row("Max attempts", str(config.pool.max_attempts))
    console.print(table)
