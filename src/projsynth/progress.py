"""Rich progress display for a pipeline run.

Subscribes to a :class:`~projsynth.pipeline.ProjectOrchestrator` and shows:

* **Pipeline level** -- current lifecycle stage and files finished
* **File level** -- one row per file with its processing status
"""

from __future__ import annotations

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)

from projsynth.models import FileState, FileStatusEntry
from projsynth.pipeline.state import PipelineState

_STAGE_LABELS = {
    "idle": "Idle",
    "validating": "Validating files",
    "converting_pdfs": "Converting PDFs",
    "analyzing_parallel": "Analyzing files",
    "merging_results": "Merging results",
    "awaiting_review": "Awaiting image review",
    "creating_project": "Creating project",
    "complete": "Complete",
    "error": "Failed",
}


def describe_status(entry: FileStatusEntry) -> str:
    """Rich markup for one status entry."""
    if entry.state is FileState.SUCCESS:
        return f"[green]done[/green] {entry.detail or ''}".rstrip()
    if entry.state is FileState.ERROR:
        return f"[red]FAIL[/red] {entry.error or ''}".rstrip()
    if entry.state is FileState.PROCESSING:
        return entry.detail or "processing"
    return "[dim]queued[/dim]"


class PipelineProgressTracker:
    """Two-tier Rich progress tracker driven by pipeline state changes.

    Usage::

        tracker = PipelineProgressTracker()
        unsubscribe = orchestrator.subscribe(tracker.update)
        with tracker:
            orchestrator.submit_files(files)
            await orchestrator.wait_until_settled()
        unsubscribe()
    """

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.fields[status]}", style="dim"),
            console=console,
        )
        self._pipeline_task: TaskID | None = None
        self._file_tasks: dict[str, TaskID] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._progress.start()
        self._pipeline_task = self._progress.add_task("[green]Pipeline", total=None, status="starting...")

    def stop(self) -> None:
        self._progress.stop()

    def __enter__(self) -> PipelineProgressTracker:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # State updates
    # ------------------------------------------------------------------

    def update(self, state: PipelineState) -> None:
        """Refresh the display from *state*.  Suitable as a subscriber."""
        statuses = state.context.file_processing_status

        for name, entry in statuses.items():
            task_id = self._file_tasks.get(name)
            if task_id is None:
                task_id = self._progress.add_task(f"[blue]{_truncate(name)}", total=1, status="")
                self._file_tasks[name] = task_id
            finished = entry.state in (FileState.SUCCESS, FileState.ERROR)
            self._progress.update(
                task_id,
                completed=1 if finished else (entry.progress or 0),
                status=describe_status(entry),
            )

        if self._pipeline_task is not None:
            done = sum(1 for e in statuses.values() if e.state in (FileState.SUCCESS, FileState.ERROR))
            status = _STAGE_LABELS.get(state.value.value, state.value.value)
            if state.context.error:
                status = f"[red]{status}[/red]"
            self._progress.update(
                self._pipeline_task,
                total=len(statuses) or None,
                completed=done,
                status=status,
            )

    @property
    def file_names(self) -> list[str]:
        return list(self._file_tasks)


def _truncate(name: str, max_len: int = 40) -> str:
    if len(name) <= max_len:
        return name
    return "..." + name[-(max_len - 3) :]
