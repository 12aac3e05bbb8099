"""Events accepted by the pipeline reducer.

Each event class names the lifecycle FSM event it triggers through
``name``.  Events are plain frozen values; the reducer decides whether
one is legal in the current state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from projsynth.models import FileState, SourceFile
from projsynth.pipeline.state import AnalysisPayload
from projsynth.project import Project, ProjectImage


@dataclass(frozen=True)
class Event:
    name: ClassVar[str] = ""


@dataclass(frozen=True)
class SubmitFiles(Event):
    name: ClassVar[str] = "submit_files"
    files: tuple[SourceFile, ...] = ()


@dataclass(frozen=True)
class ValidationSuccess(Event):
    name: ClassVar[str] = "validation_success"


@dataclass(frozen=True)
class SetError(Event):
    name: ClassVar[str] = "set_error"
    error: str = ""


@dataclass(frozen=True)
class PdfConversionComplete(Event):
    name: ClassVar[str] = "pdf_conversion_complete"
    images: tuple[SourceFile, ...] = ()


@dataclass(frozen=True)
class UpdateStatus(Event):
    """Update one file's entry in the status map."""

    name: ClassVar[str] = "update_status"
    file_name: str = ""
    state: FileState = FileState.PROCESSING
    detail: str | None = None
    error: str | None = None
    progress: float | None = None


@dataclass(frozen=True)
class AnalysisComplete(Event):
    name: ClassVar[str] = "analysis_complete"
    payload: AnalysisPayload | None = None


@dataclass(frozen=True)
class ResultsMerged(Event):
    """Internal: leaves the transient merging state."""

    name: ClassVar[str] = "results_merged"


@dataclass(frozen=True)
class ConfirmReview(Event):
    name: ClassVar[str] = "confirm_review"
    images: tuple[ProjectImage, ...] = ()


@dataclass(frozen=True)
class ProjectCreated(Event):
    name: ClassVar[str] = "project_created"
    project: Project | None = None


@dataclass(frozen=True)
class Cancel(Event):
    name: ClassVar[str] = "cancel"


@dataclass(frozen=True)
class Reset(Event):
    name: ClassVar[str] = "reset"
