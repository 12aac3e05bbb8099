"""Immutable pipeline state: lifecycle value, run context, generation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from projsynth.analysis.schemas import SynthesizedTextData
from projsynth.models import FileStatusEntry, SourceFile
from projsynth.pipeline.lifecycle import Lifecycle
from projsynth.project import Project, ProjectImage, RawImageAnalysis, SourceFileNames


def _empty_status() -> Mapping[str, FileStatusEntry]:
    return MappingProxyType({})


@dataclass(frozen=True)
class AnalysisPayload:
    """Everything the analysis stage hands to review and project creation."""

    text_data: SynthesizedTextData
    image_data: tuple[RawImageAnalysis, ...] = ()
    source_files: SourceFileNames = field(default_factory=SourceFileNames)
    raw_salesforce_content: str | None = None
    raw_email_content: str | None = None

    @property
    def has_images(self) -> bool:
        return bool(self.image_data)


@dataclass(frozen=True)
class PipelineContext:
    """Data owned by one pipeline run.

    Created at submission and discarded at reset or cancel.  The status
    map is read-only; the reducer replaces it wholesale on every update.
    """

    files: tuple[SourceFile, ...] = ()
    converted_images_from_pdfs: tuple[SourceFile, ...] = ()
    file_processing_status: Mapping[str, FileStatusEntry] = field(default_factory=_empty_status)
    error: str | None = None
    analysis_payload: AnalysisPayload | None = None
    final_images: tuple[ProjectImage, ...] = ()
    newly_created_project: Project | None = None


@dataclass(frozen=True)
class PipelineState:
    """Current lifecycle value plus its context.

    ``generation`` increases on every submission, cancel and reset.  Events
    produced by work started under an older generation are stale and get
    dropped by the driver.
    """

    value: Lifecycle = Lifecycle.IDLE
    context: PipelineContext = field(default_factory=PipelineContext)
    generation: int = 0


def initial_state() -> PipelineState:
    return PipelineState()
