"""Entry-effect procedures for the pipeline lifecycle.

Each procedure receives the context of the state that was just entered
and a ``dispatch`` callable bound to that run's generation.  Procedures
never touch pipeline state directly: every outcome goes back through
``dispatch`` as an event.

External work (model calls, PDF rasterization, image recompression) is
reached only through the :class:`Collaborators` bundle so tests can swap
in fakes.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

from projsynth.analysis.prompts import PromptKind
from projsynth.analysis.schemas import EmailAnalysis, ImageAnalysisReport, SalesforceAnalysis
from projsynth.exceptions import AggregateAnalysisError
from projsynth.media.images import resize_and_compress_image, to_data_url
from projsynth.media.pdf import PageProgress, ProgressCallback, convert_pdf_to_images, dedupe_page_names
from projsynth.models import FileRole, FileState, SourceFile, SynthesisConfig
from projsynth.pipeline.events import (
    AnalysisComplete,
    Event,
    PdfConversionComplete,
    ProjectCreated,
    ResultsMerged,
    SetError,
    UpdateStatus,
    ValidationSuccess,
)
from projsynth.pipeline.merge import build_project, build_raw_previews, build_text_data
from projsynth.pipeline.state import AnalysisPayload, PipelineContext
from projsynth.pipeline.validation import files_with_role, validate_files
from projsynth.pool.analysis_pool import AnalysisPool
from projsynth.project import RawImageAnalysis, SourceFileNames

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

Dispatch = Callable[[Event], Any]

ANALYSIS_FAILED_MESSAGE = (
    "Project synthesis failed. Please review the errors on the individual files below and try again."
)
PDF_FAILED_MESSAGE = "Failed to convert one or more PDF files."


class Analyzer(Protocol):
    async def analyze(self, file: SourceFile, prompt_kind: PromptKind, schema: type[ModelT]) -> ModelT: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_project_id() -> str:
    return f"proj-{uuid.uuid4().hex[:12]}"


@dataclass
class Collaborators:
    """External services used by the entry effects.

    Attributes:
        analyzer: Anything with ``analyze(file, prompt_kind, schema)``.
        convert_pdf: ``(pdf, on_progress) -> list[SourceFile]``.
        resize_image: ``(image) -> SourceFile`` applied before image analysis.
        pool_factory: Builds the one :class:`AnalysisPool` for a run.
        clock: Timestamp source for project creation.
        id_factory: Project id source.
    """

    analyzer: Analyzer
    convert_pdf: Callable[[SourceFile, ProgressCallback | None], Awaitable[list[SourceFile]]] = convert_pdf_to_images
    resize_image: Callable[[SourceFile], Awaitable[SourceFile]] = resize_and_compress_image
    pool_factory: Callable[[], AnalysisPool] = AnalysisPool
    clock: Callable[[], datetime] = _utc_now
    id_factory: Callable[[], str] = _new_project_id

    @classmethod
    def from_config(cls, config: SynthesisConfig, analyzer: Analyzer) -> Collaborators:
        """Wire the real media helpers and pool with *config*'s settings."""
        return cls(
            analyzer=analyzer,
            convert_pdf=functools.partial(convert_pdf_to_images, scale=config.pdf_render_scale),
            resize_image=functools.partial(
                resize_and_compress_image,
                max_dimension=config.image_max_dimension,
                quality=config.image_quality,
            ),
            pool_factory=functools.partial(AnalysisPool, config.pool),
        )


# ----------------------------------------------------------------------
# Validating
# ----------------------------------------------------------------------


async def run_validation(context: PipelineContext, dispatch: Dispatch, collaborators: Collaborators) -> None:
    errors = validate_files(context.files)
    if errors:
        logger.info("Validation failed with %d violation(s)", len(errors))
        dispatch(SetError("\n".join(errors)))
        return
    dispatch(ValidationSuccess())


# ----------------------------------------------------------------------
# ConvertingPdfs
# ----------------------------------------------------------------------


async def run_pdf_conversion(context: PipelineContext, dispatch: Dispatch, collaborators: Collaborators) -> None:
    pdfs = files_with_role(context.files, FileRole.PDF)

    async def convert_one(pdf: SourceFile) -> list[SourceFile]:
        dispatch(UpdateStatus(pdf.name, FileState.PROCESSING, detail="Converting PDF...", progress=0.0))

        def on_progress(page: PageProgress) -> None:
            dispatch(
                UpdateStatus(
                    pdf.name,
                    FileState.PROCESSING,
                    detail=f"Converting page {page.current_page}/{page.total_pages}",
                    progress=page.current_page / page.total_pages if page.total_pages else None,
                )
            )

        try:
            images = await collaborators.convert_pdf(pdf, on_progress)
        except Exception as exc:
            logger.error("PDF conversion failed for %s: %s", pdf.name, exc)
            dispatch(UpdateStatus(pdf.name, FileState.ERROR, error=f"PDF Fail: {exc}"))
            raise
        dispatch(
            UpdateStatus(pdf.name, FileState.SUCCESS, detail=f"Converted to {len(images)} image(s)", progress=1.0)
        )
        return images

    outcomes = await asyncio.gather(*(convert_one(pdf) for pdf in pdfs), return_exceptions=True)
    if any(isinstance(o, BaseException) for o in outcomes):
        dispatch(SetError(PDF_FAILED_MESSAGE))
        return

    pages = [image for page_images in outcomes for image in page_images]
    images = tuple(dedupe_page_names(pages, (f.name for f in context.files)))
    logger.info("Converted %d PDF(s) into %d page image(s)", len(pdfs), len(images))
    dispatch(PdfConversionComplete(images))


# ----------------------------------------------------------------------
# AnalyzingParallel
# ----------------------------------------------------------------------


def _analysis_task(
    file: SourceFile,
    dispatch: Dispatch,
    work: Callable[[], Awaitable[ModelT]],
) -> Callable[[], Awaitable[ModelT]]:
    """Wrap *work* with per-attempt status updates for *file*.

    Only success is final inside a task: a failed attempt may be retried,
    so final error statuses are recorded once the whole batch settles.
    """
    async def task() -> ModelT:
        dispatch(UpdateStatus(file.name, FileState.PROCESSING, detail="Analyzing..."))
        try:
            result = await work()
        except Exception as exc:
            dispatch(UpdateStatus(file.name, FileState.PROCESSING, detail=f"Attempt failed: {exc}"))
            raise
        dispatch(UpdateStatus(file.name, FileState.SUCCESS, detail="Analyzed"))
        return result

    return task


async def _analyze_image(file: SourceFile, collaborators: Collaborators) -> RawImageAnalysis:
    processed = await collaborators.resize_image(file)
    report = await collaborators.analyzer.analyze(processed, PromptKind.IMAGE, ImageAnalysisReport)
    return RawImageAnalysis(
        **report.model_dump(exclude={"file_name"}),
        file_name=report.file_name or file.name,
        image_data=to_data_url(processed),
        file_size=file.size,
        upload_date=datetime.fromtimestamp(file.last_modified, tz=timezone.utc).isoformat(),
    )


def _record_failures(files: Sequence[SourceFile], error: AggregateAnalysisError, dispatch: Dispatch) -> None:
    for file, outcome in zip(files, error.results):
        if isinstance(outcome, BaseException):
            dispatch(UpdateStatus(file.name, FileState.ERROR, error=str(outcome)))


async def run_analysis(context: PipelineContext, dispatch: Dispatch, collaborators: Collaborators) -> None:
    analyzer = collaborators.analyzer
    salesforce = files_with_role(context.files, FileRole.SALESFORCE)
    emails = files_with_role(context.files, FileRole.EMAIL)
    images = files_with_role(context.files, FileRole.IMAGE) + list(context.converted_images_from_pdfs)
    logger.info(
        "Analyzing %d Salesforce, %d email and %d image file(s)",
        len(salesforce),
        len(emails),
        len(images),
    )

    pool = collaborators.pool_factory()
    groups: list[tuple[list[SourceFile], list[Callable[[], Awaitable[Any]]]]] = [
        (
            salesforce,
            [
                _analysis_task(f, dispatch, lambda f=f: analyzer.analyze(f, PromptKind.SALESFORCE, SalesforceAnalysis))
                for f in salesforce
            ],
        ),
        (
            emails,
            [
                _analysis_task(f, dispatch, lambda f=f: analyzer.analyze(f, PromptKind.EMAIL, EmailAnalysis))
                for f in emails
            ],
        ),
        (
            images,
            [_analysis_task(f, dispatch, lambda f=f: _analyze_image(f, collaborators)) for f in images],
        ),
    ]

    outcomes = await asyncio.gather(
        *(pool.execute_with_backpressure(tasks) for _, tasks in groups),
        return_exceptions=True,
    )

    failure: BaseException | None = None
    for (files, _), outcome in zip(groups, outcomes):
        if isinstance(outcome, AggregateAnalysisError):
            _record_failures(files, outcome, dispatch)
            failure = failure or outcome
        elif isinstance(outcome, BaseException):
            failure = outcome
    if failure is not None:
        if isinstance(failure, AggregateAnalysisError):
            dispatch(SetError(ANALYSIS_FAILED_MESSAGE))
        else:
            logger.error("File analysis failed: %s", failure)
            dispatch(SetError(f"File analysis failed: {failure}"))
        return

    salesforce_results, email_results, image_results = outcomes
    try:
        text_data = build_text_data(salesforce_results, email_results)
    except Exception as exc:
        logger.exception("Merging analysis results failed")
        dispatch(SetError(f"File analysis failed: {exc}"))
        return

    raw_salesforce, raw_email = build_raw_previews(context.files)
    payload = AnalysisPayload(
        text_data=text_data,
        image_data=tuple(image_results),
        source_files=SourceFileNames(
            salesforce_file_names=[f.name for f in files_with_role(context.files, FileRole.SALESFORCE, FileRole.PDF)],
            email_file_names=[f.name for f in emails],
        ),
        raw_salesforce_content=raw_salesforce,
        raw_email_content=raw_email,
    )
    logger.info(
        "Analysis complete: %d action item(s), %d conversation node(s), %d image report(s)",
        len(text_data.action_items),
        len(text_data.conversation_nodes),
        len(payload.image_data),
    )
    dispatch(AnalysisComplete(payload))


# ----------------------------------------------------------------------
# MergingResults / CreatingProject
# ----------------------------------------------------------------------


async def run_route_results(context: PipelineContext, dispatch: Dispatch, collaborators: Collaborators) -> None:
    dispatch(ResultsMerged())


async def run_project_creation(context: PipelineContext, dispatch: Dispatch, collaborators: Collaborators) -> None:
    if context.analysis_payload is None:
        raise RuntimeError("Cannot create a project without an analysis payload")
    project = build_project(
        context.analysis_payload,
        context.final_images,
        clock=collaborators.clock,
        id_factory=collaborators.id_factory,
    )
    logger.info("Created project %s (%s)", project.id, project.name)
    dispatch(ProjectCreated(project))
