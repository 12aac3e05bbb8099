"""Pure pipeline reducer.

``transition(state, event)`` asks the lifecycle FSM whether *event* is
legal in ``state.value``.  Illegal events and rejected status updates
return the very same state object, so callers can detect a no-op with
``is``.  Legal events produce a new :class:`PipelineState` with the
context update for that event applied.

``step`` additionally reports which entry effects the driver must run
because the lifecycle value changed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from enum import Enum
from types import MappingProxyType
from typing import Any

from statemachine.exceptions import TransitionNotAllowed

from projsynth.models import FileRole, FileState, FileStatusEntry
from projsynth.pipeline.events import (
    AnalysisComplete,
    Cancel,
    ConfirmReview,
    Event,
    PdfConversionComplete,
    ProjectCreated,
    Reset,
    ResultsMerged,
    SetError,
    SubmitFiles,
    UpdateStatus,
    ValidationSuccess,
)
from projsynth.pipeline.lifecycle import Lifecycle, create_fsm
from projsynth.pipeline.state import PipelineContext, PipelineState
from projsynth.pipeline.validation import classify_file

logger = logging.getLogger(__name__)


class Effect(str, Enum):
    """Side-effect procedures keyed on the state being entered."""

    VALIDATE = "validate"
    CONVERT_PDFS = "convert_pdfs"
    ANALYZE = "analyze"
    ROUTE_RESULTS = "route_results"
    CREATE_PROJECT = "create_project"
    NOTIFY_COMPLETE = "notify_complete"


ENTRY_EFFECTS: dict[Lifecycle, tuple[Effect, ...]] = {
    Lifecycle.VALIDATING: (Effect.VALIDATE,),
    Lifecycle.CONVERTING_PDFS: (Effect.CONVERT_PDFS,),
    Lifecycle.ANALYZING_PARALLEL: (Effect.ANALYZE,),
    Lifecycle.MERGING_RESULTS: (Effect.ROUTE_RESULTS,),
    Lifecycle.CREATING_PROJECT: (Effect.CREATE_PROJECT,),
    Lifecycle.COMPLETE: (Effect.NOTIFY_COMPLETE,),
}

_NEW_GENERATION_EVENTS = (SubmitFiles, Cancel, Reset)


def _guard_kwargs(state: PipelineState, event: Event) -> dict[str, Any]:
    if isinstance(event, ValidationSuccess):
        return {"pdfs_present": any(classify_file(f) is FileRole.PDF for f in state.context.files)}
    if isinstance(event, ResultsMerged):
        payload = state.context.analysis_payload
        return {"images_present": payload is not None and payload.has_images}
    return {}


def _queued(names: Iterable[str]) -> dict[str, FileStatusEntry]:
    return {name: FileStatusEntry(FileState.QUEUED) for name in names}


def _apply_status(context: PipelineContext, event: UpdateStatus) -> PipelineContext | None:
    current = context.file_processing_status.get(event.file_name)
    if current is None:
        logger.debug("Ignoring status update for unknown file %s", event.file_name)
        return None
    if current.state in (FileState.SUCCESS, FileState.ERROR) or event.state.rank < current.state.rank:
        logger.debug(
            "Ignoring status update %s -> %s for %s",
            current.state.value,
            event.state.value,
            event.file_name,
        )
        return None

    status = dict(context.file_processing_status)
    status[event.file_name] = FileStatusEntry(
        state=event.state,
        detail=event.detail,
        error=event.error,
        progress=event.progress,
    )
    return replace(context, file_processing_status=MappingProxyType(status))


def _apply(state: PipelineState, target: Lifecycle, event: Event) -> PipelineContext | None:
    """Return the context after *event*, or ``None`` to reject it."""
    context = state.context

    if isinstance(event, SubmitFiles):
        return PipelineContext(files=tuple(event.files))

    if isinstance(event, ValidationSuccess):
        return replace(
            context,
            file_processing_status=MappingProxyType(_queued(f.name for f in context.files)),
        )

    if isinstance(event, SetError):
        if state.value is Lifecycle.VALIDATING:
            return PipelineContext(error=event.error)
        return replace(context, error=event.error)

    if isinstance(event, PdfConversionComplete):
        status = dict(context.file_processing_status)
        for name, entry in _queued(image.name for image in event.images).items():
            status.setdefault(name, entry)
        return replace(
            context,
            converted_images_from_pdfs=tuple(event.images),
            file_processing_status=MappingProxyType(status),
        )

    if isinstance(event, UpdateStatus):
        return _apply_status(context, event)

    if isinstance(event, AnalysisComplete):
        return replace(context, analysis_payload=event.payload)

    if isinstance(event, ResultsMerged):
        if target is Lifecycle.CREATING_PROJECT:
            return replace(context, final_images=())
        return context

    if isinstance(event, ConfirmReview):
        return replace(context, final_images=tuple(event.images))

    if isinstance(event, ProjectCreated):
        return replace(context, newly_created_project=event.project)

    if isinstance(event, (Cancel, Reset)):
        return PipelineContext()

    return context


def transition(state: PipelineState, event: Event) -> PipelineState:
    """Apply *event* to *state* and return the resulting state.

    Total over every (state, event) pair: anything the lifecycle does not
    allow returns *state* itself, unchanged.
    """
    fsm = create_fsm(state.value)
    try:
        fsm.send(event.name, **_guard_kwargs(state, event))
    except TransitionNotAllowed:
        logger.debug("Event %s ignored in state %s", event.name, state.value.value)
        return state

    target = Lifecycle(fsm.current_state.value)
    context = _apply(state, target, event)
    if context is None:
        return state

    generation = state.generation + 1 if isinstance(event, _NEW_GENERATION_EVENTS) else state.generation
    return PipelineState(value=target, context=context, generation=generation)


def step(state: PipelineState, event: Event) -> tuple[PipelineState, tuple[Effect, ...]]:
    """Transition and return the entry effects of any newly entered state."""
    new_state = transition(state, event)
    if new_state is state or new_state.value is state.value:
        return new_state, ()
    return new_state, ENTRY_EFFECTS.get(new_state.value, ())
