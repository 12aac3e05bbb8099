"""Tests for the pipeline lifecycle FSM and the pure reducer.

Covers:
  - Legal edges of PipelineLifecycleSM, including guarded branches
  - Totality: every (state, event) pair returns a state; illegal pairs
    return the same object
  - Context updates per event (status seeding, forward-only status,
    error clearing, full reset)
  - Generation bumps and entry effects reported by step()
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from types import MappingProxyType

import pytest
from statemachine.exceptions import TransitionNotAllowed

from projsynth.analysis.schemas import SynthesizedTextData
from projsynth.models import FileState, FileStatusEntry
from projsynth.pipeline.events import (
    AnalysisComplete,
    Cancel,
    ConfirmReview,
    PdfConversionComplete,
    ProjectCreated,
    Reset,
    ResultsMerged,
    SetError,
    SubmitFiles,
    UpdateStatus,
    ValidationSuccess,
)
from projsynth.pipeline.lifecycle import Lifecycle, PipelineLifecycleSM, create_fsm
from projsynth.pipeline.reducer import Effect, step, transition
from projsynth.pipeline.state import AnalysisPayload, PipelineContext, PipelineState
from projsynth.project import Project, ProjectImage, RawImageAnalysis

from conftest import make_file

FILES = (make_file("deal.md"), make_file("thread.eml"))
PDF_FILES = (make_file("report.pdf"), make_file("thread.txt"))

ALL_EVENTS = [
    SubmitFiles(FILES),
    ValidationSuccess(),
    SetError("boom"),
    PdfConversionComplete(()),
    UpdateStatus("deal.md", FileState.PROCESSING),
    AnalysisComplete(AnalysisPayload(SynthesizedTextData())),
    ResultsMerged(),
    ConfirmReview(()),
    ProjectCreated(Project(id="p", name="n", opportunity_number="N/A", created_at="now")),
    Cancel(),
    Reset(),
]


def _state(value: Lifecycle, **context) -> PipelineState:
    return PipelineState(value=value, context=PipelineContext(**context))


def _with_status(value: Lifecycle, **entries: FileState) -> PipelineState:
    status = {name.replace("_", "."): FileStatusEntry(s) for name, s in entries.items()}
    return _state(value, files=FILES, file_processing_status=MappingProxyType(status))


# ======================================================================
# Lifecycle FSM
# ======================================================================


class TestLifecycleFSM:
    """Tests for the declared lifecycle edges."""

    def test_initial_state_is_idle(self):
        assert PipelineLifecycleSM().current_state.value == "idle"

    def test_submit_from_idle_and_error(self):
        for start in ("idle", "error"):
            fsm = create_fsm(start)
            fsm.send("submit_files")
            assert fsm.current_state.value == "validating"

    def test_validation_success_branches_on_pdfs(self):
        fsm = create_fsm("validating")
        fsm.send("validation_success", pdfs_present=True)
        assert fsm.current_state.value == "converting_pdfs"

        fsm = create_fsm("validating")
        fsm.send("validation_success", pdfs_present=False)
        assert fsm.current_state.value == "analyzing_parallel"

    def test_results_merged_branches_on_images(self):
        fsm = create_fsm("merging_results")
        fsm.send("results_merged", images_present=True)
        assert fsm.current_state.value == "awaiting_review"

        fsm = create_fsm("merging_results")
        fsm.send("results_merged", images_present=False)
        assert fsm.current_state.value == "creating_project"

    def test_cancel_not_allowed_while_analyzing(self):
        fsm = create_fsm("analyzing_parallel")
        with pytest.raises(TransitionNotAllowed):
            fsm.send("cancel")

    def test_complete_and_error_are_not_final(self):
        for start in ("complete", "error"):
            fsm = create_fsm(start)
            fsm.send("reset")
            assert fsm.current_state.value == "idle"


# ======================================================================
# Reducer totality
# ======================================================================


class TestTransitionTotality:
    """transition() is total and illegal events are exact no-ops."""

    @pytest.mark.parametrize(
        ("value", "event"),
        list(itertools.product(list(Lifecycle), ALL_EVENTS)),
        ids=lambda p: p.value if isinstance(p, Lifecycle) else type(p).__name__,
    )
    def test_every_pair_returns_a_state(self, value, event):
        state = _state(value, files=FILES)
        result = transition(state, event)
        assert isinstance(result, PipelineState)

    @pytest.mark.parametrize(
        ("value", "event"),
        [
            (Lifecycle.IDLE, ValidationSuccess()),
            (Lifecycle.IDLE, Cancel()),
            (Lifecycle.VALIDATING, SubmitFiles(FILES)),
            (Lifecycle.ANALYZING_PARALLEL, Cancel()),
            (Lifecycle.ANALYZING_PARALLEL, ConfirmReview(())),
            (Lifecycle.COMPLETE, SetError("late")),
            (Lifecycle.AWAITING_REVIEW, UpdateStatus("deal.md", FileState.SUCCESS)),
            (Lifecycle.CREATING_PROJECT, Reset()),
        ],
    )
    def test_illegal_event_returns_same_object(self, value, event):
        state = _state(value, files=FILES)
        assert transition(state, event) is state


# ======================================================================
# Context updates
# ======================================================================


class TestContextUpdates:
    """Per-event context changes applied by the reducer."""

    def test_submit_resets_context_and_stores_files(self):
        state = _state(Lifecycle.ERROR, error="old failure", files=(make_file("x.md"),))
        new = transition(state, SubmitFiles(FILES))
        assert new.value is Lifecycle.VALIDATING
        assert new.context.files == FILES
        assert new.context.error is None
        assert new.generation == state.generation + 1

    def test_validation_success_seeds_queued_status(self):
        state = _state(Lifecycle.VALIDATING, files=FILES)
        new = transition(state, ValidationSuccess())
        assert new.value is Lifecycle.ANALYZING_PARALLEL
        assert {n: e.state for n, e in new.context.file_processing_status.items()} == {
            "deal.md": FileState.QUEUED,
            "thread.eml": FileState.QUEUED,
        }

    def test_validation_success_with_pdf_goes_to_conversion(self):
        state = _state(Lifecycle.VALIDATING, files=PDF_FILES)
        assert transition(state, ValidationSuccess()).value is Lifecycle.CONVERTING_PDFS

    def test_validation_error_clears_files(self):
        state = _state(Lifecycle.VALIDATING, files=FILES)
        new = transition(state, SetError("• bad"))
        assert new.value is Lifecycle.ERROR
        assert new.context.files == ()
        assert new.context.error == "• bad"

    def test_pdf_conversion_complete_queues_page_images(self):
        state = _with_status(Lifecycle.CONVERTING_PDFS, report_pdf=FileState.SUCCESS)
        pages = (make_file("report_page_1.jpeg"), make_file("report_page_2.jpeg"))
        new = transition(state, PdfConversionComplete(pages))
        assert new.value is Lifecycle.ANALYZING_PARALLEL
        assert new.context.converted_images_from_pdfs == pages
        assert new.context.file_processing_status["report_page_2.jpeg"].state is FileState.QUEUED
        assert new.context.file_processing_status["report.pdf"].state is FileState.SUCCESS

    def test_update_status_is_a_self_transition(self):
        state = _with_status(Lifecycle.ANALYZING_PARALLEL, deal_md=FileState.QUEUED)
        new, effects = step(state, UpdateStatus("deal.md", FileState.PROCESSING, detail="Analyzing..."))
        assert new.value is Lifecycle.ANALYZING_PARALLEL
        assert new.context.file_processing_status["deal.md"].detail == "Analyzing..."
        assert effects == ()

    def test_status_never_moves_backward(self):
        state = _with_status(Lifecycle.ANALYZING_PARALLEL, deal_md=FileState.SUCCESS)
        assert transition(state, UpdateStatus("deal.md", FileState.PROCESSING)) is state
        assert transition(state, UpdateStatus("deal.md", FileState.ERROR)) is state

    def test_status_update_for_unknown_file_ignored(self):
        state = _with_status(Lifecycle.ANALYZING_PARALLEL, deal_md=FileState.QUEUED)
        assert transition(state, UpdateStatus("ghost.md", FileState.SUCCESS)) is state

    def test_queued_may_jump_to_error(self):
        state = _with_status(Lifecycle.ANALYZING_PARALLEL, deal_md=FileState.QUEUED)
        new = transition(state, UpdateStatus("deal.md", FileState.ERROR, error="circuit open"))
        assert new.context.file_processing_status["deal.md"].error == "circuit open"

    def test_results_merged_without_images_clears_final_images(self):
        payload = AnalysisPayload(SynthesizedTextData())
        state = _state(
            Lifecycle.MERGING_RESULTS,
            analysis_payload=payload,
            final_images=(ProjectImage(file_name="stale.png"),),
        )
        new = transition(state, ResultsMerged())
        assert new.value is Lifecycle.CREATING_PROJECT
        assert new.context.final_images == ()

    def test_results_merged_with_images_awaits_review(self):
        raw = RawImageAnalysis(file_name="photo.jpg", image_data="data:image/jpeg;base64,")
        payload = AnalysisPayload(SynthesizedTextData(), image_data=(raw,))
        state = _state(Lifecycle.MERGING_RESULTS, analysis_payload=payload)
        assert transition(state, ResultsMerged()).value is Lifecycle.AWAITING_REVIEW

    def test_confirm_review_stores_final_images(self):
        images = (ProjectImage(file_name="photo.jpg"),)
        state = _state(Lifecycle.AWAITING_REVIEW, files=FILES)
        new = transition(state, ConfirmReview(images))
        assert new.value is Lifecycle.CREATING_PROJECT
        assert new.context.final_images == images

    @pytest.mark.parametrize("event", [Cancel(), Reset()])
    @pytest.mark.parametrize("value", [Lifecycle.AWAITING_REVIEW, Lifecycle.COMPLETE, Lifecycle.ERROR])
    def test_cancel_and_reset_discard_context(self, value, event):
        state = replace(_state(value, files=FILES, error="x"), generation=4)
        new = transition(state, event)
        assert new.value is Lifecycle.IDLE
        assert new.context == PipelineContext()
        assert new.generation == 5


# ======================================================================
# step()
# ======================================================================


class TestStep:
    """step() reports entry effects only when the lifecycle value changes."""

    def test_entry_effects(self):
        cases = [
            (_state(Lifecycle.IDLE), SubmitFiles(FILES), (Effect.VALIDATE,)),
            (_state(Lifecycle.VALIDATING, files=PDF_FILES), ValidationSuccess(), (Effect.CONVERT_PDFS,)),
            (_state(Lifecycle.VALIDATING, files=FILES), ValidationSuccess(), (Effect.ANALYZE,)),
            (
                _state(Lifecycle.ANALYZING_PARALLEL, files=FILES),
                AnalysisComplete(AnalysisPayload(SynthesizedTextData())),
                (Effect.ROUTE_RESULTS,),
            ),
            (_state(Lifecycle.AWAITING_REVIEW), ConfirmReview(()), (Effect.CREATE_PROJECT,)),
        ]
        for state, event, expected in cases:
            _, effects = step(state, event)
            assert effects == expected

    def test_no_effects_for_rejected_event(self):
        state = _state(Lifecycle.IDLE)
        new, effects = step(state, ConfirmReview(()))
        assert new is state
        assert effects == ()
