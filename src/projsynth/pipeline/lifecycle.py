"""Pipeline lifecycle finite state machine.

Declares every legal (state, event) edge of the ingestion pipeline in one
place.  Used by :func:`projsynth.pipeline.reducer.transition` to decide
the next lifecycle value -- it does NOT hold pipeline context, perform I/O,
or have on_enter_state callbacks.  An ephemeral instance is created at the
current state for each event and discarded.

The two branching edges are guarded:

* ``validation_success`` goes to ``converting_pdfs`` only when the batch
  contains PDFs (``pdfs_present=True``), else to ``analyzing_parallel``.
* ``results_merged`` goes to ``awaiting_review`` only when image analyses
  exist (``images_present=True``), else to ``creating_project``.
"""

from __future__ import annotations

from enum import Enum

from statemachine import State, StateMachine


class Lifecycle(str, Enum):
    """Pipeline lifecycle values (one active at a time)."""

    IDLE = "idle"
    VALIDATING = "validating"
    CONVERTING_PDFS = "converting_pdfs"
    ANALYZING_PARALLEL = "analyzing_parallel"
    MERGING_RESULTS = "merging_results"
    AWAITING_REVIEW = "awaiting_review"
    CREATING_PROJECT = "creating_project"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineLifecycleSM(StateMachine):
    """Nine-state lifecycle for one ingestion run.

    No state has ``final=True``: every state, including ``complete`` and
    ``error``, can be left via reset, cancel or resubmission.
    """

    idle = State("idle", initial=True, value="idle")
    validating = State("validating", value="validating")
    converting_pdfs = State("converting_pdfs", value="converting_pdfs")
    analyzing_parallel = State("analyzing_parallel", value="analyzing_parallel")
    merging_results = State("merging_results", value="merging_results")
    awaiting_review = State("awaiting_review", value="awaiting_review")
    creating_project = State("creating_project", value="creating_project")
    complete = State("complete", value="complete")
    error = State("error", value="error")

    submit_files = idle.to(validating) | error.to(validating)
    validation_success = (
        validating.to(converting_pdfs, cond="cond_pdfs_present")
        | validating.to(analyzing_parallel)
    )
    pdf_conversion_complete = converting_pdfs.to(analyzing_parallel)
    update_status = converting_pdfs.to.itself() | analyzing_parallel.to.itself()
    analysis_complete = analyzing_parallel.to(merging_results)
    results_merged = (
        merging_results.to(awaiting_review, cond="cond_images_present")
        | merging_results.to(creating_project)
    )
    confirm_review = awaiting_review.to(creating_project)
    project_created = creating_project.to(complete)
    set_error = validating.to(error) | converting_pdfs.to(error) | analyzing_parallel.to(error)
    cancel = awaiting_review.to(idle) | complete.to(idle) | error.to(idle)
    reset = awaiting_review.to(idle) | complete.to(idle) | error.to(idle)

    def cond_pdfs_present(self, pdfs_present: bool = False) -> bool:
        return pdfs_present

    def cond_images_present(self, images_present: bool = False) -> bool:
        return images_present


def create_fsm(current: Lifecycle | str) -> PipelineLifecycleSM:
    """Create an FSM instance positioned at *current*."""
    return PipelineLifecycleSM(start_value=Lifecycle(current).value)
