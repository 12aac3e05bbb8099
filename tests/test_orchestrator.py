"""End-to-end tests for ProjectOrchestrator with fake collaborators.

Covers the review and no-review paths, PDF conversion, per-file analysis
failures, validation failure, resubmission, cancel/reset, and stale
generation events.
"""

from __future__ import annotations

import asyncio

import pytest

from projsynth.analysis.prompts import PromptKind
from projsynth.exceptions import AnalysisError, PdfConversionError
from projsynth.models import FileState, PoolConfig
from projsynth.pipeline import Collaborators, Lifecycle, ProjectOrchestrator
from projsynth.pipeline.effects import ANALYSIS_FAILED_MESSAGE, PDF_FAILED_MESSAGE
from projsynth.pipeline.events import ConfirmReview
from projsynth.review import auto_approve

from conftest import FakeAnalyzer, make_file, passthrough_image

TIMEOUT = 5.0


async def _settle(orchestrator):
    return await asyncio.wait_for(orchestrator.wait_until_settled(), TIMEOUT)


def _statuses(state) -> dict[str, FileState]:
    return {name: entry.state for name, entry in state.context.file_processing_status.items()}


# ======================================================================
# Happy paths
# ======================================================================


class TestHappyPaths:
    """Runs that end in a created project."""

    async def test_images_go_through_review(self, build_orchestrator, fake_analyzer):
        orchestrator, completed = build_orchestrator()
        files = [make_file("deal.md", "# Deal"), make_file("thread.eml", "From: Dana"), make_file("photo.jpg", b"\xff\xd8")]

        orchestrator.submit_files(files)
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.AWAITING_REVIEW
        assert orchestrator.history == [
            Lifecycle.IDLE,
            Lifecycle.VALIDATING,
            Lifecycle.ANALYZING_PARALLEL,
            Lifecycle.MERGING_RESULTS,
            Lifecycle.AWAITING_REVIEW,
        ]
        assert set(_statuses(state).values()) == {FileState.SUCCESS}
        raws = state.context.analysis_payload.image_data
        assert [r.file_name for r in raws] == ["photo.jpg"]

        orchestrator.confirm_review(auto_approve(raws, min_confidence=0.5))
        state = await asyncio.wait_for(orchestrator.wait_for(Lifecycle.COMPLETE), TIMEOUT)

        project = state.context.newly_created_project
        assert completed == [project]
        assert project.id == "proj-1"
        assert project.name == "Acme Rollout"
        assert project.opportunity_number == "OPP-1001"
        assert project.data.action_items[0].id == "task-1"
        assert project.raw_salesforce_content == "# Deal"
        kept = project.images[0].report.imported_details.extracted_text
        assert [d.text for d in kept] == ["PN-4471"]

        kinds = sorted(kind.value for _, kind in fake_analyzer.calls)
        assert kinds == ["email", "image", "salesforce"]

    async def test_text_only_skips_review(self, build_orchestrator):
        orchestrator, completed = build_orchestrator()

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.txt")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.COMPLETE
        assert Lifecycle.AWAITING_REVIEW not in orchestrator.history
        assert orchestrator.history[-3:] == [
            Lifecycle.MERGING_RESULTS,
            Lifecycle.CREATING_PROJECT,
            Lifecycle.COMPLETE,
        ]
        assert len(completed) == 1
        assert completed[0].images == []

    async def test_pdf_pages_analyzed_as_images(self, build_orchestrator, fake_analyzer, fake_pdf_converter):
        orchestrator, _ = build_orchestrator()

        orchestrator.submit_files([make_file("report.pdf", b"%PDF-1.7"), make_file("email.txt")])
        state = await _settle(orchestrator)

        assert Lifecycle.CONVERTING_PDFS in orchestrator.history
        assert state.value is Lifecycle.AWAITING_REVIEW
        assert fake_pdf_converter.converted == ["report.pdf"]
        assert [f.name for f in state.context.converted_images_from_pdfs] == [
            "report_page_1.jpeg",
            "report_page_2.jpeg",
        ]
        assert _statuses(state) == {
            "report.pdf": FileState.SUCCESS,
            "email.txt": FileState.SUCCESS,
            "report_page_1.jpeg": FileState.SUCCESS,
            "report_page_2.jpeg": FileState.SUCCESS,
        }
        analyzed = {name for name, _ in fake_analyzer.calls}
        assert "report.pdf" not in analyzed
        assert {"report_page_1.jpeg", "report_page_2.jpeg", "email.txt"} <= analyzed
        assert state.context.analysis_payload.source_files.salesforce_file_names == ["report.pdf"]

    async def test_on_success_called_once_per_run(self, build_orchestrator):
        orchestrator, completed = build_orchestrator()
        files = [make_file("deal.md"), make_file("thread.txt")]

        orchestrator.submit_files(files)
        await _settle(orchestrator)
        orchestrator.reset()
        orchestrator.submit_files(files)
        await _settle(orchestrator)
        await orchestrator.drain()

        assert [p.id for p in completed] == ["proj-1", "proj-2"]


# ======================================================================
# Failures
# ======================================================================


class TestFailures:
    """Runs that end in the error state."""

    async def test_validation_failure_reports_all_violations(self, build_orchestrator, fake_analyzer):
        orchestrator, completed = build_orchestrator()

        orchestrator.submit_files([make_file("photo.jpg"), make_file("archive.zip")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.ERROR
        lines = state.context.error.split("\n")
        assert len(lines) == 3
        assert state.context.files == ()
        assert fake_analyzer.calls == []
        assert completed == []

    async def test_one_email_failure_keeps_sibling_statuses(self, build_orchestrator):
        analyzer = FakeAnalyzer(failures={"bad.eml": AnalysisError("unreadable", retryable=False)})
        orchestrator, completed = build_orchestrator(analyzer)

        orchestrator.submit_files([make_file("deal.md"), make_file("good.eml"), make_file("bad.eml")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.ERROR
        assert state.context.error == ANALYSIS_FAILED_MESSAGE
        assert _statuses(state) == {
            "deal.md": FileState.SUCCESS,
            "good.eml": FileState.SUCCESS,
            "bad.eml": FileState.ERROR,
        }
        assert state.context.file_processing_status["bad.eml"].error == "unreadable"
        assert completed == []

    async def test_transient_failure_is_retried(self, build_orchestrator):
        analyzer = FakeAnalyzer(failures={"thread.eml": [AnalysisError("503", retryable=True)]})
        orchestrator, _ = build_orchestrator(analyzer)

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.eml")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.COMPLETE
        assert [name for name, _ in analyzer.calls].count("thread.eml") == 2

    async def test_breaker_rejections_marked_as_errors(self, build_orchestrator):
        down = AnalysisError("503", retryable=True)
        analyzer = FakeAnalyzer(failures={f"t{i}.eml": down for i in range(4)})
        orchestrator, _ = build_orchestrator(
            analyzer, PoolConfig(max_concurrent=1, failure_threshold=2, max_attempts=1)
        )

        orchestrator.submit_files([make_file("deal.md")] + [make_file(f"t{i}.eml") for i in range(4)])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.ERROR
        email_states = {n: s for n, s in _statuses(state).items() if n.endswith(".eml")}
        assert set(email_states.values()) == {FileState.ERROR}

    async def test_pdf_failure_aborts_batch(self, build_orchestrator, fake_analyzer, fake_pdf_converter):
        fake_pdf_converter.failures["broken.pdf"] = PdfConversionError("not a PDF")
        orchestrator, _ = build_orchestrator()

        orchestrator.submit_files([make_file("broken.pdf"), make_file("ok.pdf"), make_file("thread.txt")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.ERROR
        assert state.context.error == PDF_FAILED_MESSAGE
        broken = state.context.file_processing_status["broken.pdf"]
        assert broken.state is FileState.ERROR
        assert broken.error == "PDF Fail: not a PDF"
        assert fake_analyzer.calls == []

    async def test_resubmit_from_error(self, build_orchestrator):
        orchestrator, completed = build_orchestrator()

        orchestrator.submit_files([make_file("deal.md")])
        state = await _settle(orchestrator)
        assert state.value is Lifecycle.ERROR

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.txt")])
        state = await _settle(orchestrator)
        assert state.value is Lifecycle.COMPLETE
        assert state.context.error is None
        assert len(completed) == 1


# ======================================================================
# Cancellation
# ======================================================================


class TestCancellation:
    """Cancel/reset and stale generation handling."""

    async def test_cancel_from_review_discards_run(self, build_orchestrator):
        orchestrator, completed = build_orchestrator()

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.eml"), make_file("photo.png")])
        state = await _settle(orchestrator)
        assert state.value is Lifecycle.AWAITING_REVIEW

        state = orchestrator.cancel()
        assert state.value is Lifecycle.IDLE
        assert state.context.files == ()
        assert state.context.analysis_payload is None
        assert completed == []

    async def test_cancel_ignored_while_analyzing(self, build_orchestrator):
        gate = asyncio.Event()
        orchestrator, _ = build_orchestrator(FakeAnalyzer(gate=gate))

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.eml")])
        await asyncio.wait_for(orchestrator.wait_for(Lifecycle.ANALYZING_PARALLEL), TIMEOUT)
        before = orchestrator.state
        assert orchestrator.cancel() is before

        gate.set()
        state = await _settle(orchestrator)
        assert state.value is Lifecycle.COMPLETE

    async def test_stale_generation_events_dropped(self, build_orchestrator):
        orchestrator, _ = build_orchestrator()
        files = [make_file("deal.md"), make_file("thread.eml"), make_file("photo.png")]

        orchestrator.submit_files(files)
        await _settle(orchestrator)
        old_generation = orchestrator.state.generation
        orchestrator.cancel()

        orchestrator.submit_files(files)
        gate_state = await _settle(orchestrator)
        assert gate_state.value is Lifecycle.AWAITING_REVIEW
        assert gate_state.generation > old_generation

        # Legal in the current state, but issued by the cancelled run
        result = orchestrator.dispatch(ConfirmReview(()), generation=old_generation)
        assert result is gate_state
        assert orchestrator.state is gate_state

    async def test_subscribers_notified_and_unsubscribed(self, build_orchestrator):
        orchestrator, _ = build_orchestrator()
        seen: list[Lifecycle] = []
        unsubscribe = orchestrator.subscribe(lambda s: seen.append(s.value))

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.txt")])
        await _settle(orchestrator)
        unsubscribe()
        orchestrator.reset()

        assert seen[0] is Lifecycle.VALIDATING
        assert seen[-1] is Lifecycle.COMPLETE
        assert Lifecycle.IDLE not in seen


@pytest.mark.parametrize("prompt_kind", [PromptKind.SALESFORCE, PromptKind.EMAIL])
async def test_non_image_runs_make_one_call_per_file(build_orchestrator, fake_analyzer, prompt_kind):
    orchestrator, _ = build_orchestrator()
    orchestrator.submit_files([make_file("a.md"), make_file("b.md"), make_file("c.eml"), make_file("d.txt")])
    await _settle(orchestrator)
    expected = 2
    assert sum(1 for _, kind in fake_analyzer.calls if kind is prompt_kind) == expected


# ======================================================================
# Status keys
# ======================================================================


class TestPageImageNames:
    """PDF page images get status entries of their own."""

    async def test_page_clashing_with_submitted_image_is_renamed(self, build_orchestrator):
        analyzer = FakeAnalyzer(failures={"report_page_1.jpeg": AnalysisError("unreadable", retryable=False)})
        orchestrator, _ = build_orchestrator(analyzer)

        orchestrator.submit_files([
            make_file("deal.md"),
            make_file("t.eml"),
            make_file("report.pdf", b"%PDF-1.7"),
            make_file("report_page_1.jpeg", b"\xff\xd8"),
        ])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.ERROR
        assert state.context.error == ANALYSIS_FAILED_MESSAGE
        assert [f.name for f in state.context.converted_images_from_pdfs] == [
            "report_page_1_2.jpeg",
            "report_page_2.jpeg",
        ]
        statuses = _statuses(state)
        assert len(statuses) == 6
        assert statuses["report_page_1.jpeg"] is FileState.ERROR
        assert statuses["report_page_1_2.jpeg"] is FileState.SUCCESS

    async def test_pdfs_with_same_stem_get_distinct_pages(self, build_orchestrator):
        orchestrator, _ = build_orchestrator()

        orchestrator.submit_files([make_file("a.pdf"), make_file("a.PDF"), make_file("t.eml")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.AWAITING_REVIEW
        pages = [f.name for f in state.context.converted_images_from_pdfs]
        assert pages == ["a_page_1.jpeg", "a_page_2.jpeg", "a_page_1_2.jpeg", "a_page_2_2.jpeg"]
        assert len(state.context.analysis_payload.image_data) == 4
        assert set(pages) <= set(_statuses(state))


# ======================================================================
# Unexpected failures
# ======================================================================


class TestUnexpectedFailures:
    """Crashes outside the analysis boundary never leave the run hanging."""

    async def test_failing_subscriber_does_not_stall_run(self, build_orchestrator):
        orchestrator, completed = build_orchestrator()

        def broken(_state):
            raise RuntimeError("display crashed")

        orchestrator.subscribe(broken)
        orchestrator.submit_files([make_file("deal.md"), make_file("thread.txt")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.COMPLETE
        assert len(completed) == 1

    async def test_crashed_effect_moves_run_to_error(self, fake_pdf_converter):
        def no_pool():
            raise RuntimeError("pool unavailable")

        orchestrator = ProjectOrchestrator(
            Collaborators(
                analyzer=FakeAnalyzer(),
                convert_pdf=fake_pdf_converter,
                resize_image=passthrough_image,
                pool_factory=no_pool,
            )
        )

        orchestrator.submit_files([make_file("deal.md"), make_file("thread.txt")])
        state = await _settle(orchestrator)

        assert state.value is Lifecycle.ERROR
        assert state.context.error == "Pipeline step failed: pool unavailable"
