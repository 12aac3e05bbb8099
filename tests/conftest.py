"""Shared pytest fixtures for project synthesis tests.

Provides in-memory source files, a scripted fake analyzer, a fake PDF
rasterizer, and an orchestrator factory wired with fakes so no test hits
the real Gemini API or renders real PDFs.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from projsynth.analysis.prompts import PromptKind
from projsynth.media.pdf import PageProgress, page_image_name
from projsynth.models import PoolConfig, SourceFile
from projsynth.pipeline import Collaborators, ProjectOrchestrator
from projsynth.pool import AnalysisPool

FIXED_NOW = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

BOX = {"x1": 0.1, "y1": 0.1, "x2": 0.5, "y2": 0.2}

DEFAULT_RESPONSES: dict[PromptKind, dict[str, Any]] = {
    PromptKind.SALESFORCE: {
        "project_details": {
            "project_name": "Acme Rollout",
            "opportunity_number": "OPP-1001",
            "account_name": "Acme Corp",
            "opp_revenue": 125000.0,
        }
    },
    PromptKind.EMAIL: {
        "action_items": [
            {"subject": "Send revised quote", "source_conversation_node_id": 2},
        ],
        "conversation_summary": "Kickoff call scheduled.",
        "conversation_nodes": [
            {"node_id": 1, "parent_node_id": None, "speaker_name": "Dana"},
            {"node_id": 2, "parent_node_id": 1, "speaker_name": "Lee"},
        ],
        "attachments": [],
        "mentioned_attachments": [],
    },
    PromptKind.IMAGE: {
        "summary": "Equipment nameplate",
        "extracted_text": [
            {"text": "PN-4471", "bounding_box": BOX, "confidence": 0.95},
            {"text": "S/N 88?1", "bounding_box": BOX, "confidence": 0.4},
        ],
        "detected_objects": [{"text": "pump", "bounding_box": BOX}],
        "part_numbers": ["PN-4471"],
        "people": [],
    },
}


async def no_sleep(_seconds: float) -> None:
    return None


class FakeAnalyzer:
    """Scripted stand-in for :class:`GeminiAnalysisClient`.

    ``responses`` maps a file name to the JSON dict to return; ``failures``
    maps a file name to an exception (or list of exceptions consumed one
    per call).  Unscripted files get the default response for their kind.
    """

    def __init__(
        self,
        responses: dict[str, dict[str, Any]] | None = None,
        failures: dict[str, Any] | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.responses = responses or {}
        self.failures = failures or {}
        self.gate = gate
        self.calls: list[tuple[str, PromptKind]] = []

    async def analyze(self, file: SourceFile, prompt_kind: PromptKind, schema):
        self.calls.append((file.name, prompt_kind))
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)

        failure = self.failures.get(file.name)
        if isinstance(failure, list):
            failure = failure.pop(0) if failure else None
        if failure is not None:
            raise failure

        data = self.responses.get(file.name, DEFAULT_RESPONSES[prompt_kind])
        return schema.model_validate(data)


class FakePdfConverter:
    """Returns ``pages`` JPEG page images per PDF and reports progress."""

    def __init__(self, pages: int = 2, failures: dict[str, Exception] | None = None) -> None:
        self.pages = pages
        self.failures = failures or {}
        self.converted: list[str] = []

    async def __call__(self, pdf: SourceFile, on_progress=None) -> list[SourceFile]:
        self.converted.append(pdf.name)
        if pdf.name in self.failures:
            raise self.failures[pdf.name]
        images = []
        for page in range(1, self.pages + 1):
            if on_progress is not None:
                on_progress(PageProgress(page, self.pages))
            await asyncio.sleep(0)
            images.append(
                SourceFile(page_image_name(pdf.name, page), b"\xff\xd8jpeg", "image/jpeg")
            )
        return images


async def passthrough_image(file: SourceFile) -> SourceFile:
    return file


def make_file(name: str, content: bytes | str = b"content", mime_type: str = "") -> SourceFile:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return SourceFile(name=name, content=content, mime_type=mime_type, last_modified=1714566600.0)


@pytest.fixture
def fake_analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def fake_pdf_converter() -> FakePdfConverter:
    return FakePdfConverter()


@pytest.fixture
def build_orchestrator(fake_analyzer: FakeAnalyzer, fake_pdf_converter: FakePdfConverter):
    """Factory returning ``(orchestrator, completed_projects)``."""

    def _build(analyzer: FakeAnalyzer | None = None, pool_config: PoolConfig | None = None):
        completed: list = []
        ids = iter(f"proj-{n}" for n in range(1, 100))
        collaborators = Collaborators(
            analyzer=analyzer or fake_analyzer,
            convert_pdf=fake_pdf_converter,
            resize_image=passthrough_image,
            pool_factory=lambda: AnalysisPool(pool_config or PoolConfig(), sleep=no_sleep),
            clock=lambda: FIXED_NOW,
            id_factory=lambda: next(ids),
        )
        return ProjectOrchestrator(collaborators, on_success=completed.append), completed

    return _build
