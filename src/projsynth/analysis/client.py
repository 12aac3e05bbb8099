"""Gemini analysis client wrapper.

The single boundary between the pipeline and the hosted model::

    report = await client.analyze(file, PromptKind.IMAGE, ImageAnalysisReport)

Text files are decoded and appended to the prompt (summarized first when
they exceed ``max_text_chars``); binary files are attached inline.  The
reply is requested in JSON mode against the pydantic schema and validated
on the way back.

Every failure leaves this module as an :class:`AnalysisError` whose
``retryable`` flag is set from the SDK's exception type and status code,
never from the error message text.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from pydantic import BaseModel, ValidationError

from projsynth.analysis.parser import parse_json_response
from projsynth.analysis.prompts import (
    CHAT_SYSTEM_INSTRUCTION,
    PromptKind,
    build_chat_prompt,
    build_chunk_summary_prompt,
    build_combine_summaries_prompt,
    build_prompt,
    build_summary_prompt,
)
from projsynth.exceptions import AnalysisError
from projsynth.models import SourceFile, SynthesisConfig

if TYPE_CHECKING:
    from projsynth.project import Project

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_TEXT_FILE_RE = re.compile(r"\.(md|txt|csv|html|json|eml)$", re.IGNORECASE)

TRUNCATION_MARKER = "...[CONTENT TRUNCATED DUE TO EXCESSIVE LENGTH & SUMMARIZATION ERROR]..."


def is_text_file(file: SourceFile) -> bool:
    return bool(_TEXT_FILE_RE.search(file.name))


def is_retryable_exception(exc: BaseException) -> bool:
    """Classify an SDK or transport exception as transient.

    Retryable: 5xx server errors, 429 rate limits, transport failures and
    timeouts.  Everything else (4xx, bad content) is permanent.
    """
    if isinstance(exc, genai_errors.ServerError):
        return True
    if isinstance(exc, genai_errors.APIError):
        return exc.code == 429 or (exc.code is not None and exc.code >= 500)
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError, ConnectionError))


def project_chat_context(project: Project) -> dict[str, Any]:
    """The slice of *project* sent as grounding for chat questions."""
    details = project.data.project_details
    return {
        "project_name": details.project_name,
        "account_name": details.account_name,
        "revenue": details.opp_revenue,
        "conversation_summary": project.data.conversation_summary,
        "action_items": [
            {
                "subject": item.subject,
                "status": item.status,
                "priority": item.priority,
                "assignee": item.assigned_to_name,
                "due_date": item.due_date,
            }
            for item in project.data.action_items
        ],
    }


class GeminiAnalysisClient:
    """Async wrapper around ``google-genai`` for structured file analysis.

    Usage::

        client = GeminiAnalysisClient(SynthesisConfig(api_key="..."))
        details = await client.analyze(file, PromptKind.SALESFORCE, SalesforceAnalysis)

    Args:
        config: Model name, temperature and text-size thresholds.
        client: Optional pre-built ``genai.Client`` (tests pass a mock).
    """

    def __init__(self, config: SynthesisConfig, client: Any | None = None) -> None:
        self._config = config
        self._client = client if client is not None else genai.Client(api_key=config.api_key)

    # ------------------------------------------------------------------
    # Analysis boundary
    # ------------------------------------------------------------------

    async def analyze(self, file: SourceFile, prompt_kind: PromptKind, schema: type[ModelT]) -> ModelT:
        """Analyze one file and return the validated structured result.

        Raises:
            AnalysisError: On any failure, with ``retryable`` set for
                transient upstream or transport problems.
        """
        prompt = build_prompt(prompt_kind, file.name)
        try:
            contents = await self._build_contents(file, prompt)
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=contents,
                config=genai_types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=schema,
                    temperature=self._config.temperature,
                ),
            )
        except Exception as exc:
            retryable = is_retryable_exception(exc)
            logger.error("Error analyzing file %s with Gemini: %s", file.name, exc)
            hint = (
                "This might be a temporary issue."
                if retryable
                else "Please check if your file content is valid or too large."
            )
            raise AnalysisError(
                f"The AI service failed to process {file.name}. {hint}",
                retryable=retryable,
                file_name=file.name,
            ) from exc

        try:
            result = schema.model_validate(parse_json_response(response.text))
        except (ValueError, ValidationError) as exc:
            logger.error("Invalid analysis response for %s: %s", file.name, exc)
            raise AnalysisError(
                f"The AI service returned an unusable result for {file.name}: {exc}",
                retryable=False,
                file_name=file.name,
            ) from exc

        logger.debug("Analyzed %s as %s", file.name, prompt_kind.value)
        return result

    async def _build_contents(self, file: SourceFile, prompt: str) -> list[Any]:
        if is_text_file(file):
            content = await self.summarize_text_if_needed(file.text(), f"File ({file.name})")
            return [f"{prompt}\n\n## File Content: {file.name} ##\n{content}\n"]

        return [
            f"{prompt}\n\n## File: {file.name} ##\n"
            "The data is provided in the attached file. Please analyze its content based on the instructions.",
            genai_types.Part.from_bytes(
                data=file.content,
                mime_type=file.mime_type or "application/octet-stream",
            ),
        ]

    # ------------------------------------------------------------------
    # Long-text summarization
    # ------------------------------------------------------------------

    async def summarize_text_if_needed(self, text: str, content_type: str) -> str:
        """Return *text* unchanged, or a model summary if it is too long.

        Text that fits in one call is summarized in a single pass; longer
        text is chunked, each chunk summarized concurrently, and the chunk
        summaries combined in a final pass when they fit.  If summarization
        fails the text is truncated with a marker instead.
        """
        limit = self._config.max_text_chars
        if len(text) <= limit:
            return text

        logger.warning("%s content is too long (%d chars). Summarizing...", content_type, len(text))
        call_limit = self._config.api_call_char_limit

        try:
            if len(text) <= call_limit:
                summary = await self._summarize(build_summary_prompt(content_type, text))
            else:
                chunks = [text[i : i + call_limit] for i in range(0, len(text), call_limit)]
                logger.info("Split %s into %d chunks for summarization", content_type, len(chunks))
                chunk_summaries = await asyncio.gather(
                    *(
                        self._summarize(build_chunk_summary_prompt(content_type, chunk, i, len(chunks)))
                        for i, chunk in enumerate(chunks)
                    )
                )
                combined = "\n\n---\n\n".join(chunk_summaries)
                if len(combined) > call_limit:
                    logger.warning(
                        "Combined summaries for %s still too long (%d chars); using them directly",
                        content_type,
                        len(combined),
                    )
                    summary = combined
                else:
                    summary = await self._summarize(build_combine_summaries_prompt(content_type, combined))
        except Exception:
            logger.warning("Failed to summarize %s; falling back to truncation", content_type, exc_info=True)
            return f"{text[:limit]}\n\n{TRUNCATION_MARKER}"

        logger.info(
            "Summarized %s: %d chars -> %d chars",
            content_type,
            len(text),
            len(summary),
        )
        return f"[AI-Generated Summary of {content_type}]\n{summary}"

    async def _summarize(self, prompt: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=self._config.model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(temperature=0.1),
        )
        return response.text or ""

    # ------------------------------------------------------------------
    # Project chat
    # ------------------------------------------------------------------

    async def chat(self, project: Project, question: str) -> str:
        """Answer *question* using only the data of *project*.

        Raises:
            AnalysisError: If the model call fails.
        """
        context_json = json.dumps(project_chat_context(project), indent=2)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=build_chat_prompt(context_json, question),
                config=genai_types.GenerateContentConfig(
                    system_instruction=CHAT_SYSTEM_INSTRUCTION,
                    temperature=self._config.temperature,
                ),
            )
        except Exception as exc:
            logger.error("Error in project chat for %s: %s", project.id, exc)
            raise AnalysisError(
                "The AI assistant failed to respond. Please try again.",
                retryable=is_retryable_exception(exc),
            ) from exc
        return response.text or ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying genai client if it supports closing."""
        aio = getattr(self._client, "aio", None)
        closer = getattr(aio, "aclose", None)
        if callable(closer):
            result = closer()
            if result is not None and hasattr(result, "__await__"):
                await result
