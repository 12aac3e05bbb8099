"""Merge per-file analysis results into one project's data.

All functions here are pure: they take analysis results and return new
objects, never mutating their inputs.

Conversation node ids are only unique within a single email result, so
every result's nodes are renumbered into one project-wide id space before
concatenation.  ``parent_node_id`` and ``source_conversation_node_id`` are
rewritten through the same per-result map; references that do not resolve
within their own result become ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from projsynth.analysis.schemas import (
    ActionItem,
    ActionItemDraft,
    Attachment,
    ConversationNode,
    EmailAnalysis,
    MentionedAttachment,
    ProjectDetails,
    SalesforceAnalysis,
    SynthesizedTextData,
)
from projsynth.models import FileRole, SourceFile
from projsynth.pipeline.state import AnalysisPayload
from projsynth.pipeline.validation import files_with_role
from projsynth.project import Project, ProjectImage, ProjectStatus

logger = logging.getLogger(__name__)

_PROJECT_DETAIL_FIELDS = ("project_name", "opportunity_number", "account_name", "opp_revenue")


@dataclass
class MergedResults:
    project_details: ProjectDetails = field(default_factory=ProjectDetails)
    action_items: list[ActionItemDraft] = field(default_factory=list)
    summary: str = ""
    conversation_nodes: list[ConversationNode] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    mentioned_attachments: list[MentionedAttachment] = field(default_factory=list)


def merge_project_details(results: Sequence[SalesforceAnalysis]) -> ProjectDetails:
    """Fold project details left to right; the first non-empty value wins."""
    merged: dict[str, object] = {}
    for result in results:
        for name in _PROJECT_DETAIL_FIELDS:
            value = getattr(result.project_details, name)
            if not merged.get(name) and value:
                merged[name] = value
    return ProjectDetails(**merged)


def reindex_conversation_nodes(
    nodes: Sequence[ConversationNode],
    running_max: int,
) -> tuple[list[ConversationNode], dict[int, int]]:
    """Renumber *nodes* to ``running_max + 1, running_max + 2, ...``.

    Returns:
        The rewritten nodes and the old-id to new-id map for this result.
    """
    id_map: dict[int, int] = {}
    for offset, node in enumerate(nodes, start=1):
        id_map.setdefault(node.node_id, running_max + offset)

    rewritten = []
    for offset, node in enumerate(nodes, start=1):
        new_id = running_max + offset
        parent = id_map.get(node.parent_node_id) if node.parent_node_id is not None else None
        if parent == new_id:
            parent = None
        rewritten.append(node.model_copy(update={"node_id": new_id, "parent_node_id": parent}))
    return rewritten, id_map


def merge_results(
    salesforce_results: Sequence[SalesforceAnalysis],
    email_results: Sequence[EmailAnalysis],
) -> MergedResults:
    """Combine every Salesforce and email result into one set of fields."""
    merged = MergedResults(project_details=merge_project_details(salesforce_results))
    summaries: list[str] = []
    running_max = 0

    for result in email_results:
        nodes, id_map = reindex_conversation_nodes(result.conversation_nodes, running_max)
        running_max += len(nodes)
        merged.conversation_nodes.extend(nodes)

        for item in result.action_items:
            source = item.source_conversation_node_id
            merged.action_items.append(
                item.model_copy(
                    update={"source_conversation_node_id": id_map.get(source) if source is not None else None}
                )
            )
        merged.attachments.extend(result.attachments)
        merged.mentioned_attachments.extend(result.mentioned_attachments)
        if result.conversation_summary.strip():
            summaries.append(result.conversation_summary.strip())

    merged.summary = "\n\n".join(summaries).strip()
    return merged


def finalize_action_items(drafts: Sequence[ActionItemDraft]) -> list[ActionItem]:
    """Give each merged action item a project-unique ``task-<n>`` id."""
    return [
        ActionItem(id=f"task-{index}", **draft.model_dump())
        for index, draft in enumerate(drafts, start=1)
    ]


def build_text_data(
    salesforce_results: Sequence[SalesforceAnalysis],
    email_results: Sequence[EmailAnalysis],
) -> SynthesizedTextData:
    merged = merge_results(salesforce_results, email_results)
    return SynthesizedTextData(
        project_details=merged.project_details,
        action_items=finalize_action_items(merged.action_items),
        conversation_summary=merged.summary,
        conversation_nodes=merged.conversation_nodes,
        attachments=merged.attachments,
        mentioned_attachments=merged.mentioned_attachments,
    )


# ----------------------------------------------------------------------
# Raw previews
# ----------------------------------------------------------------------


def _preview(files: Sequence[SourceFile], total: int, readable_suffixes: tuple[str, ...]) -> str:
    placeholder = f"Content from {total} file(s). Preview unavailable."
    if len(files) != 1 or not files[0].name.lower().endswith(readable_suffixes):
        return placeholder
    try:
        return files[0].content.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Preview of %s is not valid UTF-8", files[0].name)
        return placeholder


def build_raw_previews(files: Sequence[SourceFile]) -> tuple[str, str]:
    """Return ``(salesforce_preview, email_preview)`` for the project record.

    Shows the text of a single readable file; otherwise a placeholder
    counting every file of the category.  PDFs count toward the Salesforce
    total but are never previewed.
    """
    salesforce = files_with_role(files, FileRole.SALESFORCE)
    salesforce_total = len(files_with_role(files, FileRole.SALESFORCE, FileRole.PDF))
    emails = files_with_role(files, FileRole.EMAIL)
    return (
        _preview(salesforce, salesforce_total, (".md",)),
        _preview(emails, len(emails), (".eml", ".txt")),
    )


# ----------------------------------------------------------------------
# Project materialization
# ----------------------------------------------------------------------


def build_project(
    payload: AnalysisPayload,
    final_images: Sequence[ProjectImage],
    *,
    clock: Callable[[], datetime],
    id_factory: Callable[[], str],
) -> Project:
    """Construct the final project record.

    Deterministic given *clock* and *id_factory*.
    """
    details = payload.text_data.project_details
    created_at = clock()
    return Project(
        id=id_factory(),
        name=details.project_name or f"Project {created_at.strftime('%Y-%m-%d %H:%M')}",
        opportunity_number=details.opportunity_number or "N/A",
        status=ProjectStatus.READY,
        created_at=created_at.isoformat(),
        source_files=payload.source_files,
        raw_salesforce_content=payload.raw_salesforce_content,
        raw_email_content=payload.raw_email_content,
        data=payload.text_data,
        images=list(final_images),
    )
