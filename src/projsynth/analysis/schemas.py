"""Pydantic models for Gemini structured output.

Used as ``response_schema`` in ``GenerateContentConfig`` for the three
analysis kinds (Salesforce export, email thread, image) and as the typed
shape of the merged project data.  Separate from ``projsynth.models``
(dataclasses for pipeline runtime state).
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

NO_SUMMARY_PLACEHOLDER = "No conversation summary was generated."


class TaskStatus(str, Enum):
    OPEN = "Open"
    IN_PROCESS = "In-Process"
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


class TaskPriority(str, Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"


# ----------------------------------------------------------------------
# Salesforce analysis
# ----------------------------------------------------------------------


class ProjectDetails(BaseModel):
    """Scalar project fields extracted from a Salesforce export."""

    project_name: str = ""
    opportunity_number: str = ""
    account_name: str = ""
    opp_revenue: float = 0.0

    model_config = ConfigDict(extra="ignore")


class SalesforceAnalysis(BaseModel):
    """Complete Salesforce-file analysis output."""

    project_details: ProjectDetails

    model_config = ConfigDict(extra="ignore")


# ----------------------------------------------------------------------
# Email analysis
# ----------------------------------------------------------------------


class ActionItemDraft(BaseModel):
    """An action item as returned by the model (no id yet)."""

    subject: str
    description: str = ""
    status: str = TaskStatus.OPEN.value
    priority: str = TaskPriority.NORMAL.value
    due_date: str = ""
    assigned_to_name: str = ""
    task_types: str = ""
    hours_remaining: float = 0.0
    total_hours: float | None = None
    source_conversation_node_id: int | None = Field(
        default=None,
        description="node_id of the conversation message this task originated from",
    )

    model_config = ConfigDict(extra="ignore")


class ActionItem(ActionItemDraft):
    """An action item with a system-assigned, project-unique id."""

    id: str


class ConversationNode(BaseModel):
    """One message in the conversation forest."""

    node_id: int
    parent_node_id: int | None = None
    speaker_name: str = ""
    speaker_email: str = ""
    timestamp: str = ""
    summary: str = ""

    model_config = ConfigDict(extra="ignore")


class Attachment(BaseModel):
    file_name: str
    file_type: str = ""
    file_size_mb: float = 0.0
    upload_date: str = ""

    model_config = ConfigDict(extra="ignore")


class MentionedAttachment(BaseModel):
    file_name: str = Field(description="The full name of the mentioned file, including its extension.")
    context: str = Field(
        default="",
        description="Who mentioned the file and in relation to what.",
    )

    model_config = ConfigDict(extra="ignore")


class EmailAnalysis(BaseModel):
    """Complete email-thread analysis output.

    Missing or null arrays become empty lists and an empty summary becomes
    a placeholder, so a sparse model reply still merges cleanly.
    """

    action_items: list[ActionItemDraft] = Field(default_factory=list)
    conversation_summary: str = Field(
        default=NO_SUMMARY_PLACEHOLDER,
        description="Concise summary of the whole thread: key decisions, outcomes, open questions.",
    )
    conversation_nodes: list[ConversationNode] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    mentioned_attachments: list[MentionedAttachment] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "action_items", "conversation_nodes", "attachments", "mentioned_attachments",
        mode="before",
    )
    @classmethod
    def null_to_empty(cls, v: object) -> object:
        return [] if v is None else v

    @field_validator("conversation_summary", mode="before")
    @classmethod
    def placeholder_summary(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            return NO_SUMMARY_PLACEHOLDER
        return v


# ----------------------------------------------------------------------
# Image analysis
# ----------------------------------------------------------------------


class BoundingBox(BaseModel):
    """Normalized (0.0-1.0) box coordinates."""

    x1: float
    y1: float
    x2: float
    y2: float


class AnalyzedDetail(BaseModel):
    """A detected text run or object with its location."""

    text: str
    corrected_text: str | None = None
    bounding_box: BoundingBox
    confidence: float | None = Field(
        default=None,
        description="0.0-1.0 confidence in the OCR accuracy.",
    )

    model_config = ConfigDict(extra="ignore")


class ImageAnalysisReport(BaseModel):
    """Complete image analysis output."""

    file_name: str = Field(default="", description="The exact filename of the image being analyzed.")
    summary: str = ""
    extracted_text: list[AnalyzedDetail] = Field(default_factory=list)
    detected_objects: list[AnalyzedDetail] = Field(default_factory=list)
    part_numbers: list[str] = Field(default_factory=list)
    people: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "extracted_text", "detected_objects", "part_numbers", "people",
        mode="before",
    )
    @classmethod
    def null_to_empty(cls, v: object) -> object:
        return [] if v is None else v


# ----------------------------------------------------------------------
# Merged text data
# ----------------------------------------------------------------------


class SynthesizedTextData(BaseModel):
    """Merged text-side analysis of every Salesforce and email file."""

    project_details: ProjectDetails = Field(default_factory=ProjectDetails)
    action_items: list[ActionItem] = Field(default_factory=list)
    conversation_summary: str = ""
    conversation_nodes: list[ConversationNode] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    mentioned_attachments: list[MentionedAttachment] = Field(default_factory=list)
