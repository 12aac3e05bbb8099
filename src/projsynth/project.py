"""Project records produced by a completed synthesis run."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from projsynth.analysis.schemas import AnalyzedDetail, ImageAnalysisReport, SynthesizedTextData


class ProjectStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    ERROR = "ERROR"


class RawImageAnalysis(ImageAnalysisReport):
    """An image report paired with the image itself, awaiting review."""

    image_data: str = Field(repr=False, description="data: URL of the analyzed image")
    file_size: int = 0
    upload_date: str = ""


class ImportedImageDetails(BaseModel):
    """Details a reviewer chose to keep.  Empty groups are left unset."""

    extracted_text: list[AnalyzedDetail] | None = None
    detected_objects: list[AnalyzedDetail] | None = None
    part_numbers: list[str] | None = None
    people: list[str] | None = None


class ProjectImageReport(BaseModel):
    summary: str = ""
    imported_details: ImportedImageDetails = Field(default_factory=ImportedImageDetails)


class ProjectImage(BaseModel):
    """A reviewed image stored on the project."""

    file_name: str
    image_data: str = Field(default="", repr=False)
    report: ProjectImageReport = Field(default_factory=ProjectImageReport)


class SourceFileNames(BaseModel):
    salesforce_file_names: list[str] = Field(default_factory=list)
    email_file_names: list[str] = Field(default_factory=list)


class Project(BaseModel):
    """The materialized project handed to the caller on completion."""

    id: str
    name: str
    opportunity_number: str
    status: ProjectStatus = ProjectStatus.READY
    created_at: str
    source_files: SourceFileNames = Field(default_factory=SourceFileNames)
    raw_salesforce_content: str | None = None
    raw_email_content: str | None = None
    data: SynthesizedTextData = Field(default_factory=SynthesizedTextData)
    images: list[ProjectImage] = Field(default_factory=list)
