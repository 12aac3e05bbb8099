"""Turn raw image analyses into reviewed project images.

A reviewer picks which extracted text runs, detected objects, part numbers
and people to keep for each image, and may correct OCR text.  Groups with
nothing selected are left unset on the resulting report.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from projsynth.analysis.schemas import AnalyzedDetail
from projsynth.project import ImportedImageDetails, ProjectImage, ProjectImageReport, RawImageAnalysis

logger = logging.getLogger(__name__)


class DetailGroup(str, Enum):
    TEXT = "text"
    OBJECT = "object"
    PART = "part"
    PEOPLE = "people"


@dataclass
class ImageSelection:
    """Selected item indices per detail group, plus text corrections.

    ``corrections`` maps an index into ``extracted_text`` or
    ``detected_objects`` (keyed by group) to the reviewer's corrected text.
    """

    selected: dict[DetailGroup, set[int]] = field(default_factory=dict)
    corrections: dict[tuple[DetailGroup, int], str] = field(default_factory=dict)

    def select(self, group: DetailGroup, indices: Iterable[int]) -> None:
        self.selected.setdefault(group, set()).update(indices)

    def deselect(self, group: DetailGroup, indices: Iterable[int]) -> None:
        self.selected.get(group, set()).difference_update(indices)

    def correct(self, group: DetailGroup, index: int, text: str) -> None:
        self.corrections[(group, index)] = text

    def is_selected(self, group: DetailGroup, index: int) -> bool:
        return index in self.selected.get(group, set())


def select_all(raw: RawImageAnalysis, groups: Iterable[DetailGroup] = tuple(DetailGroup)) -> ImageSelection:
    """Select every item of *groups* in *raw*."""
    selection = ImageSelection()
    sizes = {
        DetailGroup.TEXT: len(raw.extracted_text),
        DetailGroup.OBJECT: len(raw.detected_objects),
        DetailGroup.PART: len(raw.part_numbers),
        DetailGroup.PEOPLE: len(raw.people),
    }
    for group in groups:
        selection.select(group, range(sizes[group]))
    return selection


def _selected_details(
    items: Sequence[AnalyzedDetail],
    group: DetailGroup,
    selection: ImageSelection,
) -> list[AnalyzedDetail] | None:
    kept = []
    for index, item in enumerate(items):
        if not selection.is_selected(group, index):
            continue
        corrected = selection.corrections.get((group, index))
        kept.append(item.model_copy(update={"corrected_text": corrected}) if corrected else item.model_copy())
    return kept or None


def _selected_strings(items: Sequence[str], group: DetailGroup, selection: ImageSelection) -> list[str] | None:
    kept = [item for index, item in enumerate(items) if selection.is_selected(group, index)]
    return kept or None


def apply_selection(raw: RawImageAnalysis, selection: ImageSelection) -> ProjectImage:
    """Build the :class:`ProjectImage` for *raw* keeping only selected items."""
    return ProjectImage(
        file_name=raw.file_name,
        image_data=raw.image_data,
        report=ProjectImageReport(
            summary=raw.summary,
            imported_details=ImportedImageDetails(
                extracted_text=_selected_details(raw.extracted_text, DetailGroup.TEXT, selection),
                detected_objects=_selected_details(raw.detected_objects, DetailGroup.OBJECT, selection),
                part_numbers=_selected_strings(raw.part_numbers, DetailGroup.PART, selection),
                people=_selected_strings(raw.people, DetailGroup.PEOPLE, selection),
            ),
        ),
    )


def confidence_selection(raw: RawImageAnalysis, min_confidence: float) -> ImageSelection:
    """Select every detail whose confidence is at least *min_confidence*.

    Details without a confidence score, part numbers and people are always
    selected.
    """
    selection = select_all(raw, (DetailGroup.PART, DetailGroup.PEOPLE))
    for group, items in (
        (DetailGroup.TEXT, raw.extracted_text),
        (DetailGroup.OBJECT, raw.detected_objects),
    ):
        selection.select(
            group,
            (i for i, item in enumerate(items) if item.confidence is None or item.confidence >= min_confidence),
        )
    return selection


def auto_approve(raws: Sequence[RawImageAnalysis], min_confidence: float = 0.0) -> list[ProjectImage]:
    """Review every image without a human, keeping confident details."""
    images = []
    for raw in raws:
        selection = confidence_selection(raw, min_confidence)
        kept = sum(len(indices) for indices in selection.selected.values())
        logger.debug("Auto-approved %d item(s) from %s", kept, raw.file_name)
        images.append(apply_selection(raw, selection))
    return images
