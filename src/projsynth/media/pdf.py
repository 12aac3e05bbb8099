"""PDF rasterization into per-page JPEG images.

Pages are rendered at 2x scale (~150 DPI from the 72 DPI PDF default) to
improve OCR accuracy downstream.  Rendering is CPU-bound and runs in a
worker thread; progress callbacks are marshalled back onto the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace

from projsynth.exceptions import PdfConversionError
from projsynth.models import SourceFile

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90

_PDF_SUFFIX_RE = re.compile(r"\.pdf$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class PageProgress:
    current_page: int
    total_pages: int


ProgressCallback = Callable[[PageProgress], None]


def page_image_name(pdf_name: str, page_number: int) -> str:
    """Name of the image rendered from *page_number* (1-based) of *pdf_name*."""
    return f"{_PDF_SUFFIX_RE.sub('', pdf_name)}_page_{page_number}.jpeg"


def dedupe_page_names(images: Sequence[SourceFile], reserved: Iterable[str]) -> list[SourceFile]:
    """Rename page images whose names are already taken.

    *reserved* holds the names of submitted files.  A clashing
    ``report_page_1.jpeg`` becomes ``report_page_1_2.jpeg`` (then ``_3``,
    and so on), so every file in a run keeps its own status entry.
    """
    taken = set(reserved)
    unique: list[SourceFile] = []
    for image in images:
        name = image.name
        if name in taken:
            stem, suffix = os.path.splitext(name)
            n = 2
            while f"{stem}_{n}{suffix}" in taken:
                n += 1
            name = f"{stem}_{n}{suffix}"
            logger.info("Page image %s renamed to %s to avoid a name clash", image.name, name)
            image = replace(image, name=name)
        taken.add(name)
        unique.append(image)
    return unique


def _render_pages(
    pdf_file: SourceFile,
    scale: float,
    report: Callable[[int, int], None],
) -> list[SourceFile]:
    import fitz  # PyMuPDF

    images: list[SourceFile] = []
    with fitz.open(stream=pdf_file.content, filetype="pdf") as doc:
        total = int(doc.page_count or 0)
        matrix = fitz.Matrix(scale, scale)
        for index in range(total):
            report(index + 1, total)
            page = doc.load_page(index)
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            images.append(
                SourceFile(
                    name=page_image_name(pdf_file.name, index + 1),
                    content=pix.tobytes("jpeg", jpg_quality=JPEG_QUALITY),
                    mime_type="image/jpeg",
                    last_modified=pdf_file.last_modified,
                )
            )
    return images


async def convert_pdf_to_images(
    pdf_file: SourceFile,
    on_progress: ProgressCallback | None = None,
    scale: float = 2.0,
) -> list[SourceFile]:
    """Render every page of *pdf_file* to a JPEG :class:`SourceFile`.

    Args:
        pdf_file: The PDF to convert.
        on_progress: Called on the event loop before each page renders.
        scale: Render scale relative to 72 DPI.

    Returns:
        One image per page, in page order, named ``<stem>_page_<n>.jpeg``.

    Raises:
        PdfConversionError: If the PDF cannot be opened or rendered.
    """
    loop = asyncio.get_running_loop()

    def report(current: int, total: int) -> None:
        if on_progress is not None:
            loop.call_soon_threadsafe(on_progress, PageProgress(current, total))

    try:
        images = await asyncio.to_thread(_render_pages, pdf_file, scale, report)
    except Exception as exc:
        raise PdfConversionError(f"Could not convert {pdf_file.name}: {exc}") from exc

    logger.info("Converted %s into %d page image(s)", pdf_file.name, len(images))
    return images
