"""Image downscaling and JPEG recompression before analysis."""

from __future__ import annotations

import asyncio
import base64
import io
import logging

from PIL import Image, UnidentifiedImageError

from projsynth.exceptions import ImageProcessingError
from projsynth.models import SourceFile

logger = logging.getLogger(__name__)


def _resize(content: bytes, max_dimension: int, quality: int) -> bytes:
    with Image.open(io.BytesIO(content)) as img:
        img = img.convert("RGB")
        img.thumbnail((max_dimension, max_dimension))
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True)
        return out.getvalue()


async def resize_and_compress_image(
    file: SourceFile,
    max_dimension: int = 2048,
    quality: int = 85,
) -> SourceFile:
    """Fit *file* inside ``max_dimension`` pixels and re-encode as JPEG.

    The returned file keeps the original name so status and reports stay
    keyed by what the user submitted.

    Raises:
        ImageProcessingError: If the image cannot be decoded or encoded.
    """
    try:
        data = await asyncio.to_thread(_resize, file.content, max_dimension, quality)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageProcessingError(f"Could not process image {file.name}: {exc}") from exc

    logger.debug("Resized %s: %d -> %d bytes", file.name, file.size, len(data))
    return SourceFile(
        name=file.name,
        content=data,
        mime_type="image/jpeg",
        last_modified=file.last_modified,
    )


def to_data_url(file: SourceFile) -> str:
    """Encode *file* as a ``data:`` URL for embedding in project JSON."""
    encoded = base64.b64encode(file.content).decode("ascii")
    return f"data:{file.mime_type or 'application/octet-stream'};base64,{encoded}"
