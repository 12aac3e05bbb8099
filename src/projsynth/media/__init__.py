"""PDF rasterization and image preprocessing (PyMuPDF, Pillow)."""

from projsynth.media.images import resize_and_compress_image, to_data_url
from projsynth.media.pdf import PageProgress, convert_pdf_to_images, dedupe_page_names, page_image_name

__all__ = [
    "PageProgress",
    "convert_pdf_to_images",
    "dedupe_page_names",
    "page_image_name",
    "resize_and_compress_image",
    "to_data_url",
]
