"""Structural validation of a submitted file batch.

Every rule is checked and every violation reported; nothing
short-circuits on the first failure.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence

from projsynth.constants import (
    MAX_EMAIL_FILE_SIZE_BYTES,
    MAX_EMAIL_FILE_SIZE_MB,
    MAX_EMAIL_FILES,
    MAX_IMAGE_FILE_SIZE_BYTES,
    MAX_IMAGE_FILE_SIZE_MB,
    MAX_IMAGE_FILES,
    MAX_PDF_FILE_SIZE_BYTES,
    MAX_PDF_FILE_SIZE_MB,
    MAX_SALESFORCE_FILE_SIZE_BYTES,
    MAX_SALESFORCE_FILE_SIZE_MB,
    MAX_SALESFORCE_FILES,
    MAX_TOTAL_FILES,
)
from projsynth.models import FileRole, SourceFile

_IMAGE_RE = re.compile(r"\.(jpe?g|png|tiff?|webp)$", re.IGNORECASE)
_PDF_RE = re.compile(r"\.pdf$", re.IGNORECASE)
_SALESFORCE_RE = re.compile(r"\.md$", re.IGNORECASE)
_EMAIL_RE = re.compile(r"\.(txt|eml|csv|xls|html|doc|ppt|json)$", re.IGNORECASE)

EMAIL_EXTENSIONS = ".txt, .eml, .csv, .xls, .html, .doc, .ppt, .json"


def classify_file(file: SourceFile) -> FileRole:
    """Assign exactly one analysis role to *file*.

    Image wins over extension checks when the MIME type says so.
    """
    if file.mime_type.startswith("image/") or _IMAGE_RE.search(file.name):
        return FileRole.IMAGE
    if file.mime_type == "application/pdf" or _PDF_RE.search(file.name):
        return FileRole.PDF
    if _SALESFORCE_RE.search(file.name):
        return FileRole.SALESFORCE
    if _EMAIL_RE.search(file.name):
        return FileRole.EMAIL
    return FileRole.UNSUPPORTED


def files_with_role(files: Sequence[SourceFile], *roles: FileRole) -> list[SourceFile]:
    return [f for f in files if classify_file(f) in roles]


def validate_files(files: Sequence[SourceFile]) -> list[str]:
    """Check *files* against presence, count, size and naming rules.

    Returns:
        One ``• ...`` line per violation; empty when the batch is valid.
    """
    errors: list[str] = []
    salesforce = files_with_role(files, FileRole.SALESFORCE, FileRole.PDF)
    emails = files_with_role(files, FileRole.EMAIL)
    images = files_with_role(files, FileRole.IMAGE)

    if not salesforce:
        errors.append("• At least one Salesforce file (.md or .pdf) is required.")
    if not emails:
        errors.append(f"• At least one email file ({EMAIL_EXTENSIONS}) is required.")

    if len(files) > MAX_TOTAL_FILES:
        errors.append(f"• Max {MAX_TOTAL_FILES} files per batch.")
    if len(salesforce) > MAX_SALESFORCE_FILES:
        errors.append(f"• Max {MAX_SALESFORCE_FILES} Salesforce files.")
    if len(emails) > MAX_EMAIL_FILES:
        errors.append(f"• Max {MAX_EMAIL_FILES} email files.")
    if len(images) > MAX_IMAGE_FILES:
        errors.append(f"• Max {MAX_IMAGE_FILES} images.")

    for name, count in Counter(f.name for f in files).items():
        if count > 1:
            errors.append(f'• Duplicate file name: "{name}".')

    for file in files:
        role = classify_file(file)
        if role is FileRole.UNSUPPORTED:
            errors.append(f'• Unsupported file type: "{file.name}".')
        elif role is FileRole.SALESFORCE and file.size > MAX_SALESFORCE_FILE_SIZE_BYTES:
            errors.append(f'• SF File "{file.name}" > {MAX_SALESFORCE_FILE_SIZE_MB}MB.')
        elif role is FileRole.EMAIL and file.size > MAX_EMAIL_FILE_SIZE_BYTES:
            errors.append(f'• Email File "{file.name}" > {MAX_EMAIL_FILE_SIZE_MB}MB.')
        elif role is FileRole.IMAGE and file.size > MAX_IMAGE_FILE_SIZE_BYTES:
            errors.append(f'• Image "{file.name}" > {MAX_IMAGE_FILE_SIZE_MB}MB.')
        elif role is FileRole.PDF and file.size > MAX_PDF_FILE_SIZE_BYTES:
            errors.append(f'• PDF "{file.name}" > {MAX_PDF_FILE_SIZE_MB}MB.')

    return errors
