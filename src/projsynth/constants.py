"""Project-wide named constants.

Batch ceilings enforced by validation, and text-size thresholds used by
the analysis client before a file is sent to the model.
"""

MB: int = 1024 * 1024

# Per-category file size ceilings (megabytes)
MAX_SALESFORCE_FILE_SIZE_MB: int = 20
MAX_EMAIL_FILE_SIZE_MB: int = 25
MAX_IMAGE_FILE_SIZE_MB: int = 10
MAX_PDF_FILE_SIZE_MB: int = 25

MAX_SALESFORCE_FILE_SIZE_BYTES: int = MAX_SALESFORCE_FILE_SIZE_MB * MB
MAX_EMAIL_FILE_SIZE_BYTES: int = MAX_EMAIL_FILE_SIZE_MB * MB
MAX_IMAGE_FILE_SIZE_BYTES: int = MAX_IMAGE_FILE_SIZE_MB * MB
MAX_PDF_FILE_SIZE_BYTES: int = MAX_PDF_FILE_SIZE_MB * MB

# Per-batch count ceilings
MAX_TOTAL_FILES: int = 10
MAX_SALESFORCE_FILES: int = 5
MAX_EMAIL_FILES: int = 5
MAX_IMAGE_FILES: int = 10

# ~50k tokens.  Longer text is summarized before analysis.
MAX_TEXT_CHARS: int = 200_000

# Largest single prompt sent for summarization.  Above this the text is
# chunked and summarized map-reduce style.
API_CALL_CHAR_LIMIT: int = 950_000

DEFAULT_MODEL: str = "gemini-2.5-flash"
