"""Exception hierarchy for the project synthesis pipeline.

Every error raised by the pool, the analysis client, or the media helpers
derives from :class:`ProjsynthError`.  Retryability is carried as a
structured flag (``retryable``) set at the boundary that raised the error;
the retry policy reads only that flag.
"""

from __future__ import annotations

from typing import Any


class ProjsynthError(Exception):
    """Base class for all projsynth errors."""

    retryable: bool = False


class AnalysisError(ProjsynthError):
    """Raised when the AI service fails to analyze a single file.

    Attributes:
        file_name: Name of the file being analyzed.
        retryable: ``True`` for upstream server, rate-limit, and transport
            failures; ``False`` for content and validation failures.
    """

    def __init__(self, message: str, *, retryable: bool = False, file_name: str | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.file_name = file_name


class CircuitOpenError(ProjsynthError):
    """Raised when the circuit breaker rejects a call without executing it.

    Signals "we stopped trying", not "the operation failed".  Never retried.
    """

    retryable = False


class AggregateAnalysisError(ProjsynthError):
    """One or more tasks in a pool batch failed.

    Attributes:
        errors: Every individual failure, in input order.
        results: The outcome of every task in input order -- either the
            task's return value or the exception it raised.  Successful
            values of sibling tasks are preserved here.
    """

    def __init__(self, errors: list[BaseException], results: list[Any] | None = None) -> None:
        super().__init__(f"Multiple analysis errors occurred: {len(errors)} total.")
        self.errors = errors
        self.results = results if results is not None else []

    @property
    def successes(self) -> list[Any]:
        """Return values of the tasks that did not fail, in input order."""
        return [r for r in self.results if not isinstance(r, BaseException)]


class PdfConversionError(ProjsynthError):
    """Raised when a PDF cannot be rasterized into page images."""


class ImageProcessingError(ProjsynthError):
    """Raised when an image cannot be decoded, resized, or re-encoded."""
