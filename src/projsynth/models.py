"""Data models and enums for the project synthesis pipeline."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from projsynth.constants import DEFAULT_MODEL, MAX_TEXT_CHARS, API_CALL_CHAR_LIMIT


class FileRole(str, Enum):
    """Analysis role of a submitted file.  Roles are disjoint."""

    SALESFORCE = "salesforce"
    EMAIL = "email"
    IMAGE = "image"
    PDF = "pdf"
    UNSUPPORTED = "unsupported"


class FileState(str, Enum):
    """Processing status of a single file within one pipeline run."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Ordering used to keep status updates moving forward only."""
        return _FILE_STATE_RANK[self]


_FILE_STATE_RANK: dict[FileState, int] = {
    FileState.QUEUED: 0,
    FileState.PROCESSING: 1,
    FileState.SUCCESS: 2,
    FileState.ERROR: 2,
}


@dataclass(frozen=True, slots=True)
class SourceFile:
    """An in-memory file submitted to the pipeline."""

    name: str
    content: bytes = field(repr=False)
    mime_type: str = ""
    last_modified: float = 0.0

    @property
    def size(self) -> int:
        return len(self.content)

    def text(self) -> str:
        """Decode content as UTF-8, replacing undecodable bytes."""
        return self.content.decode("utf-8", errors="replace")

    @classmethod
    def from_path(cls, path: Path | str) -> SourceFile:
        """Load a file from disk, guessing its MIME type from the name."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content=path.read_bytes(),
            mime_type=mime_type or "",
            last_modified=path.stat().st_mtime,
        )


@dataclass(frozen=True, slots=True)
class FileStatusEntry:
    """Status record for one file name in ``file_processing_status``."""

    state: FileState
    detail: str | None = None
    error: str | None = None
    progress: float | None = None


@dataclass
class PoolConfig:
    """Configuration for the bounded-concurrency analysis pool.

    All durations are in seconds.

    Attributes:
        max_concurrent: Semaphore ceiling on in-flight analysis calls.
        failure_threshold: Consecutive failures before the breaker opens.
        timeout: Seconds the breaker stays open before a half-open probe.
        reset_timeout: Seconds a half-open probe may stay outstanding
            before another probe is admitted.
        max_attempts: Total attempts per task (first call included).
        base_delay: Initial backoff delay.
        max_delay: Backoff delay cap (before jitter).
    """

    max_concurrent: int = 5
    failure_threshold: int = 3
    timeout: float = 30.0
    reset_timeout: float = 10.0
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0


@dataclass
class SynthesisConfig:
    """Configuration for a synthesis run (client, media, and pool settings)."""

    api_key: str | None = None
    model: str = DEFAULT_MODEL
    temperature: float = 0.2
    max_text_chars: int = MAX_TEXT_CHARS
    api_call_char_limit: int = API_CALL_CHAR_LIMIT
    image_max_dimension: int = 2048
    image_quality: int = 85
    pdf_render_scale: float = 2.0
    min_review_confidence: float = 0.0
    pool: PoolConfig = field(default_factory=PoolConfig)
