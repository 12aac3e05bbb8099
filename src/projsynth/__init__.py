"""Project synthesis from Salesforce exports, email threads, images and PDFs."""

__version__ = "0.1.0"

from projsynth.models import FileRole, FileState, PoolConfig, SourceFile, SynthesisConfig

__all__ = [
    "FileRole",
    "FileState",
    "PoolConfig",
    "SourceFile",
    "SynthesisConfig",
    "__version__",
]
