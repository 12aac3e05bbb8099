"""AI-powered file analysis using Gemini structured output.

Provides the pydantic response schemas, prompt templates, response
parsing, and the client that maps SDK failures onto retryable /
non-retryable :class:`~projsynth.exceptions.AnalysisError`.
"""

from projsynth.analysis.client import GeminiAnalysisClient
from projsynth.analysis.prompts import PromptKind

__all__ = ["GeminiAnalysisClient", "PromptKind"]
