"""JSON response parsing for Gemini structured output.

JSON mode usually returns a bare object, but the model occasionally wraps
it in a Markdown code fence.  Fences are stripped before ``json.loads``.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence."""
    return _FENCE_RE.sub("", text.strip())


def parse_json_response(text: str | None) -> dict[str, Any]:
    """Parse a model reply into a JSON object.

    Raises:
        ValueError: If the reply is empty, not valid JSON, or not an object.
    """
    if not text or not text.strip():
        raise ValueError("Empty response from model")

    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Model response is not valid JSON: {exc}") from exc

    # A one-element array wrapping the object is accepted
    if isinstance(parsed, list) and len(parsed) == 1 and isinstance(parsed[0], dict):
        parsed = parsed[0]
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
