"""Helpers for reading JSON objects out of LLM replies."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse *text* as a single JSON object.

    Tolerates a surrounding markdown code fence. Raises ``ValueError`` when
    the text is not JSON or decodes to something other than an object.
    """
    stripped = text.strip()
    fenced = _FENCE_PATTERN.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    data = json.loads(stripped)  # JSONDecodeError is a ValueError
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data
