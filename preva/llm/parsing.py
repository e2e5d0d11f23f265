"""
Defensive parsing of model output that should be JSON.
"""

from __future__ import annotations

import json
import re
from typing import Any

from preva.errors import AnalysisError

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


def _strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def parse_json_from_response(raw: str | None) -> Any:
    """
    Parse JSON out of a model's text response.

    Strips a Markdown code fence, drops trailing commas, and as a last resort
    parses the span between the first `{` and the last `}`. Raises
    AnalysisError with the decoder's message when nothing parses.
    """
    text = (raw or "").strip()
    if not text:
        raise AnalysisError("Empty response from model.", stage="text")

    match = _CODE_FENCE.search(text)
    if match:
        text = match.group(1).strip()
    text = _strip_trailing_commas(text)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        first_error = e

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(_strip_trailing_commas(text[start:end + 1]))
        except json.JSONDecodeError:
            pass

    raise AnalysisError(f"Could not parse model response as JSON: {first_error}", stage="text")
