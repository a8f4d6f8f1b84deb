"""
Best-effort cleanup of LLM JSON answers.

Models wrap JSON in markdown fences, add chatter around it or leave trailing
commas. ``parse_json_response`` repairs what it can and returns either the
parsed object or a ``ResponseParseError`` value; it never raises, so callers
decide how a garbage answer is reported.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Union

from interview_eval.utils.error_handlers import ResponseParseError

_FENCE_JSON = re.compile(r"```json\s*")
_FENCE = re.compile(r"```")
_TRAILING_COMMA_OBJECT = re.compile(r",\s*}")
_TRAILING_COMMA_ARRAY = re.compile(r",\s*]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedJson:
    data: Dict[str, Any]
    raw: str
    cleaned: str


ParseOutcome = Union[ParsedJson, ResponseParseError]


def clean_json_response(response: str) -> str:
    """Strip fences and surrounding text, drop trailing commas, collapse whitespace."""
    cleaned = _FENCE.sub("", _FENCE_JSON.sub("", response)).strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start:end + 1]

    cleaned = _TRAILING_COMMA_OBJECT.sub("}", cleaned)
    cleaned = _TRAILING_COMMA_ARRAY.sub("]", cleaned)
    cleaned = cleaned.replace("\n", " ")
    return _WHITESPACE.sub(" ", cleaned).strip()


def parse_json_response(response: str, source: str = "backend") -> ParseOutcome:
    """
    Clean and parse a JSON object out of ``response``.

    Returns ``ParsedJson`` on success, otherwise a ``ResponseParseError``
    carrying both the raw and the cleaned text.
    """
    raw = response if isinstance(response, str) else str(response)
    cleaned = clean_json_response(raw)

    if not cleaned:
        return ResponseParseError(f"Empty response from {source} after cleaning", raw=raw, cleaned=cleaned)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ResponseParseError(f"Invalid JSON response from {source}: {e}", raw=raw, cleaned=cleaned)

    if not isinstance(parsed, dict):
        return ResponseParseError(
            f"Invalid JSON response from {source}: parsed result is not an object",
            raw=raw,
            cleaned=cleaned,
        )

    return ParsedJson(data=parsed, raw=raw, cleaned=cleaned)
