"""
Helpers for pulling JSON out of free-form model output.

The search service is asked for "ONLY valid JSON" but routinely wraps it in
prose, markdown fences, or leaves trailing commas. Each helper tries the
embedded literal first and the whole response second.
"""
import json
import re
from typing import Any

_ARRAY_OF_OBJECTS = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")
_OBJECT = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_FENCE = re.compile(r"^```[\w-]*\s*|\s*```$")


class JSONExtractionError(ValueError):
    """No JSON value of the requested shape could be decoded."""


def strip_code_fences(text: str) -> str:
    """Remove a single surrounding ``` / ```json fence."""
    return _FENCE.sub("", text.strip()).strip()


def _loads(text: str) -> Any:
    # strict=False tolerates raw newlines/tabs inside string values
    try:
        return json.loads(text, strict=False)
    except json.JSONDecodeError:
        return json.loads(_TRAILING_COMMA.sub(r"\1", text), strict=False)


def _extract(text: str, pattern: re.Pattern, kind: str) -> Any:
    if not text or not text.strip():
        raise JSONExtractionError(f"empty response, expected a JSON {kind}")

    match = pattern.search(text)
    if match:
        try:
            return _loads(match.group(0))
        except json.JSONDecodeError:
            pass

    try:
        return _loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise JSONExtractionError(f"no parseable JSON {kind} in response: {e}") from e


def extract_json_array(text: str) -> Any:
    """
    Decode a JSON array of objects embedded anywhere in ``text``; if there is
    none, decode the whole response. The whole-response result may be any
    JSON type, so callers must check the shape they get back.
    """
    return _extract(text, _ARRAY_OF_OBJECTS, "array")


def extract_json_object(text: str) -> Any:
    """Same as extract_json_array, for a JSON object."""
    return _extract(text, _OBJECT, "object")
