"""
JSON-in-free-text extraction.

Model responses wrap JSON in prose, markdown fences, or several candidate
objects. `extract_json_object` returns the first balanced `{...}` segment
that parses as a JSON object, or raises ExtractionError.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional

from .errors import ExtractionError


def _balanced_end(text: str, start: int, open_ch: str, close_ch: str) -> Optional[int]:
    """Index of the delimiter closing the one at `start`, or None if never closed.

    Delimiters inside JSON strings (including escaped quotes) are ignored.
    """
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return i
    return None


def iter_balanced_segments(text: str, open_ch: str = "{", close_ch: str = "}") -> Iterator[str]:
    """Yield every balanced segment, trying each opening delimiter in order.

    Nested starts are tried too, so a malformed outer object does not hide
    a valid inner one.
    """
    pos = text.find(open_ch)
    while pos != -1:
        end = _balanced_end(text, pos, open_ch, close_ch)
        if end is not None:
            yield text[pos:end + 1]
        pos = text.find(open_ch, pos + 1)


def _first_parsed(text: str, open_ch: str, close_ch: str, kind: type) -> Any:
    for segment in iter_balanced_segments(text, open_ch, close_ch):
        try:
            value = json.loads(segment)
        except json.JSONDecodeError:
            continue
        if isinstance(value, kind):
            return value
    return None


def extract_json_object(text: Any) -> Dict[str, Any]:
    """Return the first balanced JSON object embedded in `text`.

    Raises:
        ExtractionError: If no balanced segment parses as an object
    """
    if not isinstance(text, str) or "{" not in text:
        raise ExtractionError("No JSON object found in response")

    value = _first_parsed(text, "{", "}", dict)
    if value is None:
        raise ExtractionError("No parseable JSON object found in response")
    return value


def extract_json_array(text: Any) -> List[Any]:
    """Return the first balanced JSON array embedded in `text`.

    Raises:
        ExtractionError: If no balanced segment parses as an array
    """
    if not isinstance(text, str) or "[" not in text:
        raise ExtractionError("No JSON array found in response")

    value = _first_parsed(text, "[", "]", list)
    if value is None:
        raise ExtractionError("No parseable JSON array found in response")
    return value


def extract_json_value(text: Any) -> Any:
    """Object or array, whichever opens first in the text."""
    if not isinstance(text, str):
        raise ExtractionError("Response is not text")

    first_obj = text.find("{")
    first_arr = text.find("[")
    if first_arr != -1 and (first_obj == -1 or first_arr < first_obj):
        order = (extract_json_array, extract_json_object)
    else:
        order = (extract_json_object, extract_json_array)

    for extract in order:
        try:
            return extract(text)
        except ExtractionError:
            continue
    raise ExtractionError("No parseable JSON value found in response")
