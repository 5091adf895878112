"""Turn raw model output into a validated GeneratedContent value."""

from __future__ import annotations

import json
import re
from typing import Any

from feedpress.errors import ResponseParseError
from feedpress.models import AcceptedContent, GeneratedContent, RejectedContent

TITLE_MAX_CHARS = 150
EXCERPT_MAX_CHARS = 300
DEFAULT_REJECTION_REASON = "Content rejected by AI"

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")

_OPTIONAL_FIELDS = (
    "deadline",
    "prize_value",
    "requirements",
    "location",
    "apply_url",
    "meta_title",
    "meta_description",
)


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences from LLM JSON output.

    Handles the common habit of wrapping JSON in ```json ... ``` blocks.
    """
    text = text.strip()
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` span in *text*.

    Braces inside JSON strings are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def clean_text(text: str, max_length: int) -> str:
    """Trim, collapse whitespace and cap at *max_length* characters."""
    return _WHITESPACE_RE.sub(" ", text.strip())[:max_length]


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def _confidence(value: Any) -> float:
    if value is None or value == "":
        return 1.0
    try:
        score = float(value)
    except (TypeError, ValueError) as exc:
        raise ResponseParseError(f"confidence_score is not a number: {value!r}") from exc
    return min(max(score, 0.0), 1.0)


def parse_generated_content(raw: str) -> GeneratedContent:
    """Parse and validate model output.

    Raises:
        ResponseParseError: When the output is not a JSON object, lacks a
            boolean ``valid`` field, or is a valid result without a title
            or content.
    """
    cleaned = strip_json_fences(raw)
    if not cleaned.startswith("{"):
        span = extract_json_object(cleaned)
        if span is None:
            raise ResponseParseError(f"No JSON object in response: {cleaned[:200]!r}")
        cleaned = span

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        span = extract_json_object(cleaned)
        if span is None or span == cleaned:
            raise ResponseParseError(f"Invalid JSON in response: {exc}") from exc
        try:
            data = json.loads(span)
        except json.JSONDecodeError as inner:
            raise ResponseParseError(f"Invalid JSON in response: {inner}") from inner

    if not isinstance(data, dict):
        raise ResponseParseError("Response JSON is not an object")

    valid = data.get("valid")
    if not isinstance(valid, bool):
        raise ResponseParseError("Response is missing a boolean 'valid' field")

    if not valid:
        reason = data.get("reason")
        return RejectedContent(reason=str(reason).strip() if reason else DEFAULT_REJECTION_REASON)

    title = data.get("title")
    content = data.get("content")
    if not title or not content:
        raise ResponseParseError("Valid response is missing title or content")

    return AcceptedContent(
        title=clean_text(str(title), TITLE_MAX_CHARS),
        excerpt=clean_text(str(data.get("excerpt") or ""), EXCERPT_MAX_CHARS),
        content=str(content),
        confidence_score=_confidence(data.get("confidence_score")),
        **{field: _optional_str(data.get(field)) for field in _OPTIONAL_FIELDS},
    )
