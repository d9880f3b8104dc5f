"""
Response Sanitizer for AI check comparisons.

Turns the loosely structured text returned by the analysis model into a
strict AnalysisResult. The model is asked for JSON but may wrap it in prose
or code fences, leave keys unquoted, or use single quotes. Parsing the
envelope may fail with MalformedResponse; everything after that is total:
each field sanitizer always returns a value of its declared type.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from ..exceptions import MalformedResponse
from ..models.schemas import AnalysisResult, FieldComparisonEntry

logger = logging.getLogger(__name__)

LAYOUT_PLACEHOLDER = "Layout analysis is unavailable."
SECURITY_PLACEHOLDER = "Security feature analysis is unavailable."
STAMP_PLACEHOLDER = "Stamp and signature analysis is unavailable."
METADATA_PLACEHOLDER = "Metadata analysis is unavailable."
ASSESSMENT_PLACEHOLDER = "Overall assessment is unavailable."
COMMENT_PLACEHOLDER = "No comment provided."
FIELD_PARSE_ERROR = "parse error"

# Keys the model has been seen to use, newest first
FIELD_COMPARISON_KEYS = ("fieldComparison", "fieldComparisons", "полеСравнение")
ENTRY_KEYS = {
    "present": ("present", "наличие"),
    "matches": ("matches", "совпадение"),
    "comment": ("comment", "комментарий"),
}

_CODE_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)
_CONTROL_WHITESPACE = re.compile(r"[\r\n\t]+")
_UNQUOTED_KEY = re.compile(r"([{,])\s*([^\W\d]\w*)\s*:")
_SINGLE_QUOTED_VALUE = re.compile(r":\s*'([^']*)'")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_UNDEFINED_VALUE = re.compile(r":\s*undefined\b")
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?Infinity)")


# ─── Envelope parsing ───────────────────────────────────────────────


@dataclass(frozen=True)
class ParsedResponse:
    """Outcome of parsing the response envelope: a payload or an error."""
    ok: bool
    payload: dict | None = None
    error: str | None = None


def extract_json_text(text: str) -> str:
    """Strip code fences and surrounding prose, keeping the outermost braces.

    Raises:
        MalformedResponse: if the text has no `{ ... }` span.
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise MalformedResponse("No JSON object found in analysis response", {"preview": cleaned[:200]})
    return _CONTROL_WHITESPACE.sub(" ", cleaned[start:end + 1])


def repair_json_text(text: str) -> str:
    """Apply conservative fixes for the malformed JSON models commonly emit."""
    text = _UNQUOTED_KEY.sub(r'\1"\2":', text)
    text = _SINGLE_QUOTED_VALUE.sub(r':"\1"', text)
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _UNDEFINED_VALUE.sub(":null", text)


def try_parse_response(text: str) -> ParsedResponse:
    """Parse the response envelope without raising."""
    try:
        candidate = extract_json_text(text)
    except MalformedResponse as e:
        return ParsedResponse(ok=False, error=e.message)

    last_error = ""
    for attempt in (candidate, repair_json_text(candidate)):
        try:
            payload = json.loads(attempt)
        except (ValueError, RecursionError) as e:
            last_error = str(e)
            continue
        if isinstance(payload, dict):
            return ParsedResponse(ok=True, payload=payload)
        last_error = f"expected a JSON object, got {type(payload).__name__}"
    return ParsedResponse(ok=False, error=last_error)


def parse_analysis_response(text: str) -> AnalysisResult:
    """Parse and sanitize raw analysis text.

    Raises:
        MalformedResponse: if no JSON object can be recovered from the text.
    """
    parsed = try_parse_response(text)
    if not parsed.ok:
        raise MalformedResponse(
            f"Failed to parse analysis response: {parsed.error}",
            {"preview": (text or "")[:200]},
        )
    return sanitize_response(parsed.payload)


# ─── Field sanitizers ───────────────────────────────────────────────


def _clamp(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


def sanitize_score(value: Any) -> float:
    """Clamp a score to [0, 100]; anything unparsable scores 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int):
        return float(max(0, min(100, value)))
    if isinstance(value, float):
        return _clamp(value)
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return 0.0
        return _clamp(float(match.group(1)))
    return 0.0


def sanitize_string(value: Any, placeholder: str = "") -> str:
    """Coerce to a trimmed string; structured values are serialized as JSON."""
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = value.strip()
    elif isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (dict, list, tuple)):
        try:
            text = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError, RecursionError):
            text = str(value).strip()
    else:
        text = str(value).strip()
    return text or placeholder


def sanitize_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def sanitize_string_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [sanitize_string(item) for item in value]
    if isinstance(value, str):
        return [sanitize_string(value)]
    return []


def _entry_value(entry: dict, name: str) -> Any:
    for key in ENTRY_KEYS[name]:
        if key in entry:
            return entry[key]
    return None


def sanitize_field_entry(value: Any) -> FieldComparisonEntry:
    """Sanitize one field comparison; string entries are decoded first.

    Raises:
        ValueError: if the entry is not an object after decoding.
    """
    entry = json.loads(value) if isinstance(value, str) else value
    if not isinstance(entry, dict):
        raise ValueError(f"field entry must be an object, got {type(entry).__name__}")
    return FieldComparisonEntry(
        present=sanitize_boolean(_entry_value(entry, "present")),
        matches=sanitize_boolean(_entry_value(entry, "matches")),
        comment=sanitize_string(_entry_value(entry, "comment"), COMMENT_PLACEHOLDER),
    )


def sanitize_field_comparisons(value: Any) -> dict[str, FieldComparisonEntry]:
    """Sanitize every field entry; a bad entry degrades alone."""
    if not isinstance(value, dict):
        return {}

    result: dict[str, FieldComparisonEntry] = {}
    for key, raw in value.items():
        name = str(key)
        try:
            result[name] = sanitize_field_entry(raw)
        except (ValueError, TypeError, RecursionError) as e:
            logger.error(f"Field comparison '{name}' could not be parsed: {e}")
            result[name] = FieldComparisonEntry(present=False, matches=False, comment=FIELD_PARSE_ERROR)
    return result


def _field_comparison_map(parsed: dict) -> Any:
    for key in FIELD_COMPARISON_KEYS:
        if isinstance(parsed.get(key), dict):
            return parsed[key]
    return {}


def sanitize_response(parsed: dict) -> AnalysisResult:
    """Build a well-formed AnalysisResult from a decoded response object."""
    return AnalysisResult(
        score=sanitize_score(parsed.get("score")),
        field_comparisons=sanitize_field_comparisons(_field_comparison_map(parsed)),
        layout_match=sanitize_string(parsed.get("layoutMatch"), LAYOUT_PLACEHOLDER),
        security_features=sanitize_string(parsed.get("securityFeatures"), SECURITY_PLACEHOLDER),
        stamp_signature=sanitize_string(parsed.get("stampSignature"), STAMP_PLACEHOLDER),
        metadata_comparison=sanitize_string(parsed.get("metadataComparison"), METADATA_PLACEHOLDER),
        overall_assessment=sanitize_string(parsed.get("overallAssessment"), ASSESSMENT_PLACEHOLDER),
        missing_fields=sanitize_string_list(parsed.get("missingFields")),
    )
