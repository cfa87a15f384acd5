"""Turn free-form model output into JSON documents."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Union

import structlog

from .errors import GenerationParseError

logger = structlog.get_logger(__name__)

FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass(frozen=True)
class ParseOk:
    value: dict[str, Any]
    normalized: bool = False


@dataclass(frozen=True)
class ParseErr:
    kind: str
    message: str
    preview: str = ""


ParseResult = Union[ParseOk, ParseErr]


def strip_fences(text: str) -> str:
    match = FENCE_PATTERN.search(text)
    if match:
        return match.group(1)
    return text.strip().removeprefix("```json").removeprefix("```").removesuffix("```")


def clean_text(text: str) -> str:
    """Remove fences and control characters that break JSON decoding."""
    return CONTROL_CHARS.sub("", strip_fences(text)).strip()


def normalize_text(text: str) -> str:
    """Heavier cleanup applied once after a failed decode."""
    cleaned = text.replace("`", '"')
    cleaned = cleaned.replace("\\n", "").replace("\\t", "")
    cleaned = cleaned.replace("\r", "").replace("\n", "").replace("\t", "")
    return cleaned


def extract_object(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start : end + 1]


def _decode(text: str) -> dict[str, Any] | str:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        return str(exc)
    if not isinstance(value, dict):
        return f"expected a JSON object, got {type(value).__name__}"
    return value


def parse_json_response(raw: str) -> ParseResult:
    """Decode ``raw`` into a JSON object with at most one normalization retry."""
    if not raw or not raw.strip():
        return ParseErr(kind="empty", message="model returned an empty response")
    cleaned = extract_object(clean_text(raw))
    first = _decode(cleaned)
    if isinstance(first, dict):
        return ParseOk(value=first)

    logger.info("response_parser.normalize_retry", error=first)
    second = _decode(extract_object(normalize_text(cleaned)))
    if isinstance(second, dict):
        return ParseOk(value=second, normalized=True)
    return ParseErr(kind="invalid_json", message=second, preview=raw[:500])


def parse_workflow_response(raw: str) -> dict[str, Any]:
    result = parse_json_response(raw)
    if isinstance(result, ParseErr):
        logger.warning("response_parser.failed", kind=result.kind, message=result.message, preview=result.preview)
        raise GenerationParseError(f"Failed to parse AI response as JSON: {result.message}")
    return result.value


__all__ = [
    "ParseErr",
    "ParseOk",
    "ParseResult",
    "clean_text",
    "normalize_text",
    "parse_json_response",
    "parse_workflow_response",
    "strip_fences",
]
