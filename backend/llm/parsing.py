"""Extracting structured payloads from freeform LLM output.

Model output is expected to contain one JSON object somewhere in the text.
``extract_json_object`` finds the first balanced ``{...}`` span (ignoring
braces inside string literals) and ``parse_payload`` validates it against a
pydantic model, returning a tagged result instead of raising.
"""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError


@dataclass(frozen=True)
class Parsed[T]:
    value: T


@dataclass(frozen=True)
class Fallback:
    reason: str


type ParseResult[T] = Parsed[T] | Fallback


def find_json_span(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of ``text``, if any."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json_object(text: str) -> ParseResult[dict[str, Any]]:
    span = find_json_span(text)
    if span is None:
        return Fallback("no JSON object in response")
    try:
        value = json.loads(span)
    except json.JSONDecodeError as e:
        return Fallback(f"invalid JSON: {e.msg}")
    if not isinstance(value, dict):
        return Fallback("JSON value is not an object")
    return Parsed(value)


def parse_payload[M: BaseModel](text: str, model: type[M]) -> ParseResult[M]:
    match extract_json_object(text):
        case Fallback() as fallback:
            return fallback
        case Parsed(value=obj):
            try:
                return Parsed(model.model_validate(obj))
            except ValidationError as e:
                return Fallback(f"payload failed validation: {e.error_count()} error(s)")
