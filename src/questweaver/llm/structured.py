"""
Structured output support: JSON extraction and minimal schema validation.

Models often wrap JSON in prose or code fences. extract_json_object() finds
the first balanced top-level ``{...}`` that parses, and validate_against_schema()
checks it against a small JSON-Schema subset (object, array, string, number,
boolean; ``required``; nested ``properties``). Validation never raises: all
problems come back as messages next to the partially usable value.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .models import LLMResponse, StructuredLLMResponse

logger = logging.getLogger("questweaver")

NO_JSON_FOUND = "No JSON object found in response"
STRUCTURED_SYSTEM_PROMPT = "You must respond with valid JSON that matches the provided schema exactly."


def _balanced_object_end(text: str, start: int) -> int | None:
    """Index just past the ``}`` closing the object opened at ``start``."""
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
                return i + 1
    return None


def extract_json_object(text: str) -> tuple[dict[str, Any] | None, str | None]:
    """Extract the first top-level JSON object embedded in free text.

    Candidates are found by brace matching (string-literal aware). A
    candidate that fails to parse is skipped in favour of the next ``{``.

    Args:
        text: Raw model output

    Returns:
        (parsed object, None) on success, otherwise (None, error message)
    """
    first_error: str | None = None
    pos = text.find("{")
    while pos != -1:
        end = _balanced_object_end(text, pos)
        if end is None:
            if first_error is None:
                first_error = "JSON parsing failed: unbalanced braces"
            break
        candidate = text[pos:end]
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            if first_error is None:
                first_error = f"JSON parsing failed: {e}"
        else:
            if isinstance(parsed, dict):
                return parsed, None
        pos = text.find("{", pos + 1)

    return None, first_error or NO_JSON_FOUND


def _type_error(data: Any, expected: str) -> str | None:
    if expected == "object":
        ok = isinstance(data, dict)
    elif expected == "array":
        ok = isinstance(data, list)
    elif expected == "string":
        ok = isinstance(data, str)
    elif expected in ("number", "integer"):
        ok = isinstance(data, (int, float)) and not isinstance(data, bool)
    elif expected == "boolean":
        ok = isinstance(data, bool)
    else:
        return None
    return None if ok else f"Expected {expected} type"


def validate_against_schema(
    data: Any,
    schema: dict[str, Any],
    recurse_arrays: bool = False,
) -> list[str]:
    """Check ``data`` against a minimal JSON-Schema subset.

    Nested errors are prefixed with their property path (``acts.Expected
    array type``). ``integer`` is treated as ``number``. Array items are only
    checked when ``recurse_arrays`` is set; errors are then prefixed with the
    item index (``characters.[2].Missing required property: name``).

    Args:
        data: Parsed value
        schema: Schema dict
        recurse_arrays: Validate each array item against ``items``

    Returns:
        List of error messages (empty when valid)
    """
    expected = schema.get("type")
    if expected is None:
        return []

    type_error = _type_error(data, expected)
    if type_error:
        return [type_error]

    errors: list[str] = []
    if expected == "object":
        for prop in schema.get("required", []):
            if prop not in data:
                errors.append(f"Missing required property: {prop}")
        for prop, prop_schema in schema.get("properties", {}).items():
            if prop in data:
                nested = validate_against_schema(data[prop], prop_schema, recurse_arrays)
                errors.extend(f"{prop}.{e}" for e in nested)
    elif expected == "array" and recurse_arrays and "items" in schema:
        for index, item in enumerate(data):
            nested = validate_against_schema(item, schema["items"], recurse_arrays)
            errors.extend(f"[{index}].{e}" for e in nested)

    return errors


def describe_schema(schema: dict[str, Any]) -> str:
    """Human-readable summary of a schema's top-level properties."""
    if schema.get("type") != "object":
        return f"Type: {schema.get('type')}"

    required = set(schema.get("required", []))
    lines = []
    for key, prop in schema.get("properties", {}).items():
        marker = "required" if key in required else "optional"
        line = f"- {key}: {prop.get('type')} ({marker})"
        if prop.get("description"):
            line += f" - {prop['description']}"
        lines.append(line)
    return "Object with properties:\n" + "\n".join(lines)


def format_structured_prompt(prompt: str, schema: dict[str, Any]) -> str:
    """Append JSON formatting instructions and the schema to a prompt."""
    return (
        f"{prompt}\n\n"
        f"Please respond with a valid JSON object that matches this schema:\n"
        f"{json.dumps(schema, indent=2)}\n\n"
        f"Schema requirements:\n{describe_schema(schema)}\n\n"
        f"Ensure your response is valid JSON with no additional text or formatting."
    )


def combine_system_prompts(*prompts: str | None) -> str:
    return "\n\n".join(p for p in prompts if p and p.strip())


def parse_structured_response(
    response: LLMResponse,
    schema: dict[str, Any],
    recurse_arrays: bool = False,
) -> StructuredLLMResponse:
    """Turn a free-text response into a StructuredLLMResponse.

    Never raises. With no JSON object in the text, parsed_content is None and
    validation_errors holds a single message.
    """
    parsed, error = extract_json_object(response.content)
    base = response.model_dump()

    if parsed is None:
        logger.warning(f"Structured response rejected: {error}")
        return StructuredLLMResponse(**base, parsed_content=None, validation_errors=[error or NO_JSON_FOUND])

    errors = validate_against_schema(parsed, schema, recurse_arrays)
    if errors:
        logger.warning(f"Structured response validation errors: {', '.join(errors)}")
    return StructuredLLMResponse(**base, parsed_content=parsed, validation_errors=errors)


__all__ = [
    "NO_JSON_FOUND",
    "STRUCTURED_SYSTEM_PROMPT",
    "extract_json_object",
    "validate_against_schema",
    "describe_schema",
    "format_structured_prompt",
    "combine_system_prompts",
    "parse_structured_response",
]
