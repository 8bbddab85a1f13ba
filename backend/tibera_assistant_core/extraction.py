from __future__ import annotations

import json
import re
from typing import Any, Callable

# Keys whose string values may be repaired into numbers on the second validation pass.
NUMERIC_KEYS = frozenset({"confidence", "severity", "gramsConsumed", "servings", "dosage", "quantity", "quality"})
INTEGER_KEYS = frozenset({"severity", "quality"})
NULL_LITERALS = frozenset({"null", "none"})

_NUMERIC_STRING_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")


def _flat_output_text(payload: dict[str, Any]) -> str | None:
    text = payload.get("output_text")
    if isinstance(text, str) and text.strip():
        return text
    return None


def _nested_output_text(payload: dict[str, Any]) -> str | None:
    output = payload.get("output")
    if not isinstance(output, list):
        return None
    for item in output:
        if not isinstance(item, dict):
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for entry in content:
            if not isinstance(entry, dict) or entry.get("type") != "output_text":
                continue
            text = entry.get("text")
            if isinstance(text, str) and text.strip():
                return text
    return None


def _chat_completion_text(payload: dict[str, Any]) -> str | None:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str):
        return content if content.strip() else None
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text_value = item.get("text")
                if isinstance(text_value, str):
                    parts.append(text_value)
        joined = "\n".join(parts)
        return joined if joined.strip() else None
    return None


TEXT_STRATEGIES: tuple[Callable[[dict[str, Any]], str | None], ...] = (
    _flat_output_text,
    _nested_output_text,
    _chat_completion_text,
)


def extract_output_text(payload: Any) -> str | None:
    """Pull the generated text out of a completion-service response body.

    Tries each shape in ``TEXT_STRATEGIES`` in order: the flat ``output_text`` field,
    the Responses API ``output[].content[]`` array, then a Chat Completions
    ``choices[0].message.content``. Returns ``None`` when no strategy finds text.
    """
    if not isinstance(payload, dict):
        return None
    for strategy in TEXT_STRATEGIES:
        text = strategy(payload)
        if text is not None:
            return text
    return None


def clean_json_text(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_object(raw_text: str) -> dict[str, Any] | None:
    text = clean_json_text(raw_text)
    if not text:
        return None
    try:
        payload = json.loads(text)
        if isinstance(payload, dict):
            return payload
    except json.JSONDecodeError:
        pass

    for start_idx in [idx for idx, char in enumerate(text) if char == "{"]:
        depth = 0
        for end_idx in range(start_idx, len(text)):
            char = text[end_idx]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
            if depth == 0:
                candidate = text[start_idx : end_idx + 1]
                try:
                    payload = json.loads(candidate)
                    if isinstance(payload, dict):
                        return payload
                except json.JSONDecodeError:
                    break
    return None


def _coerce_number(value: str) -> Any:
    cleaned = value.strip()
    if not _NUMERIC_STRING_RE.match(cleaned):
        return value
    number = float(cleaned)
    return int(number) if number.is_integer() else number


def coerce_json(value: Any, key: str | None = None) -> Any:
    """Repair near-miss model output before the second validation attempt.

    ``"null"``/``"none"``/``"None"`` become ``None`` anywhere; numeric strings under
    ``NUMERIC_KEYS`` become numbers; integral floats under ``INTEGER_KEYS`` become
    ints. Anything else is returned unchanged. Never raises.
    """
    if isinstance(value, dict):
        return {child_key: coerce_json(child, child_key) for child_key, child in value.items()}
    if isinstance(value, list):
        return [coerce_json(child, key) for child in value]
    if isinstance(value, str):
        if value.strip().lower() in NULL_LITERALS:
            return None
        if key in NUMERIC_KEYS:
            return _coerce_number(value)
        return value
    if key in INTEGER_KEYS and isinstance(value, float) and value.is_integer():
        return int(value)
    return value
