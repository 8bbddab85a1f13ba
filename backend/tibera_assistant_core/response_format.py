"""JSON schema sent to the completion service as the structured-output contract.

Each action type gets its own ``anyOf`` branch with only the fields relevant to it,
and every key is required (nullable where optional) because strict structured output
does not allow omitted properties. The pydantic models in ``schemas`` still
validate whatever comes back.
"""

from __future__ import annotations

from typing import Any

from .schemas import (
    ACTION_TYPES,
    DATE_PATTERN,
    ENTRY_TYPES,
    MAX_ACTIONS,
    MEAL_TYPES,
    SHOPPING_CATEGORIES,
    SLEEP_FACTORS,
    TIME_PATTERN,
)

_DATE = {"type": ["string", "null"], "pattern": DATE_PATTERN}
_TIME = {"type": ["string", "null"], "pattern": TIME_PATTERN}
_NOTES = {"type": ["string", "null"]}
_MEAL_TYPE = {"type": ["string", "null"], "enum": [*MEAL_TYPES, None]}
_CATEGORY = {"type": ["string", "null"], "enum": [*SHOPPING_CATEGORIES, None]}
_FACTORS = {"type": ["array", "null"], "items": {"type": "string", "enum": list(SLEEP_FACTORS)}}

MEAL_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["label", "usdaQuery", "gramsConsumed", "servings", "notes"],
    "properties": {
        "label": {"type": "string", "minLength": 1},
        "usdaQuery": {"type": "string", "minLength": 1},
        "gramsConsumed": {"type": ["number", "null"], "minimum": 0},
        "servings": {"type": ["number", "null"], "minimum": 0},
        "notes": _NOTES,
    },
}

_DATA_PROPERTIES: dict[str, dict[str, Any]] = {
    "log_meal": {
        "date": _DATE,
        "mealType": _MEAL_TYPE,
        "items": {"type": "array", "minItems": 1, "items": MEAL_ITEM_SCHEMA},
        "notes": _NOTES,
    },
    "log_symptom": {
        "symptom": {"type": "string", "minLength": 1},
        "severity": {"type": ["integer", "null"], "minimum": 1, "maximum": 10},
        "date": _DATE,
        "time": _TIME,
        "notes": _NOTES,
    },
    "log_supplement": {
        "supplement": {"type": "string", "minLength": 1},
        "dosage": {"type": ["number", "null"], "minimum": 0},
        "unit": {"type": ["string", "null"]},
        "date": _DATE,
        "time": _TIME,
        "notes": _NOTES,
    },
    "log_sleep": {
        "date": _DATE,
        "bedtime": _TIME,
        "wake_time": _TIME,
        "quality": {"type": ["integer", "null"], "minimum": 1, "maximum": 5},
        "factors": _FACTORS,
        "notes": _NOTES,
    },
    "add_shopping_item": {
        "name": {"type": "string", "minLength": 1},
        "quantity": {"type": ["number", "null"], "minimum": 0},
        "unit": {"type": ["string", "null"]},
        "category": _CATEGORY,
        "notes": _NOTES,
    },
    "edit_meal": {
        "date": _DATE,
        "mealType": _MEAL_TYPE,
        "items": {"type": ["array", "null"], "items": MEAL_ITEM_SCHEMA},
        "notes": _NOTES,
    },
    "edit_symptom": {
        "severity": {"type": ["integer", "null"], "minimum": 1, "maximum": 10},
        "date": _DATE,
        "time": _TIME,
        "notes": _NOTES,
    },
    "edit_supplement": {
        "dosage": {"type": ["number", "null"], "minimum": 0},
        "unit": {"type": ["string", "null"]},
        "date": _DATE,
        "time": _TIME,
        "notes": _NOTES,
    },
    "edit_sleep": {
        "bedtime": _TIME,
        "wake_time": _TIME,
        "quality": {"type": ["integer", "null"], "minimum": 1, "maximum": 5},
        "factors": _FACTORS,
        "notes": _NOTES,
    },
    "edit_shopping_item": {
        "name": {"type": ["string", "null"]},
        "quantity": {"type": ["number", "null"], "minimum": 0},
        "unit": {"type": ["string", "null"]},
        "category": _CATEGORY,
        "is_checked": {"type": ["boolean", "null"]},
        "notes": _NOTES,
    },
    "delete_entry": {
        "entryType": {"type": "string", "enum": list(ENTRY_TYPES)},
    },
}

DECISION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["intent", "apply", "confidence", "action_handling"],
    "properties": {
        "intent": {"enum": ["log", "clarify", "chat"]},
        "apply": {"enum": ["auto", "confirm", "none"]},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "action_handling": {"enum": ["keep", "replace", "clear"]},
    },
}


def action_schema(action_type: str) -> dict[str, Any]:
    data_properties = _DATA_PROPERTIES[action_type]
    creates = action_type.startswith("log_") or action_type.startswith("add_")
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["type", "title", "confidence", "entryId", "data"],
        "properties": {
            "type": {"enum": [action_type]},
            "title": {"type": "string", "minLength": 1},
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
            "entryId": {"type": ["string", "null"]} if creates else {"type": "string"},
            "data": {
                "type": "object",
                "additionalProperties": False,
                "required": list(data_properties),
                "properties": data_properties,
            },
        },
    }


def build_response_format(
    name: str,
    *,
    include_decision: bool,
    action_types: tuple[str, ...] = ACTION_TYPES,
) -> dict[str, Any]:
    """Return the ``text.format`` block for a Responses API request."""
    properties: dict[str, Any] = {
        "message": {"type": "string", "minLength": 1},
        "actions": {
            "type": "array",
            "maxItems": MAX_ACTIONS,
            "items": {"anyOf": [action_schema(action_type) for action_type in action_types]},
        },
    }
    required = ["message", "actions"]
    if include_decision:
        properties["decision"] = DECISION_SCHEMA
        required.append("decision")
    return {
        "type": "json_schema",
        "name": name,
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "required": required,
            "properties": properties,
        },
    }
