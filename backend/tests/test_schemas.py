from __future__ import annotations

import pytest
from pydantic import ValidationError

from action_factories import meal_action, meal_item, plan_payload, supplement_action, symptom_action
from tibera_assistant_core.prompts import CONVERSATION_PROFILE, PLAN_PROFILE
from tibera_assistant_core.schemas import (
    ACTION_TYPES,
    CREATE_ACTION_TYPES,
    AssistantPlan,
    AssistantResponse,
    serialize_plan,
    validate_action,
    validate_plan,
)

ENTRY_ID = "6f1c2a3b-4d5e-4f60-8a7b-9c0d1e2f3a4b"


def test_plan_round_trips_through_wire_format():
    raw = plan_payload(
        [
            meal_action(
                [meal_item("salmon", "salmon cooked", gramsConsumed=150), meal_item("rice", servings=1)],
                mealType="dinner",
                date="2026-02-01",
            ),
            symptom_action("headache", severity=4),
            supplement_action("vitamin d", dosage=1000, unit="IU"),
        ]
    )
    plan = validate_plan(raw, AssistantPlan)

    assert serialize_plan(plan) == raw
    assert validate_plan(serialize_plan(plan), AssistantPlan) == plan


def test_absent_and_null_optional_fields_are_both_accepted():
    absent = validate_plan(plan_payload([symptom_action("nausea", severity=None)]), AssistantPlan)
    nulls = validate_plan(
        plan_payload(
            [
                {
                    "type": "log_symptom",
                    "title": "Log nausea",
                    "confidence": 0.7,
                    "entryId": None,
                    "data": {"symptom": "nausea", "severity": None, "date": None, "time": None, "notes": None},
                }
            ]
        ),
        AssistantPlan,
    )
    assert absent.actions[0].data.symptom == nulls.actions[0].data.symptom == "nausea"
    assert nulls.actions[0].data.time is None


@pytest.mark.parametrize("confidence", [-0.1, 1.2])
def test_out_of_range_confidence_is_rejected(confidence):
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([symptom_action("cough", confidence=confidence)]), AssistantPlan)


def test_unknown_keys_are_rejected():
    action = symptom_action("cough")
    action["data"]["mood"] = "grumpy"
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([action]), AssistantPlan)

    with pytest.raises(ValidationError):
        validate_plan({**plan_payload([]), "extra": True}, AssistantPlan)


def test_numeric_strings_are_not_coerced_on_strict_validation():
    action = symptom_action("cough")
    action["data"]["severity"] = "6"
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([action]), AssistantPlan)


def test_meal_requires_at_least_one_item():
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([meal_action([])]), AssistantPlan)


def test_meal_item_grams_must_be_positive():
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([meal_action([meal_item("rice", gramsConsumed=0)])]), AssistantPlan)


def test_date_and_time_patterns_are_enforced():
    bad_date = symptom_action("cramps")
    bad_date["data"]["date"] = "02/01/2026"
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([bad_date]), AssistantPlan)

    bad_time = symptom_action("cramps")
    bad_time["data"]["time"] = "9am"
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([bad_time]), AssistantPlan)


def test_action_list_is_capped_at_twelve():
    actions = [symptom_action(f"symptom {idx}") for idx in range(13)]
    with pytest.raises(ValidationError):
        validate_plan(plan_payload(actions), AssistantPlan)
    assert len(validate_plan(plan_payload(actions[:12]), AssistantPlan).actions) == 12


def test_edit_and_delete_actions_require_entry_id():
    edit = {
        "type": "edit_symptom",
        "title": "Lower severity",
        "confidence": 0.8,
        "data": {"severity": 3},
    }
    with pytest.raises(ValidationError):
        validate_action(edit)

    parsed = validate_action({**edit, "entryId": ENTRY_ID})
    assert parsed.entry_id == ENTRY_ID

    delete = validate_action(
        {
            "type": "delete_entry",
            "title": "Delete meal",
            "confidence": 0.9,
            "entryId": ENTRY_ID,
            "data": {"entryType": "meal"},
        }
    )
    assert delete.data.entry_type == "meal"


def test_create_actions_reject_an_entry_id():
    action = symptom_action("cough")
    action["entryId"] = ENTRY_ID
    with pytest.raises(ValidationError):
        validate_action(action)


def test_sleep_and_shopping_variants_validate_enums():
    sleep = validate_action(
        {
            "type": "log_sleep",
            "title": "Log sleep",
            "confidence": 0.8,
            "data": {"bedtime": "23:30", "wake_time": "07:00", "quality": 4, "factors": ["caffeine"]},
        }
    )
    assert sleep.data.factors == ["caffeine"]

    with pytest.raises(ValidationError):
        validate_action(
            {
                "type": "add_shopping_item",
                "title": "Add milk",
                "confidence": 0.9,
                "data": {"name": "milk", "category": "fridge"},
            }
        )


def test_response_envelope_requires_decision():
    with pytest.raises(ValidationError):
        validate_plan(plan_payload([]), AssistantResponse)

    response = validate_plan(
        {
            **plan_payload([], message="Hi there."),
            "decision": {"intent": "chat", "apply": "none", "confidence": 1, "action_handling": "keep"},
        },
        AssistantResponse,
    )
    assert response.decision.action_handling == "keep"


def test_response_format_branches_require_every_key():
    schema = CONVERSATION_PROFILE.response_format["schema"]
    branches = schema["properties"]["actions"]["items"]["anyOf"]

    assert [branch["properties"]["type"]["enum"][0] for branch in branches] == list(ACTION_TYPES)
    for branch in branches:
        assert sorted(branch["required"]) == sorted(branch["properties"])
        data = branch["properties"]["data"]
        assert sorted(data["required"]) == sorted(data["properties"])
        assert data["additionalProperties"] is False
    assert "decision" in schema["required"]


def test_plan_response_format_only_offers_create_actions():
    schema = PLAN_PROFILE.response_format["schema"]
    branches = schema["properties"]["actions"]["items"]["anyOf"]
    assert tuple(branch["properties"]["type"]["enum"][0] for branch in branches) == CREATE_ACTION_TYPES
    assert "decision" not in schema["properties"]
    assert PLAN_PROFILE.response_format["strict"] is True
