from __future__ import annotations

import pytest

from tibera_assistant_core.schemas import AssistantPlan, AssistantResponse
from tibera_assistant_core.short_circuit import (
    CANNED_MESSAGE,
    MAX_TRIVIAL_LENGTH,
    canned_response,
    is_trivial_utterance,
    normalize_utterance,
)


@pytest.mark.parametrize(
    "text",
    [
        "Testing, 1 2 3.",
        "testing testing",
        "mic test one two three",
        "One, two, three!",
        "Can you hear me?",
        "hey can you hear me now",
        "Is this mic on?",
        "Are you there?",
        "listening?",
        "check check 1 2",
        "check check",
        "mic test",
        "okay testing",
        "1 2",
    ],
)
def test_mic_checks_are_trivial(text):
    assert is_trivial_utterance(text) is True


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "testing my new blender, had a smoothie",
        "had 2 eggs",
        "can you log my headache",
        "three eggs and toast",
        "two",
        "2",
        "okay three",
        "12",
    ],
)
def test_real_requests_are_not_trivial(text):
    assert is_trivial_utterance(text) is False


def test_long_inputs_are_never_trivial():
    text = "testing " * (MAX_TRIVIAL_LENGTH // 8 + 2)
    assert len(normalize_utterance(text)) > MAX_TRIVIAL_LENGTH
    assert is_trivial_utterance(text) is False


def test_normalize_utterance_strips_punctuation_and_case():
    assert normalize_utterance("  Testing...  ONE,\ttwo ") == "testing one two"


def test_canned_response_shapes():
    response = canned_response()
    assert isinstance(response, AssistantResponse)
    assert response.message == CANNED_MESSAGE
    assert response.actions == []
    assert response.decision.intent == "chat"
    assert response.decision.apply == "none"
    assert response.decision.action_handling == "keep"

    plan = canned_response(AssistantPlan)
    assert type(plan) is AssistantPlan
    assert plan.to_wire() == {"message": CANNED_MESSAGE, "actions": []}
