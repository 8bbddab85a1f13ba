from __future__ import annotations

from action_factories import conversation_payload, meal_action, meal_item, plan_payload
from tibera_assistant_core.escalation import EscalationOrchestrator
from tibera_assistant_core.models import TERMINAL_FAILURE_MESSAGE, AssistantRequest
from tibera_assistant_core.pipeline import AssistantPipeline
from tibera_assistant_core.schemas import AssistantPlan, AssistantResponse, validate_plan
from tibera_assistant_core.short_circuit import CANNED_MESSAGE


class RecordingCompleter:
    def __init__(self, result=None) -> None:
        self.result = result
        self.calls: list[tuple[str, str]] = []

    def __call__(self, model: str, text: str, **kwargs):
        self.calls.append((model, kwargs["profile"].name))
        return self.result


def _pipeline(settings, result=None) -> tuple[AssistantPipeline, RecordingCompleter]:
    completer = RecordingCompleter(result)
    return AssistantPipeline(EscalationOrchestrator(completer, settings)), completer


def test_mic_check_skips_model(settings):
    pipeline, completer = _pipeline(settings)

    result = pipeline.converse(AssistantRequest(text="testing 1 2 3"))

    assert completer.calls == []
    assert result.short_circuited is True
    assert result.ok
    assert isinstance(result.response, AssistantResponse)
    assert result.response.message == CANNED_MESSAGE
    assert result.model is None


def test_plan_variant_short_circuits_without_decision(settings):
    pipeline, completer = _pipeline(settings)

    result = pipeline.plan(AssistantRequest(text="can you hear me"))

    assert completer.calls == []
    assert type(result.response) is AssistantPlan


def test_terminal_failure_returns_error(settings):
    pipeline, completer = _pipeline(settings, result=None)

    result = pipeline.plan(AssistantRequest(text="something vague"))

    assert not result.ok
    assert result.response is None
    assert result.error == TERMINAL_FAILURE_MESSAGE
    assert [call[1] for call in completer.calls] == ["plan", "plan", "plan_recovery"]
    assert [attempt.succeeded for attempt in result.attempts] == [False, False, False]


def test_model_output_is_enriched(settings):
    model_plan = validate_plan(
        plan_payload([meal_action([meal_item("salmon", gramsConsumed=150)])]),
        AssistantPlan,
    )
    pipeline, completer = _pipeline(settings, result=model_plan)

    result = pipeline.plan(AssistantRequest(text="salmon with 1 tbsp olive oil", today="2026-02-01"))

    assert completer.calls == [("cheap-model", "plan")]
    assert result.model == "cheap-model"
    labels = [item.label for item in result.response.actions[0].data.items]
    assert labels == ["salmon", "olive oil"]
    assert len(model_plan.actions[0].data.items) == 1


def test_converse_keeps_decision_through_enrichment(settings):
    model_response = validate_plan(
        conversation_payload([meal_action([meal_item("eggs", servings=2)])]),
        AssistantResponse,
    )
    pipeline, _ = _pipeline(settings, result=model_response)

    result = pipeline.converse(AssistantRequest(text="2 eggs"))

    assert isinstance(result.response, AssistantResponse)
    assert result.response.decision.apply == "confirm"
    item = result.response.actions[0].data.items[0]
    assert item.grams_consumed == 100
    assert item.servings is None


def test_converse_leaves_cancellation_without_actions(settings):
    model_response = validate_plan(
        conversation_payload([], intent="chat", apply="none", action_handling="clear", message="Cleared those."),
        AssistantResponse,
    )
    pipeline, _ = _pipeline(settings, result=model_response)

    result = pipeline.converse(AssistantRequest(text="never mind, cancel the advil"))

    assert result.response.actions == []
    assert result.response.decision.action_handling == "clear"
