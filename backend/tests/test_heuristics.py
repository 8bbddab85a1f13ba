from __future__ import annotations

from dataclasses import replace

from action_factories import (
    conversation_payload,
    meal_action,
    meal_item,
    plan_payload,
    supplement_action,
    symptom_action,
)
from tibera_assistant_core.heuristics import (
    DEFAULT_TABLES,
    CookingFat,
    enrich_plan,
    extract_count,
    extract_medication_count,
    extract_tablespoons,
    extract_teaspoons,
    normalize_key,
)
from tibera_assistant_core.schemas import AssistantPlan, AssistantResponse, serialize_plan, validate_plan


def _plan(*actions: dict) -> AssistantPlan:
    return validate_plan(plan_payload(list(actions)), AssistantPlan)


def _items(plan: AssistantPlan) -> list[dict]:
    meal = next(action for action in serialize_plan(plan)["actions"] if action["type"] == "log_meal")
    return meal["data"]["items"]


def test_cooking_fat_is_added_with_tablespoon_weight():
    plan = _plan(meal_action([meal_item("salmon", "salmon cooked", gramsConsumed=170)]))

    enriched = enrich_plan("salmon with 1 tbsp olive oil", plan)

    oil = _items(enriched)[-1]
    assert oil["label"] == "olive oil"
    assert oil["usdaQuery"] == "olive oil"
    assert oil["gramsConsumed"] == 13.5
    assert "1 tbsp" in oil["notes"]
    assert oil["servings"] is None


def test_cooking_fat_in_teaspoons_and_without_amount():
    plan = _plan(meal_action([meal_item("broccoli")]))

    teaspoons = _items(enrich_plan("broccoli sauteed in 2 tsp butter", plan))[-1]
    assert teaspoons["gramsConsumed"] == 9.3
    assert teaspoons["notes"] == "Assumed 2 tsp butter ≈ 9.3g."

    unknown = _items(enrich_plan("broccoli sauteed in butter", plan))[-1]
    assert unknown["label"] == "butter"
    assert unknown["gramsConsumed"] is None
    assert "notes" not in unknown


def test_cooking_fat_not_duplicated_or_confused_with_spreads():
    plan = _plan(meal_action([meal_item("eggs"), meal_item("olive oil", gramsConsumed=5)]))
    assert len(_items(enrich_plan("eggs fried in olive oil", plan))) == 2

    toast = _plan(meal_action([meal_item("toast"), meal_item("peanut butter")]))
    labels = [item["label"] for item in _items(enrich_plan("toast with peanut butter", toast))]
    assert labels == ["toast", "peanut butter"]


def test_salt_with_explicit_amount_becomes_item():
    plan = _plan(meal_action([meal_item("pasta")]))
    salt = _items(enrich_plan("pasta with 1 tsp salt", plan))[-1]

    assert salt == {
        "label": "salt",
        "usdaQuery": "salt table",
        "gramsConsumed": 6.0,
        "servings": None,
        "notes": "Assumed 1 tsp salt ≈ 6g.",
    }


def test_salt_without_amount_appends_meal_note():
    plan = _plan(meal_action([meal_item("fries")], notes="From the diner."))
    enriched = serialize_plan(enrich_plan("fries with salt and 1 tbsp ketchup", plan))
    meal = enriched["actions"][0]

    assert [item["label"] for item in meal["data"]["items"]] == ["fries"]
    assert meal["data"]["notes"] == "From the diner.\nSalt added (amount unknown)."


def test_medication_count_becomes_dose():
    enriched = serialize_plan(enrich_plan("took 2 advil", _plan()))
    action = enriched["actions"][0]

    assert action["type"] == "log_supplement"
    assert action["title"] == "Log ibuprofen"
    assert action["confidence"] == 0.85
    assert action["data"]["supplement"] == "ibuprofen"
    assert action["data"]["dosage"] == 400
    assert action["data"]["unit"] == "mg"
    assert action["data"]["notes"] == "Assumed 2 tablets × 200mg."


def test_medication_default_dose_overwritten_but_explicit_dose_kept():
    defaulted = _plan(supplement_action("Tylenol", dosage=1, unit="serving", confidence=0.6))
    action = serialize_plan(enrich_plan("had a tylenol", defaulted))["actions"][0]
    assert action["data"]["dosage"] == 500
    assert action["data"]["unit"] == "mg"
    assert action["confidence"] == 0.75
    assert action["data"]["notes"] == "Assumed 1 tablet × 500mg."

    explicit = _plan(supplement_action("advil", dosage=400, unit="mg"))
    kept = serialize_plan(enrich_plan("advil 400mg", explicit))["actions"]
    assert len(kept) == 1
    assert kept[0]["data"]["dosage"] == 400
    assert "notes" not in kept[0]["data"]


def test_medication_count_patterns():
    keys = ("ibuprofen", "advil", "motrin")
    assert extract_medication_count("took 3 advils", keys) == 3
    assert extract_medication_count("advil 2 this morning", keys) == 2
    assert extract_medication_count("advil 200mg", keys) is None
    assert extract_medication_count("2 tablets of motrin", keys) == 2
    assert extract_medication_count("took some advil", keys) is None


def test_egg_servings_become_grams():
    plan = _plan(meal_action([meal_item("eggs", "egg whole cooked", servings=2)]))
    egg = _items(enrich_plan("2 eggs", plan))[0]

    assert egg["gramsConsumed"] == 100
    assert egg["servings"] is None
    assert egg["notes"] == "Assumed 2 egg(s) ≈ 100g edible portion."


def test_portion_count_read_from_words_and_servings_fallback():
    plan = _plan(meal_action([meal_item("waffles", "waffle plain")]))
    assert _items(enrich_plan("three waffles with syrup", plan))[0]["gramsConsumed"] == 105

    fallback = _plan(meal_action([meal_item("bacon", "bacon cooked", servings=3)]))
    bacon = _items(enrich_plan("bacon for breakfast", fallback))[0]
    assert bacon["gramsConsumed"] == 45
    assert bacon["notes"] == "Assumed 3 slice/piece bacon ≈ 45g."


def test_portion_rules_respect_existing_grams_and_word_boundaries():
    plan = _plan(
        meal_action(
            [
                meal_item("eggs", gramsConsumed=120, servings=2),
                meal_item("eggplant", "eggplant cooked", servings=1),
            ]
        )
    )
    items = _items(enrich_plan("2 eggs and eggplant", plan))
    assert items[0]["gramsConsumed"] == 120
    assert items[1]["servings"] == 1
    assert "gramsConsumed" not in items[1]


def test_duplicate_items_are_merged():
    plan = _plan(
        meal_action(
            [
                meal_item("Olive Oil", "olive oil", gramsConsumed=10, notes="pan"),
                meal_item("olive-oil", "Olive  oil", gramsConsumed=5, notes="drizzle"),
                meal_item("rice", servings=1),
            ]
        )
    )
    items = _items(enrich_plan("rice", plan))

    assert len(items) == 2
    assert items[0]["gramsConsumed"] == 15
    assert items[0]["notes"] == "pan\ndrizzle"


def test_meal_heuristics_are_noops_without_a_meal():
    plan = _plan(symptom_action("headache"))
    assert serialize_plan(enrich_plan("headache after eggs with salt and olive oil", plan)) == serialize_plan(plan)


def test_enrichment_does_not_mutate_input():
    plan = _plan(meal_action([meal_item("salmon")]))
    before = serialize_plan(plan)
    enrich_plan("salmon with 1 tbsp olive oil and salt, took 2 advil", plan)
    assert serialize_plan(plan) == before


def test_actions_are_capped_after_enrichment():
    plan = _plan(*[symptom_action(f"symptom {idx}") for idx in range(12)])
    enriched = enrich_plan("took 2 advil", plan)
    assert len(enriched.actions) == 12


def test_tables_are_injectable():
    tables = replace(DEFAULT_TABLES, cooking_fats=(CookingFat("lard", 12.8),))
    plan = _plan(meal_action([meal_item("beans")]))

    items = _items(enrich_plan("beans fried in 1 tbsp lard and olive oil", plan, tables))

    assert [item["label"] for item in items] == ["beans", "lard"]
    assert items[-1]["gramsConsumed"] == 12.8


def test_measure_and_count_helpers():
    assert extract_tablespoons("two tablespoons of butter") == 2
    assert extract_teaspoons("1.5 tsp") == 1.5
    assert extract_tablespoons("no spoons") is None
    assert extract_count("chicken breast 2", "chicken breast") == 2
    assert extract_count("3 x eggs", "eggs") == 3
    assert normalize_key("  Olive-Oil!! ") == "olive oil"


def test_amounts_that_round_to_zero_do_not_discard_other_passes():
    plan = _plan(meal_action([meal_item("eggs", "egg whole cooked", servings=2)]))

    enriched = serialize_plan(enrich_plan("2 eggs fried in 0.01 tsp butter with 0.001 tsp salt, took 2 advil", plan))

    meal, medication = enriched["actions"]
    eggs, butter = meal["data"]["items"]
    assert eggs["gramsConsumed"] == 100
    assert butter["label"] == "butter"
    assert butter["gramsConsumed"] is None
    assert "notes" not in butter
    assert meal["data"]["notes"] == "Salt added (amount unknown)."
    assert medication["data"]["supplement"] == "ibuprofen"
    assert medication["data"]["dosage"] == 400


def test_cancellation_is_not_enriched():
    cancelled = validate_plan(
        conversation_payload([], intent="chat", apply="none", action_handling="clear", message="Cleared."),
        AssistantResponse,
    )

    enriched = enrich_plan("cancel the advil one", cancelled)

    assert enriched is cancelled
    assert enriched.actions == []
    assert enriched.decision.action_handling == "clear"


def test_chat_reply_is_not_enriched():
    chat = validate_plan(
        conversation_payload([], intent="chat", apply="none", action_handling="keep", message="Generally yes."),
        AssistantResponse,
    )

    assert enrich_plan("is it safe to take tylenol with coffee?", chat).actions == []


def test_log_turns_in_conversation_are_enriched():
    logged = validate_plan(conversation_payload([]), AssistantResponse)

    enriched = enrich_plan("took 2 advil", logged)

    assert [action.type for action in enriched.actions] == ["log_supplement"]
    assert enriched.decision.intent == "log"
