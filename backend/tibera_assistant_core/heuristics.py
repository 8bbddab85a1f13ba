"""Deterministic corrections applied to model output before it reaches the user.

Models routinely drop cooking fats, leave OTC medication doses at "1 serving",
and record "2 eggs" as two servings with no weight. These passes fill in the
gaps from the user's own words. They run in a fixed order on a copy of the
plan: cooking fats, salt, medication, portion counts, deduplication. Every
pass only adds information the model left out; values the model supplied are
kept.

Tables are frozen dataclasses so tests and deployments can swap them in
without touching the passes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from .schemas import MAX_ACTIONS, AssistantResponse, PlanT, serialize_plan, validate_plan

logger = logging.getLogger(__name__)

WORD_NUMBERS = {"one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6}

_NUMBER = r"(\d+(?:\.\d+)?)"
_TBSP = r"(?:tbsp|tbsps|tablespoon|tablespoons)"
_TSP = r"(?:tsp|tsps|teaspoon|teaspoons)"
_STRENGTH_UNITS = r"(?:mg|mcg|g|ml|iu)"
_DOSE_FORMS = r"(?:tabs?|tablets?|pills?|caps?|capsules?)"
# "peanut butter" and friends are foods, not cooking fats.
_SPREAD_PREFIXES = r"(?<!peanut )(?<!almond )(?<!cashew )"


@dataclass(frozen=True)
class CookingFat:
    name: str
    grams_per_tbsp: float


@dataclass(frozen=True)
class MedicationDefault:
    keys: tuple[str, ...]
    canonical: str
    per_unit: float
    unit: str
    form_label: str


@dataclass(frozen=True)
class PortionRule:
    key: str
    grams_each: float
    terms: tuple[str, ...]
    note_template: str


@dataclass(frozen=True)
class HeuristicTables:
    cooking_fats: tuple[CookingFat, ...]
    medications: tuple[MedicationDefault, ...]
    portions: tuple[PortionRule, ...]
    salt_grams_per_tbsp: float = 18.0
    salt_grams_per_tsp: float = 6.0
    max_actions: int = MAX_ACTIONS


DEFAULT_TABLES = HeuristicTables(
    cooking_fats=(
        CookingFat("olive oil", 13.5),
        CookingFat("avocado oil", 13.5),
        CookingFat("canola oil", 13.6),
        CookingFat("vegetable oil", 13.6),
        CookingFat("coconut oil", 13.6),
        CookingFat("sesame oil", 13.6),
        CookingFat("butter", 14.0),
        CookingFat("ghee", 13.0),
    ),
    medications=(
        MedicationDefault(("ibuprofen", "advil", "motrin"), "ibuprofen", 200, "mg", "tablet"),
        MedicationDefault(("acetaminophen", "tylenol", "paracetamol"), "acetaminophen", 500, "mg", "tablet"),
        MedicationDefault(("naproxen", "aleve"), "naproxen", 220, "mg", "tablet"),
    ),
    portions=(
        PortionRule("egg", 50, ("egg", "eggs"), "Assumed {count} egg(s) ≈ {grams}g edible portion."),
        PortionRule(
            "bacon",
            15,
            ("bacon", "beef bacon", "turkey bacon"),
            "Assumed {count} slice/piece bacon ≈ {grams}g.",
        ),
        PortionRule("waffle", 35, ("waffle", "waffles"), "Assumed {count} waffle(s) ≈ {grams}g."),
        PortionRule(
            "chicken breast",
            120,
            ("chicken breast", "breast"),
            "Assumed {count} chicken breast portion(s) ≈ {grams}g.",
        ),
        PortionRule(
            "chicken thigh",
            100,
            ("chicken thigh", "thigh"),
            "Assumed {count} chicken thigh portion(s) ≈ {grams}g.",
        ),
    ),
)


def normalize_key(text: str) -> str:
    lowered = (text or "").strip().lower()
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9 ]+", " ", lowered)).strip()


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _rounded_grams(value: float) -> float | None:
    # Tiny amounts round to 0 g, which no meal item may carry.
    grams = round(value, 1)
    return grams if grams > 0 else None


def _append_note(existing: str | None, note: str) -> str:
    current = (existing or "").strip()
    return f"{current}\n{note}" if current else note


def _first_meal(actions: list[dict[str, Any]]) -> dict[str, Any] | None:
    for action in actions:
        if action.get("type") == "log_meal":
            return action
    return None


def has_meal_item(actions: list[dict[str, Any]], needle: str) -> bool:
    target = normalize_key(needle)
    for action in actions:
        if action.get("type") != "log_meal":
            continue
        for item in action["data"].get("items") or []:
            if target in normalize_key(item.get("usdaQuery", "")) or target in normalize_key(item.get("label", "")):
                return True
    return False


def _measure(text: str, unit_pattern: str) -> float | None:
    match = re.search(rf"{_NUMBER}\s*{unit_pattern}\b", text)
    if match:
        return float(match.group(1))
    match = re.search(rf"\b(one|two|three)\s*{unit_pattern}\b", text)
    if match:
        return float(WORD_NUMBERS[match.group(1)])
    return None


def extract_tablespoons(text: str) -> float | None:
    return _measure(text.lower(), _TBSP)


def extract_teaspoons(text: str) -> float | None:
    return _measure(text.lower(), _TSP)


# ── cooking fats and salt ────────────────────────────────────────────


def apply_cooking_fats(text: str, actions: list[dict[str, Any]], tables: HeuristicTables) -> None:
    meal = _first_meal(actions)
    if meal is None:
        return
    lowered = text.lower()
    tbsp = extract_tablespoons(lowered)
    tsp = extract_teaspoons(lowered)
    for fat in tables.cooking_fats:
        if not re.search(rf"{_SPREAD_PREFIXES}\b{re.escape(fat.name)}\b", lowered):
            continue
        if has_meal_item(actions, fat.name):
            continue

        item: dict[str, Any] = {"label": fat.name, "usdaQuery": fat.name, "gramsConsumed": None, "servings": None}
        grams = None
        if tbsp and tbsp > 0:
            amount, unit, grams = tbsp, "tbsp", _rounded_grams(tbsp * fat.grams_per_tbsp)
        elif tsp and tsp > 0:
            amount, unit, grams = tsp, "tsp", _rounded_grams(tsp / 3 * fat.grams_per_tbsp)
        if grams is not None:
            item["gramsConsumed"] = grams
            item["notes"] = f"Assumed {format_number(amount)} {unit} {fat.name} ≈ {format_number(grams)}g."
        meal["data"]["items"].append(item)


def _salt_amount(text: str) -> tuple[float, str] | None:
    for unit_pattern, label in ((_TBSP, "tbsp"), (_TSP, "tsp")):
        match = re.search(rf"(\d+(?:\.\d+)?|\bone|\btwo|\bthree)\s*{unit_pattern}\s+(?:of\s+)?salt\b", text)
        if match:
            raw = match.group(1)
            amount = float(WORD_NUMBERS[raw]) if raw in WORD_NUMBERS else float(raw)
            if amount > 0:
                return amount, label
    return None


def apply_salt(text: str, actions: list[dict[str, Any]], tables: HeuristicTables) -> None:
    meal = _first_meal(actions)
    if meal is None:
        return
    lowered = text.lower()
    if not re.search(r"\bsalt\b", lowered) or has_meal_item(actions, "salt"):
        return

    amount = _salt_amount(lowered)
    grams = None
    if amount is not None:
        quantity, label = amount
        per_unit = tables.salt_grams_per_tbsp if label == "tbsp" else tables.salt_grams_per_tsp
        grams = _rounded_grams(quantity * per_unit)
    if amount is None or grams is None:
        meal["data"]["notes"] = _append_note(meal["data"].get("notes"), "Salt added (amount unknown).")
        return

    meal["data"]["items"].append(
        {
            "label": "salt",
            "usdaQuery": "salt table",
            "gramsConsumed": grams,
            "servings": None,
            "notes": f"Assumed {format_number(quantity)} {label} salt ≈ {format_number(grams)}g.",
        }
    )


# ── medication ───────────────────────────────────────────────────────


def extract_medication_count(text: str, keys: tuple[str, ...]) -> int | None:
    lowered = text.lower()
    for key in keys:
        escaped = re.escape(key)
        match = re.search(rf"(\d+)\s*(?:x\s*)?{escaped}s?\b", lowered)
        if match:
            return int(match.group(1))
        # "advil 2" is a count; "advil 400mg" is a strength.
        match = re.search(rf"\b{escaped}s?\b\s*(\d+)(?![\d.])(?!\s*{_STRENGTH_UNITS}\b)", lowered)
        if match:
            return int(match.group(1))
        match = re.search(rf"(\d+)\s*{_DOSE_FORMS}\b", lowered)
        if match and key in lowered:
            return int(match.group(1))
    return None


def _looks_default_dose(data: dict[str, Any]) -> bool:
    dosage = data.get("dosage")
    unit = data.get("unit")
    if dosage is None or unit is None:
        return True
    return dosage == 1 and normalize_key(unit) == "serving"


def apply_medication(text: str, actions: list[dict[str, Any]], tables: HeuristicTables) -> None:
    lowered = text.lower()
    for med in tables.medications:
        if not any(key in lowered for key in med.keys):
            continue

        count = extract_medication_count(lowered, med.keys)
        units_taken = count if count and count > 0 else 1
        dose = int(round(units_taken * med.per_unit))
        plural = "" if units_taken == 1 else "s"
        note = f"Assumed {units_taken} {med.form_label}{plural} × {format_number(med.per_unit)}{med.unit}."
        confidence = 0.75 if units_taken == 1 else 0.85

        existing = None
        for action in actions:
            if action.get("type") != "log_supplement":
                continue
            supplement = normalize_key(action["data"].get("supplement", ""))
            if any(normalize_key(key) in supplement for key in med.keys):
                existing = action
                break

        if existing is None:
            actions.append(
                {
                    "type": "log_supplement",
                    "title": f"Log {med.canonical}",
                    "confidence": confidence,
                    "data": {
                        "supplement": med.canonical,
                        "dosage": dose,
                        "unit": med.unit,
                        "date": None,
                        "time": None,
                        "notes": note,
                    },
                }
            )
            continue

        data = existing["data"]
        if _looks_default_dose(data):
            data["dosage"] = dose
            data["unit"] = med.unit
            data["notes"] = _append_note(data.get("notes"), note)
            existing["confidence"] = max(existing.get("confidence", 0.0), confidence)


# ── portions and dedupe ──────────────────────────────────────────────


def extract_count(text: str, term: str) -> float | None:
    lowered = text.lower()
    escaped = re.escape(term)
    match = re.search(rf"{_NUMBER}\s+(?:x\s*)?{escaped}\b", lowered)
    if match:
        return float(match.group(1))
    match = re.search(rf"\b{escaped}\b\s*{_NUMBER}", lowered)
    if match:
        return float(match.group(1))
    match = re.search(rf"\b(one|two|three|four|five|six)\s+{escaped}\b", lowered)
    if match:
        return float(WORD_NUMBERS[match.group(1)])
    return None


def _mentions(normalized: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(normalize_key(term))}\b", normalized) is not None


def _portion_item(text: str, item: dict[str, Any], tables: HeuristicTables) -> dict[str, Any]:
    if item.get("gramsConsumed") is not None:
        return item

    servings = item.get("servings")
    servings_as_count = None
    if isinstance(servings, (int, float)) and 0 < servings <= 6:
        servings_as_count = float(round(servings))

    normalized = normalize_key(f"{item.get('label', '')} {item.get('usdaQuery', '')}")
    for rule in tables.portions:
        if not any(_mentions(normalized, term) for term in rule.terms) and not _mentions(normalized, rule.key):
            continue

        count = None
        for term in rule.terms:
            found = extract_count(text, term)
            if found is not None and found > 0:
                count = found
                break
        if count is None:
            count = servings_as_count
        if not count or count <= 0:
            continue

        grams = _rounded_grams(count * rule.grams_each)
        if grams is None:
            continue
        note = rule.note_template.format(count=format_number(count), grams=format_number(grams))
        return {
            **item,
            "gramsConsumed": grams,
            "servings": None,
            "notes": _append_note(item.get("notes"), note),
        }
    return item


def apply_portions(text: str, actions: list[dict[str, Any]], tables: HeuristicTables) -> None:
    meal = _first_meal(actions)
    if meal is None:
        return
    meal["data"]["items"] = [_portion_item(text, item, tables) for item in meal["data"]["items"]]


def _sum_optional(left: float | None, right: float | None) -> float | None:
    if left is not None and right is not None:
        return left + right
    return left if left is not None else right


def dedupe_meal_items(text: str, actions: list[dict[str, Any]], tables: HeuristicTables) -> None:
    meal = _first_meal(actions)
    if meal is None:
        return
    merged: dict[str, dict[str, Any]] = {}
    for item in meal["data"]["items"]:
        key = normalize_key(item.get("usdaQuery") or item.get("label") or "")
        existing = merged.get(key)
        if existing is None:
            merged[key] = item
            continue
        notes = "\n".join(note for note in (existing.get("notes"), item.get("notes")) if note)
        merged[key] = {
            **existing,
            "gramsConsumed": _sum_optional(existing.get("gramsConsumed"), item.get("gramsConsumed")),
            "servings": _sum_optional(existing.get("servings"), item.get("servings")),
            "notes": notes or None,
        }
    meal["data"]["items"] = list(merged.values())


Heuristic = Callable[[str, list[dict[str, Any]], HeuristicTables], None]

PASSES: tuple[Heuristic, ...] = (
    apply_cooking_fats,
    apply_salt,
    apply_medication,
    apply_portions,
    dedupe_meal_items,
)


def accepts_enrichment(plan: PlanT) -> bool:
    """False for conversation turns that must not gain actions: chat replies and cancellations."""
    if not isinstance(plan, AssistantResponse):
        return True
    decision = plan.decision
    return decision.intent != "chat" and decision.action_handling != "clear"


def enrich_plan(text: str, plan: PlanT, tables: HeuristicTables = DEFAULT_TABLES) -> PlanT:
    """Run every pass in ``PASSES`` over a copy of ``plan`` and cap the action list.

    The input plan is never modified. Chat replies and cancellations are
    returned untouched. If the enriched payload no longer validates, the
    input plan is returned as is.
    """
    if not accepts_enrichment(plan):
        return plan
    payload = serialize_plan(plan)
    actions: list[dict[str, Any]] = payload["actions"]
    for heuristic in PASSES:
        heuristic(text, actions, tables)
    payload["actions"] = actions[: tables.max_actions]
    try:
        return validate_plan(payload, type(plan))
    except ValidationError as exc:
        logger.warning("enrichment produced an invalid plan; keeping model output: %s", exc)
        return plan
