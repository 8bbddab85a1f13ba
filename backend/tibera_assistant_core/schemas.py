"""Action contract shared by the extraction pipeline and the HTTP layer.

Field names on the wire follow the app's JSON (``usdaQuery``, ``gramsConsumed``,
``entryId``); Python attributes are snake_case and every model dumps by alias.

Validation is strict: a string is never silently turned into a number and an
out-of-range confidence is rejected rather than clamped. Lenient repair lives in
``extraction.coerce_json`` and only runs on a second attempt.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^\d{2}:\d{2}$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

MAX_ACTIONS = 12

MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")
SLEEP_FACTORS = (
    "caffeine",
    "alcohol",
    "exercise",
    "stress",
    "screen_time",
    "late_meal",
    "medication",
    "late_night_chores",
)
SHOPPING_CATEGORIES = (
    "produce",
    "dairy",
    "meat",
    "grains",
    "frozen",
    "canned",
    "snacks",
    "beverages",
    "household",
    "other",
)
ENTRY_TYPES = ("meal", "symptom", "supplement", "sleep", "shopping_item")
CREATE_ACTION_TYPES = ("log_meal", "log_symptom", "log_supplement", "log_sleep", "add_shopping_item")
EDIT_ACTION_TYPES = ("edit_meal", "edit_symptom", "edit_supplement", "edit_sleep", "edit_shopping_item")
ACTION_TYPES = (*CREATE_ACTION_TYPES, *EDIT_ACTION_TYPES, "delete_entry")

DateStr = Annotated[str, StringConstraints(pattern=DATE_PATTERN)]
TimeStr = Annotated[str, StringConstraints(pattern=TIME_PATTERN)]
EntryId = Annotated[str, StringConstraints(pattern=UUID_PATTERN)]
NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
Confidence = Annotated[float, Field(ge=0, le=1)]
PositiveNumber = Annotated[float, Field(gt=0)]
Severity = Annotated[int, Field(ge=1, le=10)]
SleepQuality = Annotated[int, Field(ge=1, le=5)]

MealType = Literal["breakfast", "lunch", "dinner", "snack"]
SleepFactor = Literal[
    "caffeine",
    "alcohol",
    "exercise",
    "stress",
    "screen_time",
    "late_meal",
    "medication",
    "late_night_chores",
]
ShoppingCategory = Literal[
    "produce",
    "dairy",
    "meat",
    "grains",
    "frozen",
    "canned",
    "snacks",
    "beverages",
    "household",
    "other",
]
EntryType = Literal["meal", "symptom", "supplement", "sleep", "shopping_item"]


class WireModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class MealItem(WireModel):
    label: NonEmptyStr
    usda_query: NonEmptyStr = Field(alias="usdaQuery")
    grams_consumed: PositiveNumber | None = Field(default=None, alias="gramsConsumed")
    servings: PositiveNumber | None = None
    notes: str | None = None


# ── create payloads ──────────────────────────────────────────────────


class MealData(WireModel):
    date: DateStr | None = None
    meal_type: MealType | None = Field(default=None, alias="mealType")
    items: list[MealItem] = Field(min_length=1)
    notes: str | None = None


class SymptomData(WireModel):
    symptom: NonEmptyStr
    severity: Severity | None = None
    date: DateStr | None = None
    time: TimeStr | None = None
    notes: str | None = None


class SupplementData(WireModel):
    supplement: NonEmptyStr
    dosage: PositiveNumber | None = None
    unit: NonEmptyStr | None = None
    date: DateStr | None = None
    time: TimeStr | None = None
    notes: str | None = None


class SleepData(WireModel):
    date: DateStr | None = None
    bedtime: TimeStr | None = None
    wake_time: TimeStr | None = None
    quality: SleepQuality | None = None
    factors: list[SleepFactor] | None = None
    notes: str | None = None


class ShoppingItemData(WireModel):
    name: NonEmptyStr
    quantity: PositiveNumber | None = None
    unit: str | None = None
    category: ShoppingCategory | None = None
    notes: str | None = None


# ── edit / delete payloads ───────────────────────────────────────────


class MealEditData(WireModel):
    date: DateStr | None = None
    meal_type: MealType | None = Field(default=None, alias="mealType")
    items: list[MealItem] | None = None
    notes: str | None = None


class SymptomEditData(WireModel):
    severity: Severity | None = None
    date: DateStr | None = None
    time: TimeStr | None = None
    notes: str | None = None


class SupplementEditData(WireModel):
    dosage: PositiveNumber | None = None
    unit: str | None = None
    date: DateStr | None = None
    time: TimeStr | None = None
    notes: str | None = None


class SleepEditData(WireModel):
    bedtime: TimeStr | None = None
    wake_time: TimeStr | None = None
    quality: SleepQuality | None = None
    factors: list[SleepFactor] | None = None
    notes: str | None = None


class ShoppingItemEditData(WireModel):
    name: str | None = None
    quantity: PositiveNumber | None = None
    unit: str | None = None
    category: ShoppingCategory | None = None
    is_checked: bool | None = None
    notes: str | None = None


class DeleteEntryData(WireModel):
    entry_type: EntryType = Field(alias="entryType")


# ── actions ──────────────────────────────────────────────────────────


class ActionBase(WireModel):
    type: str
    title: NonEmptyStr
    confidence: Confidence


class CreateActionBase(ActionBase):
    # New records have no id yet; the response format still sends the key as null.
    entry_id: None = Field(default=None, alias="entryId")


class TargetedActionBase(ActionBase):
    entry_id: EntryId = Field(alias="entryId")


class LogMealAction(CreateActionBase):
    type: Literal["log_meal"]
    data: MealData


class LogSymptomAction(CreateActionBase):
    type: Literal["log_symptom"]
    data: SymptomData


class LogSupplementAction(CreateActionBase):
    type: Literal["log_supplement"]
    data: SupplementData


class LogSleepAction(CreateActionBase):
    type: Literal["log_sleep"]
    data: SleepData


class AddShoppingItemAction(CreateActionBase):
    type: Literal["add_shopping_item"]
    data: ShoppingItemData


class EditMealAction(TargetedActionBase):
    type: Literal["edit_meal"]
    data: MealEditData


class EditSymptomAction(TargetedActionBase):
    type: Literal["edit_symptom"]
    data: SymptomEditData


class EditSupplementAction(TargetedActionBase):
    type: Literal["edit_supplement"]
    data: SupplementEditData


class EditSleepAction(TargetedActionBase):
    type: Literal["edit_sleep"]
    data: SleepEditData


class EditShoppingItemAction(TargetedActionBase):
    type: Literal["edit_shopping_item"]
    data: ShoppingItemEditData


class DeleteEntryAction(TargetedActionBase):
    type: Literal["delete_entry"]
    data: DeleteEntryData


Action = Annotated[
    Union[
        LogMealAction,
        LogSymptomAction,
        LogSupplementAction,
        LogSleepAction,
        AddShoppingItemAction,
        EditMealAction,
        EditSymptomAction,
        EditSupplementAction,
        EditSleepAction,
        EditShoppingItemAction,
        DeleteEntryAction,
    ],
    Field(discriminator="type"),
]


# ── envelopes ────────────────────────────────────────────────────────


class Decision(WireModel):
    intent: Literal["log", "clarify", "chat"]
    apply: Literal["auto", "confirm", "none"]
    confidence: Confidence
    action_handling: Literal["keep", "replace", "clear"]


class AssistantPlan(WireModel):
    message: NonEmptyStr
    actions: list[Action] = Field(max_length=MAX_ACTIONS)


class AssistantResponse(AssistantPlan):
    decision: Decision


# ── request context ──────────────────────────────────────────────────


class HistoryTurn(WireModel):
    role: Literal["user", "assistant"]
    text: NonEmptyStr


class RecentEntry(WireModel):
    id: EntryId
    type: EntryType
    summary: Annotated[str, StringConstraints(max_length=200)]
    date: str | None = None
    time: str | None = None


PlanT = TypeVar("PlanT", bound=AssistantPlan)

_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(Action)


# Raw payloads go through the JSON validator so nested objects are checked the
# same way they arrive on the wire, without Python-mode coercion.
def validate_action(raw: Any) -> Any:
    """Validate one action payload; raises ``pydantic.ValidationError`` on mismatch."""
    return _ACTION_ADAPTER.validate_json(json.dumps(raw), strict=True)


def serialize_action(action: ActionBase) -> dict[str, Any]:
    return action.to_wire()


def validate_plan(raw: Any, envelope: type[PlanT]) -> PlanT:
    return envelope.model_validate_json(json.dumps(raw), strict=True)


def serialize_plan(plan: AssistantPlan) -> dict[str, Any]:
    return plan.to_wire()
