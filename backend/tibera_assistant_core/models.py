from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .schemas import AssistantPlan, HistoryTurn, RecentEntry

TERMINAL_FAILURE_MESSAGE = "Could not understand that. Try adding a bit more detail."


@dataclass
class AssistantRequest:
    text: str
    now_iso: str | None = None
    today: str | None = None
    history: list[HistoryTurn] = field(default_factory=list)
    existing_actions: list[Any] = field(default_factory=list)
    recent_entries: list[RecentEntry] = field(default_factory=list)


@dataclass
class CompletionAttempt:
    tier: str
    model: str
    succeeded: bool

    def as_dict(self) -> dict[str, Any]:
        return {"tier": self.tier, "model": self.model, "succeeded": self.succeeded}


@dataclass
class EscalationOutcome:
    result: AssistantPlan | None
    model: str | None
    attempts: list[CompletionAttempt] = field(default_factory=list)


@dataclass
class PipelineResult:
    response: AssistantPlan | None
    model: str | None
    attempts: list[CompletionAttempt] = field(default_factory=list)
    short_circuited: bool = False
    latency_ms: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.response is not None
