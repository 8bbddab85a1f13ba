from __future__ import annotations

import logging
from typing import Any, Callable

from .config import AssistantSettings
from .models import AssistantRequest, CompletionAttempt, EscalationOutcome
from .prompts import PromptProfile, recovery_profile
from .schemas import AssistantPlan

logger = logging.getLogger(__name__)

Completer = Callable[..., "AssistantPlan | None"]


def mean_confidence(plan: AssistantPlan) -> float:
    if not plan.actions:
        return 0.0
    return sum(action.confidence for action in plan.actions) / len(plan.actions)


def upgrade_reason(plan: AssistantPlan, threshold: float) -> str | None:
    """Return why a cheap-tier result should be retried on the strong tier, if it should."""
    if not plan.actions:
        return "no_actions"
    if mean_confidence(plan) < threshold:
        return "low_confidence"
    for action in plan.actions:
        if action.type == "log_meal" and not action.data.items:
            return "empty_meal"
    return None


class EscalationOrchestrator:
    """Drive cheap, strong and recovery completions for one request.

    Calls run one after another and each tier is tried at most once. The
    strong tier replaces a weak cheap result only when it produced something.
    """

    def __init__(self, complete: Completer, settings: AssistantSettings) -> None:
        self.complete = complete
        self.settings = settings

    def _call(
        self,
        tier: str,
        model: str,
        request: AssistantRequest,
        profile: PromptProfile,
        attempts: list[CompletionAttempt],
    ) -> AssistantPlan | None:
        kwargs: dict[str, Any] = {"now_iso": request.now_iso, "today": request.today, "profile": profile}
        if profile.include_context:
            kwargs.update(
                history=request.history,
                existing_actions=request.existing_actions,
                recent_entries=request.recent_entries,
            )
        result = self.complete(model, request.text, **kwargs)
        attempts.append(CompletionAttempt(tier=tier, model=model, succeeded=result is not None))
        return result

    def run(self, request: AssistantRequest, profile: PromptProfile) -> EscalationOutcome:
        settings = self.settings
        attempts: list[CompletionAttempt] = []

        result = self._call("cheap", settings.cheap_model, request, profile, attempts)
        model: str | None = settings.cheap_model if result is not None else None

        if result is None:
            logger.info("cheap tier returned nothing (%s); calling strong tier", profile.name)
            result = self._call("strong", settings.strong_model, request, profile, attempts)
            model = settings.strong_model if result is not None else None
        else:
            reason = upgrade_reason(result, settings.upgrade_confidence_threshold)
            if reason:
                logger.info("upgrading to strong tier (%s): %s", profile.name, reason)
                strong = self._call("strong", settings.strong_model, request, profile, attempts)
                if strong is not None:
                    result = strong
                    model = settings.strong_model

        if result is None and settings.recovery_enabled:
            logger.info("all tiers failed (%s); trying recovery prompt", profile.name)
            result = self._call("recovery", settings.strong_model, request, recovery_profile(profile), attempts)
            model = settings.strong_model if result is not None else None

        return EscalationOutcome(result=result, model=model, attempts=attempts)
