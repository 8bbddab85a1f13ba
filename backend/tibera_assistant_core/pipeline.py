from __future__ import annotations

import logging
import time

from .escalation import EscalationOrchestrator
from .heuristics import DEFAULT_TABLES, HeuristicTables, enrich_plan
from .models import TERMINAL_FAILURE_MESSAGE, AssistantRequest, PipelineResult
from .prompts import CONVERSATION_PROFILE, PLAN_PROFILE, PromptProfile
from .short_circuit import canned_response, is_trivial_utterance

logger = logging.getLogger(__name__)


class AssistantPipeline:
    """Turn one utterance into a validated, enriched set of suggested actions.

    ``plan`` returns a bare plan; ``converse`` also carries the model's turn
    decision. Mic checks are answered without calling the model. Completion
    failures never raise: the result carries ``response=None`` and ``error``.
    """

    def __init__(
        self,
        orchestrator: EscalationOrchestrator,
        *,
        tables: HeuristicTables = DEFAULT_TABLES,
    ) -> None:
        self.orchestrator = orchestrator
        self.tables = tables

    def plan(self, request: AssistantRequest) -> PipelineResult:
        return self._run(request, PLAN_PROFILE)

    def converse(self, request: AssistantRequest) -> PipelineResult:
        return self._run(request, CONVERSATION_PROFILE)

    def _run(self, request: AssistantRequest, profile: PromptProfile) -> PipelineResult:
        started = time.monotonic()
        if is_trivial_utterance(request.text):
            logger.info("short-circuited trivial utterance (%s)", profile.name)
            return PipelineResult(response=canned_response(profile.envelope), model=None, short_circuited=True)

        outcome = self.orchestrator.run(request, profile)
        latency_ms = max(0, int((time.monotonic() - started) * 1000))
        if outcome.result is None:
            logger.warning("assistant %s failed after %d attempt(s)", profile.name, len(outcome.attempts))
            return PipelineResult(
                response=None,
                model=None,
                attempts=outcome.attempts,
                latency_ms=latency_ms,
                error=TERMINAL_FAILURE_MESSAGE,
            )

        enriched = enrich_plan(request.text, outcome.result, self.tables)
        return PipelineResult(
            response=enriched,
            model=outcome.model,
            attempts=outcome.attempts,
            latency_ms=latency_ms,
        )
