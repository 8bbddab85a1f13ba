from .completion import CompletionClient, CompletionServiceError, build_user_input
from .config import AssistantSettings
from .escalation import EscalationOrchestrator, upgrade_reason
from .heuristics import DEFAULT_TABLES, HeuristicTables, enrich_plan
from .intent import classify_confirmation
from .models import TERMINAL_FAILURE_MESSAGE, AssistantRequest, EscalationOutcome, PipelineResult
from .pipeline import AssistantPipeline
from .prompts import CONVERSATION_PROFILE, PLAN_PROFILE, PromptProfile
from .schemas import (
    Action,
    AssistantPlan,
    AssistantResponse,
    Decision,
    HistoryTurn,
    RecentEntry,
    serialize_plan,
    validate_plan,
)
from .short_circuit import canned_response, is_trivial_utterance

__all__ = [
    "CONVERSATION_PROFILE",
    "DEFAULT_TABLES",
    "PLAN_PROFILE",
    "TERMINAL_FAILURE_MESSAGE",
    "Action",
    "AssistantPipeline",
    "AssistantPlan",
    "AssistantRequest",
    "AssistantResponse",
    "AssistantSettings",
    "CompletionClient",
    "CompletionServiceError",
    "Decision",
    "EscalationOrchestrator",
    "EscalationOutcome",
    "HeuristicTables",
    "HistoryTurn",
    "PipelineResult",
    "PromptProfile",
    "RecentEntry",
    "build_user_input",
    "canned_response",
    "classify_confirmation",
    "enrich_plan",
    "is_trivial_utterance",
    "serialize_plan",
    "upgrade_reason",
    "validate_plan",
]
