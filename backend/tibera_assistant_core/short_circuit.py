from __future__ import annotations

import re

from .schemas import AssistantPlan, AssistantResponse, Decision

MAX_TRIVIAL_LENGTH = 220

CANNED_MESSAGE = "I can hear you. What would you like to log?"

_COUNT_WORD = r"(?:one|two|three|four|five|[1-5])"
_COUNTING = rf"{_COUNT_WORD}(?:\s+{_COUNT_WORD})*"
# A lone number is an answer ("how many eggs?"), not a mic check.
_COUNT_RUN = rf"{_COUNT_WORD}(?:\s+{_COUNT_WORD})+"
_TEST = r"test(?:ing)?"
_GREETING = r"(?:(?:hi|hey|hello|ok|okay|so|um|uh|alright)\s+)*"

# Each pattern must match the whole normalized utterance.
TRIVIAL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        rf"{_GREETING}(?:(?:mic|microphone|sound|audio)\s+)?{_TEST}(?:\s+{_TEST})*(?:\s+{_COUNTING})?",
        rf"{_GREETING}{_COUNT_RUN}(?:\s+{_TEST})*",
        rf"{_GREETING}(?:(?:can|do|could)\s+you\s+hear\s+me(?:\s+now)?\s*)+",
        rf"{_GREETING}(?:(?:is|are)\s+)?(?:this|the|my)\s+(?:mic|microphone|thing|audio)\s+(?:on|working)",
        rf"{_GREETING}(?:are\s+you\s+)?(?:there|listening)",
        rf"{_GREETING}check(?:\s+check)*(?:\s+{_COUNTING})?",
    )
)


def normalize_utterance(text: str) -> str:
    lowered = (text or "").lower()
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9 ]+", " ", lowered)).strip()


def is_trivial_utterance(text: str) -> bool:
    """True for mic and hearing checks that should not reach the model.

    Only whole-utterance matches count, so "testing my new blender, had a smoothie"
    is still sent for extraction.
    """
    normalized = normalize_utterance(text)
    if not normalized or len(normalized) > MAX_TRIVIAL_LENGTH:
        return False
    return any(pattern.fullmatch(normalized) for pattern in TRIVIAL_PATTERNS)


def canned_response(envelope: type[AssistantPlan] = AssistantResponse) -> AssistantPlan:
    if issubclass(envelope, AssistantResponse):
        return envelope(
            message=CANNED_MESSAGE,
            actions=[],
            decision=Decision(intent="chat", apply="none", confidence=1.0, action_handling="keep"),
        )
    return envelope(message=CANNED_MESSAGE, actions=[])
