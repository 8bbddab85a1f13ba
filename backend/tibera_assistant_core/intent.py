from __future__ import annotations

import logging
from typing import Literal

from .completion import CompletionClient
from .prompts import CONFIRMATION_CLASSIFIER_INSTRUCTIONS

logger = logging.getLogger(__name__)

ConfirmationIntent = Literal["confirm", "cancel", "new_instruction"]

MAX_CLASSIFIER_TEXT = 500


def parse_confirmation_token(raw: str) -> ConfirmationIntent:
    token = (raw or "").strip().lower().strip(".!\"'` ")
    if token == "confirm":
        return "confirm"
    if token == "cancel":
        return "cancel"
    return "new_instruction"


def classify_confirmation(client: CompletionClient, text: str) -> ConfirmationIntent:
    """Classify a short utterance spoken while suggestions await confirmation.

    Raises ``CompletionServiceError`` when the service cannot be reached.
    """
    messages = [
        {"role": "system", "content": CONFIRMATION_CLASSIFIER_INSTRUCTIONS},
        {"role": "user", "content": text[:MAX_CLASSIFIER_TEXT]},
    ]
    raw = client.chat_completion(
        client.settings.intent_model,
        messages,
        max_tokens=3,
        temperature=0.0,
        timeout_seconds=min(client.settings.timeout_seconds, 10.0),
    )
    intent = parse_confirmation_token(raw)
    logger.info("confirmation classifier: %r -> %s", raw, intent)
    return intent
