from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from .config import AssistantSettings
from .extraction import coerce_json, extract_output_text, parse_json_object
from .prompts import PLAN_PROFILE, PromptProfile
from .schemas import AssistantPlan, HistoryTurn, RecentEntry, validate_plan

logger = logging.getLogger(__name__)


class CompletionServiceError(RuntimeError):
    """Raised by callers that need a hard failure instead of the soft ``None`` contract."""


def provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message[:800] or f"HTTP {response.status_code}"


def _wire(value: Any) -> Any:
    to_wire = getattr(value, "to_wire", None)
    return to_wire() if callable(to_wire) else value


def build_user_input(
    text: str,
    *,
    now_iso: str | None = None,
    today: str | None = None,
    history: Sequence[HistoryTurn] | None = None,
    existing_actions: Sequence[Any] | None = None,
    recent_entries: Sequence[RecentEntry] | None = None,
    history_turns: int = 12,
) -> str:
    """Assemble the user-side input for one completion.

    Blocks are appended in a fixed order: the utterance, today's date, the
    current time, the most recent ``history_turns`` turns (oldest first), the
    pending actions and the recent saved entries. Empty blocks are skipped.
    """
    parts = [f"User said:\n{text}"]
    if today:
        parts.append(f"\nToday's date: {today}")
    if now_iso:
        parts.append(f"\nCurrent time (ISO): {now_iso}")
    parts.append("\n\nReturn JSON only.")

    recent_history = list(history or [])[-history_turns:] if history_turns > 0 else []
    if recent_history:
        lines = "\n".join(f"{turn.role.upper()}: {turn.text}" for turn in recent_history)
        parts.append(f"\n\nConversation so far (most recent last):\n{lines}")
    if existing_actions:
        block = json.dumps({"actions": [_wire(action) for action in existing_actions]}, indent=2)
        parts.append(f"\n\nExisting suggested actions (update these rather than duplicating):\n{block}")
    if recent_entries:
        block = json.dumps({"entries": [_wire(entry) for entry in recent_entries]}, indent=2)
        parts.append(f"\n\nRecent saved entries (use their id as entryId for edits and deletes):\n{block}")
    return "".join(parts)


class CompletionClient:
    """Thin client over the completion service.

    ``complete`` never raises: transport errors, provider errors, missing text,
    unparseable JSON and schema mismatches are logged and reported as ``None``.
    """

    def __init__(self, settings: AssistantSettings, *, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

    def _post(self, path: str, payload: dict[str, Any], timeout_seconds: float | None = None) -> httpx.Response:
        timeout = httpx.Timeout(timeout_seconds or self.settings.timeout_seconds, connect=8.0)
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            return client.post(f"{self.settings.base_url}{path}", headers=self._headers(), json=payload)

    def complete(
        self,
        model: str,
        text: str,
        *,
        now_iso: str | None = None,
        today: str | None = None,
        history: Sequence[HistoryTurn] | None = None,
        existing_actions: Sequence[Any] | None = None,
        recent_entries: Sequence[RecentEntry] | None = None,
        profile: PromptProfile = PLAN_PROFILE,
    ) -> AssistantPlan | None:
        if not self.settings.configured:
            logger.warning("completion skipped: no API key configured")
            return None

        if profile.include_context:
            user_input = build_user_input(
                text,
                now_iso=now_iso,
                today=today,
                history=history,
                existing_actions=existing_actions,
                recent_entries=recent_entries,
                history_turns=self.settings.history_turns,
            )
        else:
            user_input = build_user_input(text, now_iso=now_iso, today=today)

        payload: dict[str, Any] = {
            "model": model,
            "instructions": profile.instructions,
            "input": user_input,
            "max_output_tokens": self.settings.max_output_tokens,
            "text": {"format": profile.response_format},
        }
        if self.settings.temperature is not None:
            payload["temperature"] = self.settings.temperature

        try:
            response = self._post("/responses", payload)
        except httpx.HTTPError as exc:
            logger.warning("completion transport failure (%s, %s): %s", profile.name, model, exc)
            return None

        if response.status_code >= 400:
            logger.warning(
                "completion provider error (%s, %s) %s: %s",
                profile.name,
                model,
                response.status_code,
                provider_error_message(response),
            )
            return None

        try:
            body = response.json()
        except ValueError:
            logger.warning("completion returned invalid JSON body (%s, %s)", profile.name, model)
            return None

        output_text = extract_output_text(body)
        if output_text is None:
            logger.warning("completion returned no output text (%s, %s)", profile.name, model)
            return None

        raw = parse_json_object(output_text)
        if raw is None:
            logger.warning("completion output was not a JSON object (%s, %s)", profile.name, model)
            return None

        return self._validate(raw, profile, model)

    def _validate(self, raw: dict[str, Any], profile: PromptProfile, model: str) -> AssistantPlan | None:
        try:
            return validate_plan(raw, profile.envelope)
        except ValidationError:
            pass
        try:
            return validate_plan(coerce_json(raw), profile.envelope)
        except ValidationError as exc:
            logger.warning(
                "completion failed schema validation (%s, %s): %d error(s), first: %s",
                profile.name,
                model,
                exc.error_count(),
                exc.errors()[0].get("msg") if exc.errors() else "",
            )
            return None

    def chat_completion(
        self,
        model: str,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float = 0.0,
        timeout_seconds: float | None = None,
    ) -> str:
        """Run a plain chat completion and return its text.

        Unlike ``complete`` this raises ``CompletionServiceError`` on any failure.
        """
        if not self.settings.configured:
            raise CompletionServiceError("OpenAI API key is not configured.")
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            response = self._post("/chat/completions", payload, timeout_seconds)
        except httpx.TimeoutException as exc:
            raise CompletionServiceError("Completion provider timed out.") from exc
        except httpx.HTTPError as exc:
            raise CompletionServiceError("Failed to reach completion provider.") from exc
        if response.status_code >= 400:
            raise CompletionServiceError(provider_error_message(response))
        try:
            body = response.json()
        except ValueError as exc:
            raise CompletionServiceError("Completion provider returned invalid JSON.") from exc
        return (extract_output_text(body) or "").strip()
