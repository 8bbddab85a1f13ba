from __future__ import annotations

import os
from dataclasses import dataclass


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or default).strip()


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes"}


@dataclass(frozen=True)
class AssistantSettings:
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    cheap_model: str = "gpt-5-mini-2025-08-07"
    strong_model: str = "gpt-5.2-2025-12-11"
    intent_model: str = "gpt-4.1-nano-2025-04-14"
    timeout_seconds: float = 30.0
    temperature: float | None = None
    max_output_tokens: int = 1400
    upgrade_confidence_threshold: float = 0.65
    history_turns: int = 12
    recovery_enabled: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls) -> "AssistantSettings":
        temperature_raw = (os.getenv("TIBERA_COMPLETION_TEMPERATURE") or "").strip()
        temperature: float | None = None
        if temperature_raw:
            try:
                temperature = float(temperature_raw)
            except ValueError:
                temperature = None
        threshold = _env_float("TIBERA_UPGRADE_CONFIDENCE_THRESHOLD", 0.65)
        return cls(
            api_key=_env_str("OPENAI_API_KEY", ""),
            base_url=_env_str("OPENAI_API_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            cheap_model=_env_str("OPENAI_ASSISTANT_MODEL_CHEAP", cls.cheap_model),
            strong_model=_env_str("OPENAI_ASSISTANT_MODEL_STRONG", cls.strong_model),
            intent_model=_env_str("OPENAI_INTENT_MODEL", cls.intent_model),
            timeout_seconds=max(1.0, _env_float("TIBERA_COMPLETION_TIMEOUT_SECONDS", 30.0)),
            temperature=temperature,
            max_output_tokens=max(256, _env_int("TIBERA_MAX_OUTPUT_TOKENS", 1400)),
            upgrade_confidence_threshold=max(0.0, min(1.0, threshold)),
            history_turns=max(0, min(16, _env_int("TIBERA_HISTORY_TURNS", 12))),
            recovery_enabled=_env_bool("TIBERA_RECOVERY_ENABLED", True),
        )
