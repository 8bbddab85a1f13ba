from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from tibera_assistant_core import AssistantSettings  # noqa: E402


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    db_path = tmp_path / "tibera-test.sqlite"
    monkeypatch.setenv("TIBERA_DB_PATH", str(db_path))
    monkeypatch.setenv("ALLOW_ANON", "false")
    # Requests never leave the process; tests stub the completion client.
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("OPENAI_API_BASE_URL", "https://completions.test/v1")
    monkeypatch.setenv("OPENAI_ASSISTANT_MODEL_CHEAP", "cheap-model")
    monkeypatch.setenv("OPENAI_ASSISTANT_MODEL_STRONG", "strong-model")
    monkeypatch.setenv("OPENAI_INTENT_MODEL", "intent-model")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {user_id}"}

    return _make


@pytest.fixture
def settings() -> AssistantSettings:
    return AssistantSettings(
        api_key="test-key",
        base_url="https://completions.test/v1",
        cheap_model="cheap-model",
        strong_model="strong-model",
        intent_model="intent-model",
    )
