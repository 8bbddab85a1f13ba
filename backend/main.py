from __future__ import annotations

import hashlib
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Annotated, Any, Literal

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from records import EventTooLargeError, RecordService, RecordStoreError, SQLiteRecordDB
from records.time_utils import parse_iso, to_iso, utc_now
from tibera_assistant_core import (
    Action,
    AssistantPipeline,
    AssistantRequest,
    AssistantSettings,
    CompletionClient,
    CompletionServiceError,
    EscalationOrchestrator,
    HistoryTurn,
    PipelineResult,
    RecentEntry,
    classify_confirmation,
    serialize_plan,
)
from tibera_assistant_core.schemas import DATE_PATTERN, MAX_ACTIONS, UUID_PATTERN

logger = logging.getLogger(__name__)

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_env_file(path: Path) -> None:
    """Fill unset variables from ``KEY=value`` lines; the process environment wins."""
    if not path.is_file():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().partition("=")
        key = key.strip()
        if not sep or not _ENV_KEY_RE.fullmatch(key):
            continue
        os.environ.setdefault(key, value.strip().strip("\"'"))


_load_env_file(Path(__file__).resolve().parent / ".env")

UuidStr = Annotated[str, StringConstraints(pattern=UUID_PATTERN)]
DateStr = Annotated[str, StringConstraints(pattern=DATE_PATTERN)]


class _RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class PlanRequest(_RequestModel):
    text: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    now_iso: str | None = Field(default=None, alias="nowIso")
    today: DateStr | None = None
    history: list[HistoryTurn] = Field(default_factory=list, max_length=12)
    existing_actions: list[Action] = Field(default_factory=list, alias="existingActions", max_length=MAX_ACTIONS)

    @field_validator("now_iso")
    @classmethod
    def _valid_timestamp(cls, value: str | None) -> str | None:
        if value is not None and parse_iso(value) is None:
            raise ValueError("nowIso must be an ISO-8601 timestamp")
        return value


class ConversationRequest(PlanRequest):
    history: list[HistoryTurn] = Field(default_factory=list, max_length=16)
    session_id: UuidStr | None = Field(default=None, alias="sessionId")
    correlation_id: UuidStr | None = Field(default=None, alias="correlationId")
    input_source: Literal["typed", "speech"] = Field(default="typed", alias="inputSource")
    recent_entries: list[RecentEntry] = Field(default_factory=list, alias="recentEntries", max_length=20)


class TurnCompleteRequest(_RequestModel):
    turn_id: UuidStr = Field(alias="turnId")
    applied: bool
    apply_error: Annotated[str, StringConstraints(max_length=2000)] | None = Field(default=None, alias="applyError")


class ClassifyIntentRequest(_RequestModel):
    text: Annotated[str, StringConstraints(min_length=1, max_length=500)]


class EventPayload(_RequestModel):
    event_id: UuidStr | None = None
    event_type: Annotated[str, StringConstraints(min_length=1, max_length=160)]
    ts: str | None = None
    source: Literal["client", "server", "db"] | None = None
    session_id: UuidStr | None = None
    correlation_id: UuidStr | None = None
    idempotency_key: Annotated[str, StringConstraints(min_length=1, max_length=220)] | None = None
    schema_version: int | None = Field(default=None, ge=1, le=10)
    privacy_level: Literal["standard", "sensitive", "redacted"] | None = None
    payload: dict[str, Any] | None = None
    context: dict[str, Any] | None = None

    @field_validator("ts")
    @classmethod
    def _valid_ts(cls, value: str | None) -> str | None:
        if value is None:
            return None
        parsed = parse_iso(value)
        if parsed is None:
            raise ValueError("ts must be an ISO-8601 timestamp")
        return to_iso(parsed)


class EventIngestRequest(_RequestModel):
    events: list[EventPayload] = Field(min_length=1, max_length=50)


class TiberaApp:
    def __init__(self) -> None:
        self.settings = AssistantSettings.from_env()
        db_path = os.getenv(
            "TIBERA_DB_PATH",
            str((Path(__file__).resolve().parent / "tibera.sqlite")),
        )
        self.db = SQLiteRecordDB(db_path)
        self.records = RecordService(self.db)
        self.completion = CompletionClient(self.settings)
        self.orchestrator = EscalationOrchestrator(self._complete, self.settings)
        self.pipeline = AssistantPipeline(self.orchestrator)

    def _complete(self, model: str, text: str, **kwargs: Any):
        return self.completion.complete(model, text, **kwargs)


container = TiberaApp()
app = FastAPI(title="Tibera Assistant Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("rejected request body on %s: %d error(s)", request.url.path, len(exc.errors()))
    return JSONResponse({"success": False, "error": "Invalid request body"}, status_code=400)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _anon_allowed() -> bool:
    return os.getenv("ALLOW_ANON", "false").lower() == "true"


def _validated_trusted_user_id(x_user_id: str) -> str:
    candidate = x_user_id.strip()
    if not candidate or not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-User-Id")
    return candidate


def get_user_id(auth_header: str | None) -> str:
    raw = (auth_header or "").replace("Bearer", "", 1).strip()
    if not raw:
        if _anon_allowed():
            return "demo-user"
        raise HTTPException(status_code=401, detail="Missing Authorization")
    # Bearer tokens are opaque here; identity claims are never decoded.
    if len(raw) > 96:
        return f"token_{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:24]}"
    return raw


def resolve_user_id(authorization: str | None, x_user_id: str | None) -> str:
    if x_user_id is not None:
        return _validated_trusted_user_id(x_user_id)
    return get_user_id(authorization)


def _require_completion_service() -> None:
    if not container.settings.configured:
        raise HTTPException(status_code=503, detail="OpenAI API key is not configured.")


def _failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _assistant_request(payload: PlanRequest) -> AssistantRequest:
    return AssistantRequest(
        text=payload.text,
        now_iso=payload.now_iso,
        today=payload.today,
        history=list(payload.history),
        existing_actions=list(payload.existing_actions),
        recent_entries=list(getattr(payload, "recent_entries", [])),
    )


def _attempts(result: PipelineResult) -> list[dict[str, Any]]:
    return [attempt.as_dict() for attempt in result.attempts]


@app.get("/health")
def health():
    return {"ok": True, "time": to_iso(utc_now()), "completion_configured": container.settings.configured}


@app.post("/assistant/plan")
def assistant_plan(
    payload: PlanRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    resolve_user_id(authorization, x_user_id)
    _require_completion_service()

    result = container.pipeline.plan(_assistant_request(payload))
    if result.response is None:
        return _failure(result.error or "Could not understand that.", 422)
    return {"success": True, "data": serialize_plan(result.response)}


@app.post("/assistant/conversation")
def assistant_conversation(
    payload: ConversationRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    _require_completion_service()

    session_id = payload.session_id or str(uuid.uuid4())
    correlation_id = payload.correlation_id or str(uuid.uuid4())
    records = container.records
    turn_id = records.start_turn(
        user_id=user_id,
        session_id=session_id,
        correlation_id=correlation_id,
        input_text=payload.text,
        input_source=payload.input_source,
    )
    records.record_event(
        user_id=user_id,
        event_type="assistant.conversation.request",
        session_id=session_id,
        correlation_id=correlation_id,
        payload={
            "turn_id": turn_id,
            "input_source": payload.input_source,
            "history_turns": len(payload.history),
            "existing_actions": len(payload.existing_actions),
        },
    )

    result = container.pipeline.converse(_assistant_request(payload))
    if result.response is None:
        records.record_event(
            user_id=user_id,
            event_type="assistant.conversation.error",
            session_id=session_id,
            correlation_id=correlation_id,
            privacy_level="sensitive",
            payload={"turn_id": turn_id, "error": result.error, "attempts": _attempts(result)},
        )
        return _failure(result.error or "Could not understand that.", 422)

    data = serialize_plan(result.response)
    records.record_plan(
        user_id=user_id,
        turn_id=turn_id,
        plan=data,
        model=result.model,
        latency_ms=result.latency_ms,
        metadata={
            "mode": "conversation",
            "decision": data.get("decision"),
            "short_circuited": result.short_circuited,
            "attempts": _attempts(result),
        },
    )
    records.record_event(
        user_id=user_id,
        event_type="assistant.conversation.success",
        session_id=session_id,
        correlation_id=correlation_id,
        payload={
            "turn_id": turn_id,
            "model": result.model,
            "latency_ms": result.latency_ms,
            "actions_count": len(data.get("actions") or []),
            "short_circuited": result.short_circuited,
        },
    )
    return {"success": True, "data": data, "meta": {"sessionId": session_id, "turnId": turn_id}}


@app.post("/assistant/turn/complete")
def assistant_turn_complete(
    payload: TurnCompleteRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    try:
        updated = container.records.complete_turn(
            user_id=user_id,
            turn_id=payload.turn_id,
            applied=payload.applied,
            apply_error=payload.apply_error,
        )
    except RecordStoreError as exc:
        logger.error("turn completion failed for %s: %s", payload.turn_id, exc)
        return _failure(str(exc), 500)
    if not updated:
        raise HTTPException(status_code=404, detail="Turn not found.")
    return {"success": True}


@app.post("/assistant/classify-intent")
def assistant_classify_intent(
    payload: ClassifyIntentRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    resolve_user_id(authorization, x_user_id)
    _require_completion_service()
    try:
        intent = classify_confirmation(container.completion, payload.text)
    except CompletionServiceError as exc:
        logger.warning("classify-intent failed: %s", exc)
        return _failure(str(exc) or "Classification failed", 502)
    return {"success": True, "intent": intent}


@app.post("/events/ingest")
def events_ingest(
    payload: EventIngestRequest,
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
):
    user_id = resolve_user_id(authorization, x_user_id)
    events = [event.model_dump() for event in payload.events]
    try:
        result = container.records.ingest_events(user_id=user_id, events=events)
    except EventTooLargeError as exc:
        return _failure(str(exc), 413)
    except RecordStoreError as exc:
        logger.error("event ingest failed: %s", exc)
        return _failure(str(exc), 500)
    return {"success": True, "data": result}
