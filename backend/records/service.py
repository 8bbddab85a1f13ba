from __future__ import annotations

import logging
from typing import Any

from .assistant_store import AssistantStore
from .database import RecordStoreError, SQLiteRecordDB
from .event_store import EventStore, EventTooLargeError

logger = logging.getLogger(__name__)


class RecordService:
    """Stores used by the HTTP layer.

    ``ingest_events`` and ``complete_turn`` are the primary writes of their
    routes and raise. The ``record_*`` and ``start_turn`` helpers run alongside
    the assistant pipeline; they log failures and return ``None``/``False`` so
    that a storage problem never changes what the user gets back.
    """

    def __init__(self, db: SQLiteRecordDB) -> None:
        self.db = db
        self.assistant = AssistantStore(db)
        self.events = EventStore(db)

    # ── primary writes ──────────────────────────────────────────────

    def ingest_events(self, *, user_id: str, events: list[dict[str, Any]]) -> dict[str, int]:
        return self.events.ingest(user_id=user_id, events=events)

    def complete_turn(self, *, user_id: str, turn_id: str, applied: bool, apply_error: str | None = None) -> bool:
        return self.assistant.complete_turn(
            user_id=user_id,
            turn_id=turn_id,
            applied=applied,
            apply_error=apply_error,
        )

    # ── best-effort writes ──────────────────────────────────────────

    def start_turn(
        self,
        *,
        user_id: str,
        session_id: str,
        correlation_id: str | None,
        input_text: str,
        input_source: str,
        mode: str = "conversation",
    ) -> str | None:
        try:
            self.assistant.upsert_session(user_id=user_id, session_id=session_id, mode=mode)
            return self.assistant.insert_turn(
                user_id=user_id,
                session_id=session_id,
                correlation_id=correlation_id,
                input_text=input_text,
                input_source=input_source,
                metadata={"mode": mode},
            )
        except RecordStoreError as exc:
            logger.warning("could not record assistant turn for session %s: %s", session_id, exc)
            return None

    def record_plan(
        self,
        *,
        user_id: str,
        turn_id: str | None,
        plan: dict[str, Any],
        model: str | None,
        latency_ms: int,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        if not turn_id:
            return False
        try:
            return self.assistant.update_turn_plan(
                user_id=user_id,
                turn_id=turn_id,
                plan=plan,
                model=model,
                latency_ms=latency_ms,
                metadata=metadata,
            )
        except RecordStoreError as exc:
            logger.warning("could not record plan for turn %s: %s", turn_id, exc)
            return False

    def record_event(
        self,
        *,
        user_id: str,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        correlation_id: str | None = None,
        privacy_level: str = "standard",
    ) -> None:
        try:
            self.events.append(
                user_id=user_id,
                event_type=event_type,
                payload=payload,
                session_id=session_id,
                correlation_id=correlation_id,
                privacy_level=privacy_level,
            )
        except (RecordStoreError, EventTooLargeError) as exc:
            logger.warning("could not record event %s: %s", event_type, exc)
