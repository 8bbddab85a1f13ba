from __future__ import annotations

import json
import uuid
from typing import Any

from .database import SQLiteRecordDB
from .time_utils import to_iso, utc_now

MAX_EVENT_PAYLOAD_BYTES = 50_000
MAX_EVENT_CONTEXT_BYTES = 20_000
MAX_IDEMPOTENCY_KEY_LENGTH = 220


class EventTooLargeError(ValueError):
    pass


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class EventStore:
    """Append-only analytics events, de-duplicated per user by idempotency key."""

    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def _row(self, user_id: str, event: dict[str, Any], now: str) -> tuple[Any, ...]:
        row_id = str(uuid.uuid4())
        idempotency_key = str(event.get("idempotency_key") or event.get("event_id") or row_id)
        idempotency_key = idempotency_key[:MAX_IDEMPOTENCY_KEY_LENGTH]
        payload_json = _json_dumps(event.get("payload") or {})
        context_json = _json_dumps(event.get("context") or {})
        if len(payload_json.encode("utf-8")) > MAX_EVENT_PAYLOAD_BYTES:
            raise EventTooLargeError("Event payload too large")
        if len(context_json.encode("utf-8")) > MAX_EVENT_CONTEXT_BYTES:
            raise EventTooLargeError("Event context too large")
        return (
            row_id,
            user_id,
            event.get("session_id"),
            event.get("correlation_id"),
            event["event_type"],
            event.get("source") or "client",
            event.get("ts") or now,
            idempotency_key,
            int(event.get("schema_version") or 1),
            event.get("privacy_level") or "standard",
            payload_json,
            context_json,
            now,
        )

    def ingest(self, *, user_id: str, events: list[dict[str, Any]]) -> dict[str, int]:
        """Store a batch of events; duplicates by idempotency key are skipped.

        The whole batch is rejected with ``EventTooLargeError`` before anything
        is written if any single payload or context exceeds its size limit.
        """
        now = to_iso(utc_now())
        rows = [self._row(user_id, event, now) for event in events]
        with self._db.connection() as conn:
            before = conn.total_changes
            conn.executemany(
                """
                INSERT INTO app_events (
                  id, user_id, session_id, correlation_id, event_type, source, ts,
                  idempotency_key, schema_version, privacy_level, payload_json, context_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, idempotency_key) DO NOTHING
                """,
                rows,
            )
            inserted = conn.total_changes - before
        return {"accepted": len(rows), "inserted": inserted}

    def append(
        self,
        *,
        user_id: str,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        correlation_id: str | None = None,
        privacy_level: str = "standard",
    ) -> None:
        self.ingest(
            user_id=user_id,
            events=[
                {
                    "event_type": event_type,
                    "source": "server",
                    "session_id": session_id,
                    "correlation_id": correlation_id,
                    "privacy_level": privacy_level,
                    "payload": payload,
                }
            ],
        )
