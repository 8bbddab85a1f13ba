from __future__ import annotations

import json
import uuid
from typing import Any

from .database import RecordStoreError, SQLiteRecordDB
from .time_utils import to_iso, utc_now


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class AssistantStore:
    """Assistant sessions and the turns recorded inside them."""

    def __init__(self, db: SQLiteRecordDB) -> None:
        self._db = db

    def upsert_session(
        self,
        *,
        user_id: str,
        session_id: str,
        mode: str = "conversation",
        metadata: dict[str, Any] | None = None,
    ) -> None:
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            owner = conn.execute(
                "SELECT user_id FROM assistant_sessions WHERE id = ? LIMIT 1",
                (session_id,),
            ).fetchone()
            if owner and owner["user_id"] != user_id:
                raise RecordStoreError("Session belongs to another user.")
            conn.execute(
                """
                INSERT INTO assistant_sessions (id, user_id, mode, metadata_json, created_at, last_active_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  mode = excluded.mode,
                  last_active_at = excluded.last_active_at
                """,
                (session_id, user_id, mode, _json_dumps(metadata or {}), now, now),
            )

    def insert_turn(
        self,
        *,
        user_id: str,
        session_id: str,
        correlation_id: str | None,
        input_text: str,
        input_source: str = "typed",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        turn_id = str(uuid.uuid4())
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO assistant_turns (
                  id, user_id, session_id, correlation_id, input_text, input_source,
                  metadata_json, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    turn_id,
                    user_id,
                    session_id,
                    correlation_id,
                    input_text,
                    input_source,
                    _json_dumps(metadata or {}),
                    now,
                    now,
                ),
            )
        return turn_id

    def update_turn_plan(
        self,
        *,
        user_id: str,
        turn_id: str,
        plan: dict[str, Any],
        model: str | None,
        latency_ms: int,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        actions = plan.get("actions") or []
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE assistant_turns
                SET plan_json = ?,
                    plan_message = ?,
                    plan_actions_count = ?,
                    plan_model = ?,
                    plan_latency_ms = ?,
                    metadata_json = ?,
                    updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    _json_dumps(plan),
                    plan.get("message"),
                    len(actions),
                    model,
                    max(0, int(latency_ms)),
                    _json_dumps(metadata or {}),
                    to_iso(utc_now()),
                    turn_id,
                    user_id,
                ),
            )
            return cursor.rowcount > 0

    def complete_turn(
        self,
        *,
        user_id: str,
        turn_id: str,
        applied: bool,
        apply_error: str | None = None,
    ) -> bool:
        now = to_iso(utc_now())
        if applied:
            values: tuple[Any, ...] = (1, now, None)
        else:
            values = (0, None, apply_error or "Not applied")
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE assistant_turns
                SET applied = ?, applied_at = ?, apply_error = ?, updated_at = ?
                WHERE id = ? AND user_id = ?
                """,
                (*values, now, turn_id, user_id),
            )
            return cursor.rowcount > 0
