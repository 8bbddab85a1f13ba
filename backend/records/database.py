from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class RecordStoreError(RuntimeError):
    pass


class SQLiteRecordDB:
    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> str:
        return str(self._path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise RecordStoreError(f"Could not open record store: {exc}") from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise RecordStoreError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self.connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS assistant_sessions (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  mode TEXT NOT NULL DEFAULT 'conversation',
                  metadata_json TEXT NOT NULL DEFAULT '{}',
                  created_at TEXT NOT NULL,
                  last_active_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS assistant_turns (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  session_id TEXT NOT NULL REFERENCES assistant_sessions(id) ON DELETE CASCADE,
                  correlation_id TEXT,
                  input_text TEXT NOT NULL,
                  input_source TEXT NOT NULL DEFAULT 'typed',
                  plan_json TEXT,
                  plan_message TEXT,
                  plan_actions_count INTEGER,
                  plan_model TEXT,
                  plan_latency_ms INTEGER,
                  applied INTEGER NOT NULL DEFAULT 0,
                  applied_at TEXT,
                  apply_error TEXT,
                  metadata_json TEXT NOT NULL DEFAULT '{}',
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS app_events (
                  id TEXT PRIMARY KEY,
                  user_id TEXT NOT NULL,
                  session_id TEXT,
                  correlation_id TEXT,
                  event_type TEXT NOT NULL,
                  source TEXT NOT NULL DEFAULT 'client',
                  ts TEXT NOT NULL,
                  idempotency_key TEXT NOT NULL,
                  schema_version INTEGER NOT NULL DEFAULT 1,
                  privacy_level TEXT NOT NULL DEFAULT 'standard',
                  payload_json TEXT NOT NULL DEFAULT '{}',
                  context_json TEXT NOT NULL DEFAULT '{}',
                  created_at TEXT NOT NULL,
                  UNIQUE(user_id, idempotency_key)
                );

                CREATE INDEX IF NOT EXISTS idx_assistant_sessions_user_active
                  ON assistant_sessions(user_id, last_active_at DESC);
                CREATE INDEX IF NOT EXISTS idx_assistant_turns_session_created
                  ON assistant_turns(session_id, created_at DESC);
                CREATE INDEX IF NOT EXISTS idx_assistant_turns_correlation
                  ON assistant_turns(correlation_id);
                CREATE INDEX IF NOT EXISTS idx_app_events_user_ts
                  ON app_events(user_id, ts DESC);
                CREATE INDEX IF NOT EXISTS idx_app_events_type_ts
                  ON app_events(event_type, ts DESC);
                """
            )
