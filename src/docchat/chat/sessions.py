"""Persistent conversation sessions."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from docchat.errors import NotFoundError
from docchat.index.storage import SQLiteDatabase, utc_now
from docchat.models import ConversationTurn

LOGGER = logging.getLogger(__name__)

ROLES = ("user", "assistant")


class SQLiteSessionStore(SQLiteDatabase):
    """Stores chat sessions and their ordered turns."""

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_sessions (
                    session_id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    sources TEXT,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY(session_id) REFERENCES chat_sessions(session_id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_chat_messages_session
                    ON chat_messages(session_id, id)
                """
            )

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        rows = self._query(
            "SELECT session_id, created_at, updated_at FROM chat_sessions WHERE session_id = ?",
            (session_id,),
        )
        return dict(rows[0]) if rows else None

    def create_session(self, session_id: Optional[str] = None) -> str:
        session_id = session_id or uuid.uuid4().hex
        now = utc_now()
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO chat_sessions(session_id, created_at, updated_at) VALUES (?, ?, ?)",
                (session_id, now, now),
            )
        LOGGER.info("Created chat session %s", session_id)
        return session_id

    def get_or_create_session(self, session_id: Optional[str] = None) -> str:
        with self._lock:
            if session_id and self.get_session(session_id) is not None:
                return session_id
            return self.create_session(session_id)

    def get_history(self, session_id: str, limit: int = 20) -> List[ConversationTurn]:
        """Most recent ``limit`` turns of a session, oldest first."""
        if limit <= 0:
            return []
        rows = self._query(
            """
            SELECT session_id, role, content, sources, timestamp FROM (
                SELECT id, session_id, role, content, sources, timestamp
                FROM chat_messages
                WHERE session_id = ?
                ORDER BY id DESC
                LIMIT ?
            ) ORDER BY id ASC
            """,
            (session_id, limit),
        )
        return [
            ConversationTurn(
                session_id=row["session_id"],
                role=row["role"],
                content=row["content"],
                timestamp=row["timestamp"],
                sources=json.loads(row["sources"]) if row["sources"] else [],
            )
            for row in rows
        ]

    def append_turns(self, session_id: str, turns: Sequence[ConversationTurn]) -> None:
        """Append turns atomically, creating the session if needed."""
        for turn in turns:
            if turn.role not in ROLES:
                raise ValueError(f"Unknown role: {turn.role}")
        now = utc_now()
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO chat_sessions(session_id, created_at, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET updated_at = excluded.updated_at
                """,
                (session_id, now, now),
            )
            conn.executemany(
                """
                INSERT INTO chat_messages(session_id, role, content, sources, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        session_id,
                        turn.role,
                        turn.content,
                        json.dumps(turn.sources, ensure_ascii=True) if turn.sources else None,
                        turn.timestamp or now,
                    )
                    for turn in turns
                ],
            )

    def clear_session(self, session_id: str) -> int:
        """Drop every turn of a session but keep the session itself."""
        with self.transaction() as conn:
            if self.get_session(session_id) is None:
                raise NotFoundError(f"Session {session_id} not found")
            removed = conn.execute(
                "DELETE FROM chat_messages WHERE session_id = ?", (session_id,)
            ).rowcount
            conn.execute(
                "UPDATE chat_sessions SET updated_at = ? WHERE session_id = ?",
                (utc_now(), session_id),
            )
        LOGGER.info("Cleared %d messages from session %s", removed, session_id)
        return removed

    def delete_session(self, session_id: str) -> bool:
        with self.transaction() as conn:
            conn.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            deleted = conn.execute(
                "DELETE FROM chat_sessions WHERE session_id = ?", (session_id,)
            ).rowcount
        return deleted > 0

    def list_sessions(self, limit: int = 50) -> List[Dict[str, Any]]:
        rows = self._query(
            """
            SELECT s.session_id, s.created_at, s.updated_at, COUNT(m.id) AS message_count
            FROM chat_sessions s
            LEFT JOIN chat_messages m ON m.session_id = s.session_id
            GROUP BY s.session_id
            ORDER BY s.updated_at DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [dict(row) for row in rows]

    def session_stats(self, session_id: str) -> Dict[str, Any]:
        rows = self._query(
            """
            SELECT s.session_id, s.created_at, s.updated_at, COUNT(m.id) AS message_count
            FROM chat_sessions s
            LEFT JOIN chat_messages m ON m.session_id = s.session_id
            WHERE s.session_id = ?
            GROUP BY s.session_id
            """,
            (session_id,),
        )
        if not rows:
            raise NotFoundError(f"Session {session_id} not found")
        return dict(rows[0])

    def totals(self) -> Dict[str, Any]:
        sessions = self._query("SELECT COUNT(*) FROM chat_sessions")[0][0]
        messages = self._query("SELECT COUNT(*) FROM chat_messages")[0][0]
        return {
            "session_count": sessions,
            "message_count": messages,
            "average_messages_per_session": messages / sessions if sessions else 0,
        }
