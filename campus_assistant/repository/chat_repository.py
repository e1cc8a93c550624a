"""SQLite persistence for chat turns."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from campus_assistant.domain.models import ChatMessage, ChatSessionSummary
from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)


class ChatRepository:
    """Stores every user and assistant message, one short-lived connection per call."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        return connection

    def initialize_database(self) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Messages (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        user_type TEXT NOT NULL,
                        session_id TEXT NOT NULL,
                        content TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        is_user_message INTEGER NOT NULL,
                        intent TEXT,
                        category TEXT,
                        subcategory TEXT,
                        response_to INTEGER,
                        FOREIGN KEY(response_to) REFERENCES Messages(id)
                    );
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_messages_user_session_time
                    ON Messages(user_id, session_id, timestamp);
                    """
                )
                conn.commit()
            logger.info("Chat database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    @staticmethod
    def _to_message(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(
            message_id=int(row["id"]),
            user_id=str(row["user_id"]),
            user_type=str(row["user_type"]),
            session_id=str(row["session_id"]),
            content=str(row["content"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            is_user_message=bool(row["is_user_message"]),
            intent=row["intent"],
            category=row["category"],
            subcategory=row["subcategory"],
            response_to=row["response_to"],
        )

    def save_message(
        self,
        user_id: str,
        user_type: str,
        session_id: str,
        content: str,
        timestamp: datetime,
        is_user_message: bool,
        intent: Optional[str] = None,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        response_to: Optional[int] = None,
    ) -> ChatMessage:
        """Insert one turn and return it with its assigned id."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Messages (
                        user_id,
                        user_type,
                        session_id,
                        content,
                        timestamp,
                        is_user_message,
                        intent,
                        category,
                        subcategory,
                        response_to
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        user_id,
                        user_type,
                        session_id,
                        content,
                        timestamp.isoformat(),
                        int(is_user_message),
                        intent,
                        category,
                        subcategory,
                        response_to,
                    ),
                )
                conn.commit()
                message_id = int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Saving chat message failed: {exc}") from exc

        return ChatMessage(
            message_id=message_id,
            user_id=user_id,
            user_type=user_type,
            session_id=session_id,
            content=content,
            timestamp=timestamp,
            is_user_message=is_user_message,
            intent=intent,
            category=category,
            subcategory=subcategory,
            response_to=response_to,
        )

    def update_message_intent(
        self,
        message_id: int,
        intent: str,
        category: Optional[str],
        subcategory: Optional[str],
    ) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Messages
                SET intent = ?, category = ?, subcategory = ?
                WHERE id = ?;
                """,
                (intent, category, subcategory, message_id),
            )
            conn.commit()

    def get_message(self, message_id: int) -> Optional[ChatMessage]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Messages WHERE id = ?;", (message_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return self._to_message(row)

    def list_messages(
        self,
        user_id: str,
        session_id: Optional[str] = None,
        limit: int = 50,
    ) -> list[ChatMessage]:
        """Return the most recent `limit` messages, oldest first."""
        query = "SELECT * FROM Messages WHERE user_id = ?"
        params: list[object] = [user_id]
        if session_id is not None:
            query += " AND session_id = ?"
            params.append(session_id)
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?;"
        params.append(limit)

        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(query, params)
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Listing chat messages failed: {exc}") from exc
        return [self._to_message(row) for row in reversed(rows)]

    def list_sessions(self, user_id: str) -> list[ChatSessionSummary]:
        """Sessions for a user, most recently active first."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT session_id, MAX(timestamp) AS last_activity, COUNT(*) AS message_count
                    FROM Messages
                    WHERE user_id = ?
                    GROUP BY session_id
                    ORDER BY last_activity DESC;
                    """,
                    (user_id,),
                )
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise RuntimeError(f"Listing chat sessions failed: {exc}") from exc
        return [
            ChatSessionSummary(
                session_id=str(row["session_id"]),
                last_activity=datetime.fromisoformat(row["last_activity"]),
                message_count=int(row["message_count"]),
            )
            for row in rows
        ]

    def count_messages(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Messages;")
            return int(cursor.fetchone()["count"])
