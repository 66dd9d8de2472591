from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List

from .schemas import ChatMessage, Speaker

logger = logging.getLogger(__name__)


class HistoryStore:
    """SQLite-backed log of every message emitted to a session."""

    def __init__(self, db_path: Path) -> None:
        self._lock = asyncio.Lock()
        self._db_path = Path(db_path).resolve()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _init_db(self) -> None:
        """
        Initialize the messages table.
        Schema:
        - id: insertion order, which is also conversation order
        - session_id: opaque id of the websocket session
        - speaker, text: the ChatMessage payload
        - timestamp: ISO-8601 UTC instant the message was created
        """
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    speaker TEXT NOT NULL,
                    text TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_messages_session
                ON messages (session_id, id)
                """
            )
            conn.commit()

    async def append(self, session_id: str, message: ChatMessage) -> None:
        async with self._lock:

            def _write() -> None:
                with sqlite3.connect(self._db_path) as conn:
                    conn.execute(
                        """
                        INSERT INTO messages (session_id, speaker, text, timestamp)
                        VALUES (?, ?, ?, ?)
                        """,
                        (
                            session_id,
                            message.speaker.value,
                            message.text,
                            message.timestamp.isoformat(),
                        ),
                    )
                    conn.commit()

            await asyncio.to_thread(_write)

    async def list(self, session_id: str) -> List[ChatMessage]:
        async with self._lock:

            def _read() -> List[ChatMessage]:
                with sqlite3.connect(self._db_path) as conn:
                    conn.row_factory = sqlite3.Row
                    cursor = conn.execute(
                        """
                        SELECT speaker, text, timestamp FROM messages
                        WHERE session_id = ?
                        ORDER BY id ASC
                        """,
                        (session_id,),
                    )
                    return [
                        ChatMessage(
                            speaker=Speaker(row["speaker"]),
                            text=row["text"],
                            timestamp=datetime.fromisoformat(row["timestamp"]),
                        )
                        for row in cursor.fetchall()
                    ]

            return await asyncio.to_thread(_read)


__all__ = ["HistoryStore"]
