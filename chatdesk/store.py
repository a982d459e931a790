"""SQLite persistence for conversations."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List

from .config import config
from .conversation import Conversation
from .errors import PersistenceError

_LOGGER = logging.getLogger(__name__)

_TABLE_SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    document TEXT NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_conversations_updated_at ON conversations(updated_at DESC);
"""


class ConversationStore:
    """Whole-conversation snapshots, one JSON document per row."""

    def __init__(self, database_path: str | Path | None = None) -> None:
        self.database_path = Path(database_path or config.storage.database_path)
        self._write_lock = threading.Lock()
        self._initialized = False

    def _ensure_database(self) -> None:
        if self._initialized:
            return
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(str(self.database_path)) as conn:
            conn.executescript(_TABLE_SCHEMA)
        self._initialized = True

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self._ensure_database()
            conn = sqlite3.connect(str(self.database_path))
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"Unable to open conversation database: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"Conversation database error: {exc}") from exc
        finally:
            conn.close()

    def load(self) -> List[Conversation]:
        """Return every stored conversation, most recently updated first."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, document FROM conversations ORDER BY updated_at DESC"
            ).fetchall()
        conversations: List[Conversation] = []
        for row in rows:
            try:
                conversations.append(Conversation.from_dict(json.loads(row[1])))
            except (ValueError, TypeError, AttributeError) as exc:
                _LOGGER.warning("Skipping unreadable conversation %s: %s", row[0], exc)
        return conversations

    def save(self, conversations: Iterable[Conversation]) -> None:
        """Insert or replace a snapshot of each conversation.

        The conversation lock is held until its row is written, so two saves of
        the same conversation can never land out of order.
        """

        for conversation in conversations:
            with conversation.lock:
                document = json.dumps(conversation.to_dict(), ensure_ascii=False)
                with self._write_lock, self._connect() as conn:
                    conn.execute(
                        "INSERT INTO conversations (id, title, document, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?, ?) "
                        "ON CONFLICT(id) DO UPDATE SET title = excluded.title, "
                        "document = excluded.document, updated_at = excluded.updated_at",
                        (
                            conversation.id,
                            conversation.title,
                            document,
                            conversation.created_at,
                            conversation.updated_at,
                        ),
                    )
                    conn.commit()

    def delete(self, conversation_id: str) -> bool:
        with self._write_lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            conn.commit()
            return cursor.rowcount > 0

    def clear(self) -> None:
        with self._write_lock, self._connect() as conn:
            conn.execute("DELETE FROM conversations")
            conn.commit()
