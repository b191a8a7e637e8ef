"""Conversation and message storage operations."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from typing import Any

from chatvault.core.exceptions import ConversationNotFoundError
from chatvault.core.models import Conversation, Message, format_timestamp


def _dump_json(value: Any) -> str | None:
    return json.dumps(value) if value is not None else None


class ConversationStorage:
    """Storage operations for conversations and their messages."""

    def __init__(
        self,
        get_connection: Callable[[], sqlite3.Connection],
        transaction: Callable[[], AbstractContextManager[sqlite3.Connection]],
    ) -> None:
        self._get_connection = get_connection
        self._transaction = transaction

    def save(self, conversation: Conversation) -> None:
        """Insert or replace a conversation and all of its messages."""
        self.save_all([conversation])

    def save_all(self, conversations: Iterable[Conversation]) -> None:
        """Save several conversations in one transaction."""
        with self._transaction() as conn:
            for conv in conversations:
                conn.execute(
                    """
                    INSERT INTO conversations
                        (id, title, model, enabled_tools, archived, archived_at,
                         created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        title = excluded.title,
                        model = excluded.model,
                        enabled_tools = excluded.enabled_tools,
                        archived = excluded.archived,
                        archived_at = excluded.archived_at,
                        created_at = excluded.created_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        conv.id,
                        conv.title,
                        conv.model,
                        _dump_json(conv.enabled_tools),
                        int(conv.archived),
                        format_timestamp(conv.archived_at) if conv.archived_at else None,
                        format_timestamp(conv.created_at),
                        format_timestamp(conv.updated_at),
                    ),
                )
                # Messages are replaced wholesale, matching the in-memory conversation
                conn.execute("DELETE FROM conversation_messages WHERE conversation_id = ?", (conv.id,))
                conn.executemany(
                    """
                    INSERT INTO conversation_messages
                        (id, conversation_id, role, content, timestamp, model, image_ids,
                         tool_name, tool_call, tool_result)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            msg.id,
                            conv.id,
                            msg.role.value,
                            msg.content,
                            msg.timestamp,
                            msg.model,
                            _dump_json(msg.image_ids),
                            msg.tool_name,
                            _dump_json(msg.tool_call),
                            _dump_json(msg.tool_result),
                        )
                        for msg in conv.messages
                    ],
                )

    def get(self, conversation_id: str) -> Conversation:
        """Get a conversation with its messages."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        if row is None:
            raise ConversationNotFoundError(f"Conversation '{conversation_id}' not found")
        return Conversation.from_row(row, self.get_messages(conversation_id))

    def list_all(self, include_archived: bool = True) -> list[Conversation]:
        """Get all conversations, most recently updated first."""
        conn = self._get_connection()
        if include_archived:
            cursor = conn.execute("SELECT * FROM conversations ORDER BY updated_at DESC")
        else:
            cursor = conn.execute(
                "SELECT * FROM conversations WHERE archived = 0 ORDER BY updated_at DESC"
            )
        return [
            Conversation.from_row(row, self.get_messages(row["id"])) for row in cursor.fetchall()
        ]

    def get_messages(self, conversation_id: str) -> list[Message]:
        """Get a conversation's messages in chronological order."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT * FROM conversation_messages
            WHERE conversation_id = ?
            ORDER BY timestamp, rowid
            """,
            (conversation_id,),
        )
        return [Message.from_row(row) for row in cursor.fetchall()]

    def exists(self, conversation_id: str) -> bool:
        conn = self._get_connection()
        row = conn.execute("SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
        return row is not None

    def delete(self, conversation_id: str) -> bool:
        """Delete a conversation; its messages go by cascade."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
            return cursor.rowcount > 0

    def count(self) -> int:
        conn = self._get_connection()
        return conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]

    def count_messages(self) -> int:
        conn = self._get_connection()
        return conn.execute("SELECT COUNT(*) FROM conversation_messages").fetchone()[0]
