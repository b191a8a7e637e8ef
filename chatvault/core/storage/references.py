"""Image reference storage operations."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager

from chatvault.core.exceptions import ImageNotFoundError
from chatvault.core.models import ImageMetadata, ImageReference, format_timestamp, utc_now


class ReferenceStorage:
    """Storage operations for links between images and conversations."""

    def __init__(
        self,
        get_connection: Callable[[], sqlite3.Connection],
        transaction: Callable[[], AbstractContextManager[sqlite3.Connection]],
    ) -> None:
        self._get_connection = get_connection
        self._transaction = transaction

    def add(self, image_id: int, conversation_id: str) -> bool:
        """Reference an image from a conversation. Returns False if already referenced."""
        with self._transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO image_references (image_id, conversation_id, created_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(image_id, conversation_id) DO NOTHING
                    """,
                    (image_id, conversation_id, format_timestamp(utc_now())),
                )
            except sqlite3.IntegrityError as e:
                raise ImageNotFoundError(f"Image with id {image_id} not found") from e
            return cursor.rowcount > 0

    def get(self, image_id: int, conversation_id: str) -> ImageReference | None:
        """Get a single reference, or None."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT * FROM image_references WHERE image_id = ? AND conversation_id = ?",
            (image_id, conversation_id),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return ImageReference.from_row(row)

    def list_for_conversation(self, conversation_id: str) -> list[ImageMetadata]:
        """Get the images referenced by a conversation, oldest reference first."""
        conn = self._get_connection()
        cursor = conn.execute(
            """
            SELECT i.id, i.hash, i.mime_type, i.size, i.created_at
            FROM images i
            JOIN image_references r ON i.id = r.image_id
            WHERE r.conversation_id = ?
            ORDER BY r.created_at, r.id
            """,
            (conversation_id,),
        )
        return [ImageMetadata.from_row(row) for row in cursor.fetchall()]

    def count_for_image(self, image_id: int) -> int:
        """Count the conversations referencing an image."""
        conn = self._get_connection()
        return conn.execute(
            "SELECT COUNT(*) FROM image_references WHERE image_id = ?", (image_id,)
        ).fetchone()[0]

    def remove(self, image_id: int, conversation_id: str) -> bool:
        """Detach one image from a conversation."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM image_references WHERE image_id = ? AND conversation_id = ?",
                (image_id, conversation_id),
            )
            return cursor.rowcount > 0

    def remove_all_for_conversation(self, conversation_id: str) -> int:
        """Delete all references held by a conversation. Returns count deleted."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM image_references WHERE conversation_id = ?", (conversation_id,)
            )
            return cursor.rowcount

    def count(self) -> int:
        """Count all references."""
        conn = self._get_connection()
        return conn.execute("SELECT COUNT(*) FROM image_references").fetchone()[0]
