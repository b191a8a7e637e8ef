"""Content-addressed image storage operations."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager

from chatvault.core.exceptions import ImageNotFoundError
from chatvault.core.hashing import compute_digest
from chatvault.core.models import (
    ImageMetadata,
    ImageStats,
    StoredImage,
    format_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

_METADATA_COLUMNS = "id, hash, mime_type, size, created_at"


class ImageStorage:
    """Storage operations for the images table.

    Rows are keyed by the SHA-256 digest of their bytes; the UNIQUE constraint
    on ``hash`` decides which of two concurrent inserts of the same bytes wins.
    """

    def __init__(
        self,
        get_connection: Callable[[], sqlite3.Connection],
        transaction: Callable[[], AbstractContextManager[sqlite3.Connection]],
    ) -> None:
        self._get_connection = get_connection
        self._transaction = transaction

    def store_or_get(self, data: bytes, mime_type: str) -> ImageMetadata:
        """Store bytes unless an identical image exists. Returns the stored row.

        When the digest is already present the existing row is returned
        unchanged; the new mime type is discarded.
        """
        digest = compute_digest(data)
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO images (hash, data, mime_type, size, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(hash) DO NOTHING
                """,
                (digest, data, mime_type, len(data), format_timestamp(utc_now())),
            )
            row = conn.execute(
                f"SELECT {_METADATA_COLUMNS} FROM images WHERE hash = ?", (digest,)
            ).fetchone()

        metadata = ImageMetadata.from_row(row)
        if cursor.rowcount == 0:
            logger.debug("Image %s already stored as id %d", digest[:12], metadata.id)
        else:
            logger.debug("Stored image %s as id %d (%d bytes)", digest[:12], metadata.id, len(data))
        return metadata

    def get_by_id(self, image_id: int) -> StoredImage:
        """Get an image with its bytes by ID."""
        conn = self._get_connection()
        cursor = conn.execute("SELECT * FROM images WHERE id = ?", (image_id,))
        row = cursor.fetchone()
        if row is None:
            raise ImageNotFoundError(f"Image with id {image_id} not found")
        return StoredImage.from_row(row)

    def get_by_hash(self, digest: str) -> StoredImage | None:
        """Get an image by digest, or None if not stored."""
        conn = self._get_connection()
        cursor = conn.execute("SELECT * FROM images WHERE hash = ?", (digest.lower(),))
        row = cursor.fetchone()
        if row is None:
            return None
        return StoredImage.from_row(row)

    def find_orphans(self) -> list[ImageMetadata]:
        """Get images that no conversation references."""
        conn = self._get_connection()
        cursor = conn.execute(
            f"""
            SELECT {_METADATA_COLUMNS} FROM images i
            WHERE NOT EXISTS (SELECT 1 FROM image_references r WHERE r.image_id = i.id)
            ORDER BY i.id
            """
        )
        return [ImageMetadata.from_row(row) for row in cursor.fetchall()]

    def delete_orphans(self) -> int:
        """Delete every image with no references. Returns count deleted.

        Scan and delete are a single statement inside a write transaction, so a
        concurrent reference insert commits either before or after the reap.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM images
                WHERE NOT EXISTS (
                    SELECT 1 FROM image_references r WHERE r.image_id = images.id
                )
                """
            )
            deleted = cursor.rowcount
        if deleted:
            logger.info("Deleted %d orphaned image(s)", deleted)
        return deleted

    def delete(self, image_id: int) -> bool:
        """Delete one image and, by cascade, its references."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM images WHERE id = ?", (image_id,))
            return cursor.rowcount > 0

    def stats(self) -> ImageStats:
        """Get the image count and total stored bytes."""
        conn = self._get_connection()
        row = conn.execute("SELECT COUNT(*), COALESCE(SUM(size), 0) FROM images").fetchone()
        return ImageStats(count=row[0], total_bytes=row[1])
