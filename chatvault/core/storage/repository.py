"""Repository that coordinates all storage operations."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from chatvault.core.exceptions import MigrationError, StoreUnavailableError
from chatvault.core.hashing import compute_digest
from chatvault.core.migrations import Migration, MigrationLedger
from chatvault.core.models import ImageMetadata, ImageStats, MigrationRecord, StoredImage
from chatvault.core.storage.conversations import ConversationStorage
from chatvault.core.storage.images import ImageStorage
from chatvault.core.storage.models_cache import ModelsCacheStorage
from chatvault.core.storage.references import ReferenceStorage
from chatvault.core.storage.settings import SettingsStorage

if TYPE_CHECKING:
    from chatvault.config import StoreConfig

logger = logging.getLogger(__name__)

_UNAVAILABLE_MARKERS = ("unable to open", "locked", "busy", "disk i/o error")


def _is_unavailable(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _UNAVAILABLE_MARKERS)


class ChatRepository:
    """Facade that coordinates images, references, conversations, settings and caches.

    Each thread gets its own connection, opened lazily; opening it brings the
    schema to the latest migration before anything else runs. Transactions are
    therefore per thread, and writers from different threads are serialized by
    SQLite's write lock. A failed migration is remembered and re-raised on
    every later call.
    """

    def __init__(
        self,
        db_path: Path,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
        models_cache_ttl_seconds: int = 60 * 60,
        migrations: Sequence[Migration] | None = None,
    ) -> None:
        self._db_path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._wal_mode = wal_mode
        self._ledger = MigrationLedger(migrations) if migrations is not None else MigrationLedger()
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._migration_error: MigrationError | None = None

        self.images = ImageStorage(self._get_connection, self.transaction)
        self.references = ReferenceStorage(self._get_connection, self.transaction)
        self.conversations = ConversationStorage(self._get_connection, self.transaction)
        self.settings = SettingsStorage(self._get_connection, self.transaction)
        self.models_cache = ModelsCacheStorage(
            self._get_connection, self.transaction, models_cache_ttl_seconds
        )

    @classmethod
    def from_config(cls, config: StoreConfig) -> ChatRepository:
        """Create a repository from a StoreConfig."""
        return cls(
            config.db_path,
            busy_timeout_ms=config.busy_timeout_ms,
            wal_mode=config.wal_mode,
            models_cache_ttl_seconds=config.models_cache_ttl_seconds,
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def ledger(self) -> MigrationLedger:
        return self._ledger

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create this thread's connection, migrating the schema on first open."""
        if self._migration_error is not None:
            raise self._migration_error
        conn: sqlite3.Connection | None = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._open()
            try:
                self._ledger.apply_all(conn)
            except MigrationError as e:
                conn.close()
                self._migration_error = e
                raise
            except sqlite3.DatabaseError as e:
                conn.close()
                raise StoreUnavailableError(f"Cannot migrate {self._db_path}: {e}") from e
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _open(self) -> sqlite3.Connection:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # Only close() touches a connection from a thread other than its owner
            conn = sqlite3.connect(
                self._db_path,
                timeout=self._busy_timeout_ms / 1000,
                isolation_level=None,
                check_same_thread=False,
            )
        except (OSError, sqlite3.DatabaseError) as e:
            raise StoreUnavailableError(f"Cannot open database {self._db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            if self._wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.DatabaseError as e:
            conn.close()
            raise StoreUnavailableError(f"Cannot open database {self._db_path}: {e}") from e
        logger.debug("Opened database %s", self._db_path)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one write transaction (``BEGIN IMMEDIATE``).

        Nested use on the same thread joins the enclosing transaction. Lock timeouts surface as
        StoreUnavailableError; everything else rolls back and propagates.
        """
        conn = self._get_connection()
        if conn.in_transaction:
            yield conn
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            if _is_unavailable(e):
                raise StoreUnavailableError(f"Database is busy: {e}") from e
            raise

        try:
            yield conn
        except BaseException as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            if isinstance(e, sqlite3.OperationalError) and _is_unavailable(e):
                raise StoreUnavailableError(f"Database is busy: {e}") from e
            raise

        try:
            conn.execute("COMMIT")
        except sqlite3.OperationalError as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            if _is_unavailable(e):
                raise StoreUnavailableError(f"Database is busy: {e}") from e
            raise

    def migrate(self) -> None:
        """Open the database now, applying pending migrations."""
        self._get_connection()

    def migration_records(self) -> list[MigrationRecord]:
        """Get the applied migrations, migrating first if needed."""
        return self._ledger.applied(self._get_connection())

    def close(self) -> None:
        """Close the connections of every thread."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
            self._local = threading.local()

    def __enter__(self) -> ChatRepository:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    # Image command surface

    @staticmethod
    def calculate_hash(data: bytes) -> str:
        """Compute the digest used as the deduplication key."""
        return compute_digest(data)

    def store_image(self, data: bytes, mime_type: str, conversation_id: str) -> ImageMetadata:
        """Store an image (or reuse an identical one) and attach it to a conversation."""
        with self.transaction():
            metadata = self.images.store_or_get(data, mime_type)
            self.references.add(metadata.id, conversation_id)
        return metadata

    def get_image(self, image_id: int) -> StoredImage:
        """Get an image with its bytes. Raises ImageNotFoundError."""
        return self.images.get_by_id(image_id)

    def get_image_by_hash(self, digest: str) -> ImageMetadata | None:
        """Get image metadata by digest, or None."""
        image = self.images.get_by_hash(digest)
        return image.metadata if image is not None else None

    def get_conversation_images(self, conversation_id: str) -> list[ImageMetadata]:
        return self.references.list_for_conversation(conversation_id)

    def delete_conversation_images(self, conversation_id: str) -> int:
        """Drop a conversation's image references. Orphans are left for cleanup."""
        return self.references.remove_all_for_conversation(conversation_id)

    def detach_image(self, image_id: int, conversation_id: str) -> bool:
        """Drop one image reference of a conversation. Returns False if it was not attached."""
        return self.references.remove(image_id, conversation_id)

    def cleanup_orphaned_images(self) -> int:
        return self.images.delete_orphans()

    def get_image_stats(self) -> ImageStats:
        return self.images.stats()

    # Conversations

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation, its messages and its image references together."""
        with self.transaction():
            removed_refs = self.references.remove_all_for_conversation(conversation_id)
            deleted = self.conversations.delete(conversation_id)
        logger.debug(
            "Deleted conversation %s (%d image reference(s))", conversation_id, removed_refs
        )
        return deleted

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics."""
        image_stats = self.images.stats()
        return {
            "images": image_stats.count,
            "total_bytes": image_stats.total_bytes,
            "references": self.references.count(),
            "conversations": self.conversations.count(),
            "messages": self.conversations.count_messages(),
            "schema_version": self._ledger.current_version(self._get_connection()),
        }
