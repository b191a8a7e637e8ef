"""
Forward-only schema migrations.

Each Migration is an immutable, versioned list of statements. The ledger table
``migration_metadata`` records every applied version, so a migration runs at
most once over the lifetime of a database:

    ledger = MigrationLedger()
    ledger.apply_all(conn)   # no-op when the schema is current

Versions must be contiguous from 1. Each version runs in its own
``BEGIN IMMEDIATE`` transaction together with its ledger record; a failing
statement rolls the whole version back and raises MigrationError.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass

from chatvault.core.exceptions import MigrationError
from chatvault.core.models import MigrationRecord, format_timestamp, utc_now

logger = logging.getLogger(__name__)

_LEDGER_SCHEMA = """
CREATE TABLE IF NOT EXISTS migration_metadata (
    version INTEGER UNIQUE NOT NULL,
    description TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""


@dataclass(frozen=True)
class Migration:
    """One named, versioned, one-way schema change."""

    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        1,
        "create_images_table",
        (
            """
            CREATE TABLE images (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                hash TEXT UNIQUE NOT NULL,
                data BLOB NOT NULL,
                mime_type TEXT NOT NULL,
                size INTEGER NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
        ),
    ),
    Migration(
        2,
        "create_image_references_table",
        (
            """
            CREATE TABLE image_references (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                image_id INTEGER NOT NULL,
                conversation_id TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (image_id) REFERENCES images (id) ON DELETE CASCADE,
                UNIQUE (image_id, conversation_id)
            )
            """,
        ),
    ),
    Migration(
        3,
        "create_images_hash_index",
        ("CREATE INDEX idx_images_hash ON images(hash)",),
    ),
    Migration(
        4,
        "create_image_references_conversation_index",
        ("CREATE INDEX idx_image_references_conversation ON image_references(conversation_id)",),
    ),
    Migration(
        5,
        "create_app_settings_table",
        (
            """
            CREATE TABLE app_settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                key TEXT UNIQUE NOT NULL,
                value TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
        ),
    ),
    Migration(
        6,
        "create_conversations_table",
        (
            """
            CREATE TABLE conversations (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                model TEXT NOT NULL,
                enabled_tools TEXT,
                archived INTEGER NOT NULL DEFAULT 0,
                archived_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
        ),
    ),
    Migration(
        7,
        "create_conversation_messages_table",
        (
            """
            CREATE TABLE conversation_messages (
                id TEXT PRIMARY KEY,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                model TEXT,
                image_ids TEXT,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (conversation_id) REFERENCES conversations (id) ON DELETE CASCADE
            )
            """,
        ),
    ),
    Migration(
        8,
        "create_models_cache_table",
        (
            """
            CREATE TABLE models_cache (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                provider_key TEXT UNIQUE NOT NULL,
                models_data TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
        ),
    ),
    Migration(
        9,
        "create_favorite_models_table",
        (
            """
            CREATE TABLE favorite_models (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                provider_key TEXT NOT NULL,
                model_id TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (provider_key, model_id)
            )
            """,
        ),
    ),
    Migration(
        10,
        "create_indexes",
        (
            "CREATE INDEX idx_conversations_archived ON conversations(archived)",
            "CREATE INDEX idx_conversations_updated_at ON conversations(updated_at)",
            "CREATE INDEX idx_conversation_messages_conversation_id "
            "ON conversation_messages(conversation_id)",
            "CREATE INDEX idx_conversation_messages_timestamp ON conversation_messages(timestamp)",
            "CREATE INDEX idx_models_cache_timestamp ON models_cache(timestamp)",
            "CREATE INDEX idx_favorite_models_provider_key ON favorite_models(provider_key)",
        ),
    ),
    Migration(
        11,
        "add_tool_fields_to_conversation_messages",
        (
            "ALTER TABLE conversation_messages ADD COLUMN tool_name TEXT",
            "ALTER TABLE conversation_messages ADD COLUMN tool_call TEXT",
            "ALTER TABLE conversation_messages ADD COLUMN tool_result TEXT",
        ),
    ),
)


class MigrationLedger:
    """Applies an ordered list of migrations exactly once each."""

    def __init__(self, migrations: Sequence[Migration] = MIGRATIONS) -> None:
        versions = [m.version for m in migrations]
        if versions != list(range(1, len(versions) + 1)):
            raise ValueError(f"Migration versions must be contiguous from 1, got {versions}")
        self._migrations = tuple(migrations)

    @property
    def migrations(self) -> tuple[Migration, ...]:
        return self._migrations

    @property
    def latest_version(self) -> int:
        return len(self._migrations)

    def applied(self, conn: sqlite3.Connection) -> list[MigrationRecord]:
        """Get the recorded migrations in version order."""
        self._ensure_ledger(conn)
        cursor = conn.execute(
            "SELECT version, description, applied_at FROM migration_metadata ORDER BY version"
        )
        return [MigrationRecord.from_row(row) for row in cursor.fetchall()]

    def current_version(self, conn: sqlite3.Connection) -> int:
        """Get the highest applied version (0 for an empty database)."""
        self._ensure_ledger(conn)
        return self._read_version(conn)

    def pending(self, conn: sqlite3.Connection) -> list[Migration]:
        """Get the migrations not yet applied."""
        current = self.current_version(conn)
        return [m for m in self._migrations if m.version > current]

    def apply_all(self, conn: sqlite3.Connection) -> list[Migration]:
        """Bring the schema to the latest version. Returns the migrations applied now.

        The connection must be in autocommit mode (``isolation_level=None``) so
        that each version's transaction is controlled here.
        """
        self._ensure_ledger(conn)
        current = self._read_version(conn)
        applied: list[Migration] = []
        for migration in self._migrations:
            if migration.version <= current:
                continue
            if self._apply(conn, migration):
                applied.append(migration)
        if applied:
            logger.info(
                "Schema migrated to version %d (%d applied)", self.latest_version, len(applied)
            )
        return applied

    def _apply(self, conn: sqlite3.Connection, migration: Migration) -> bool:
        """Apply one migration unless already recorded.

        A lock timeout on BEGIN propagates as sqlite3.OperationalError: nothing
        has run yet, so the caller may retry.
        """
        conn.execute("BEGIN IMMEDIATE")
        try:
            # Re-read inside the write lock: another process may have migrated.
            current = self._read_version(conn)
            if migration.version <= current:
                conn.execute("ROLLBACK")
                return False

            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO migration_metadata (version, description, applied_at) "
                "VALUES (?, ?, ?)",
                (migration.version, migration.description, format_timestamp(utc_now())),
            )
            conn.execute("COMMIT")
        except (sqlite3.Error, MigrationError) as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(
                "Migration %d (%s) failed: %s", migration.version, migration.description, e
            )
            if isinstance(e, MigrationError):
                raise
            raise MigrationError(
                f"Migration {migration.version} ({migration.description}) failed: {e}"
            ) from e

        logger.info("Applied migration %d: %s", migration.version, migration.description)
        return True

    def _read_version(self, conn: sqlite3.Connection) -> int:
        """Read and check the recorded versions."""
        versions = [
            row[0]
            for row in conn.execute("SELECT version FROM migration_metadata ORDER BY version")
        ]
        if versions != list(range(1, len(versions) + 1)):
            raise MigrationError(f"Migration ledger is not contiguous: {versions}")
        if len(versions) > self.latest_version:
            raise MigrationError(
                f"Database schema version {len(versions)} is newer than "
                f"supported version {self.latest_version}"
            )
        return len(versions)

    @staticmethod
    def _ensure_ledger(conn: sqlite3.Connection) -> None:
        conn.execute(_LEDGER_SCHEMA)
