"""
Core module: data models, exceptions, migrations and storage.

Models (models.py):
    - StoredImage / ImageMetadata: An attachment with or without its bytes
    - ImageReference: A conversation's link to a stored image
    - Conversation / Message: Chat history
    - MigrationRecord: An applied schema version

Exceptions (exceptions.py):
    - ChatVaultError: Base exception for all chatvault errors
    - ImageNotFoundError: Requested image doesn't exist
    - MigrationError: Schema migration failed, the database is unusable
    - StoreUnavailableError: Database cannot be opened or is locked

Storage (storage/):
    - ChatRepository: Facade for all database operations
"""

from chatvault.core.exceptions import (
    ChatVaultError,
    ConversationNotFoundError,
    ImageNotFoundError,
    InvalidImageError,
    LegacyImportError,
    MigrationError,
    StoreUnavailableError,
)
from chatvault.core.hashing import compute_digest
from chatvault.core.migrations import MIGRATIONS, Migration, MigrationLedger
from chatvault.core.models import (
    Conversation,
    ImageMetadata,
    ImageReference,
    ImageStats,
    Message,
    MessageRole,
    MigrationRecord,
    ModelsCacheEntry,
    StoredImage,
    make_provider_key,
)
from chatvault.core.storage import ChatRepository

__all__ = [
    # Models
    "StoredImage",
    "ImageMetadata",
    "ImageReference",
    "ImageStats",
    "Conversation",
    "Message",
    "MessageRole",
    "MigrationRecord",
    "ModelsCacheEntry",
    "make_provider_key",
    # Exceptions
    "ChatVaultError",
    "ImageNotFoundError",
    "ConversationNotFoundError",
    "InvalidImageError",
    "LegacyImportError",
    "MigrationError",
    "StoreUnavailableError",
    # Migrations
    "Migration",
    "MigrationLedger",
    "MIGRATIONS",
    # Storage
    "ChatRepository",
    "compute_digest",
]
