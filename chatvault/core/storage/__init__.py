"""
Storage layer: SQLite persistence for chat state and image attachments.

This module provides database operations split by concern:

Components:
    - ChatRepository: Main facade that owns the connection and transactions
    - ImageStorage: Content-addressed images table, deduplicated by digest
    - ReferenceStorage: Links between images and conversations
    - ConversationStorage: Conversations and their messages
    - SettingsStorage: Key/value application settings
    - ModelsCacheStorage: Cached provider model lists and favorite models

Database Schema (see core/migrations.py):
    images: id, hash UNIQUE, data, mime_type, size, created_at
    image_references: id, image_id -> images ON DELETE CASCADE, conversation_id,
                      created_at, UNIQUE(image_id, conversation_id)
    migration_metadata: version UNIQUE, description, applied_at

The database is a single file in the per-user data directory by default.
"""

from chatvault.core.storage.conversations import ConversationStorage
from chatvault.core.storage.images import ImageStorage
from chatvault.core.storage.models_cache import ModelsCacheStorage
from chatvault.core.storage.references import ReferenceStorage
from chatvault.core.storage.repository import ChatRepository
from chatvault.core.storage.settings import SettingsStorage

__all__ = [
    "ChatRepository",
    "ImageStorage",
    "ReferenceStorage",
    "ConversationStorage",
    "SettingsStorage",
    "ModelsCacheStorage",
]
