"""Chatvault custom exceptions."""


class ChatVaultError(Exception):
    """Base exception for Chatvault errors."""


class ImageNotFoundError(ChatVaultError):
    """Image not found in the content store."""


class ConversationNotFoundError(ChatVaultError):
    """Conversation not found."""


class MigrationError(ChatVaultError):
    """A schema migration failed; the database must not be used."""


class StoreUnavailableError(ChatVaultError):
    """The database file could not be opened or is locked. Safe to retry."""


class InvalidImageError(ChatVaultError):
    """Image bytes or mime type failed validation."""


class LegacyImportError(ChatVaultError):
    """A legacy snapshot is malformed; nothing was imported."""
