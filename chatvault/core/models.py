"""Data models for Chatvault."""

from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp for storage, always with microseconds so strings sort in time order."""
    return value.isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp (ISO-8601 or SQLite CURRENT_TIMESTAMP)."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _load_json(value: str | None) -> Any:
    return json.loads(value) if value is not None else None


class MessageRole(Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


@dataclass
class ImageMetadata:
    """A stored image without its bytes."""

    id: int
    hash: str
    mime_type: str
    size: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ImageMetadata:
        """Create ImageMetadata from a database row."""
        return cls(
            id=row["id"],
            hash=row["hash"],
            mime_type=row["mime_type"],
            size=row["size"],
            created_at=parse_timestamp(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "id": self.id,
            "hash": self.hash,
            "mimeType": self.mime_type,
            "size": self.size,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class StoredImage:
    """An image row, bytes included."""

    id: int
    hash: str
    data: bytes
    mime_type: str
    size: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> StoredImage:
        """Create a StoredImage from a database row."""
        return cls(
            id=row["id"],
            hash=row["hash"],
            data=bytes(row["data"]),
            mime_type=row["mime_type"],
            size=row["size"],
            created_at=parse_timestamp(row["created_at"]),
        )

    @property
    def metadata(self) -> ImageMetadata:
        return ImageMetadata(
            id=self.id,
            hash=self.hash,
            mime_type=self.mime_type,
            size=self.size,
            created_at=self.created_at,
        )


@dataclass
class ImageReference:
    """Link between a stored image and a conversation."""

    id: int
    image_id: int
    conversation_id: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ImageReference:
        """Create an ImageReference from a database row."""
        return cls(
            id=row["id"],
            image_id=row["image_id"],
            conversation_id=row["conversation_id"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class ImageStats:
    """Aggregate size of the content store."""

    count: int
    total_bytes: int

    def as_tuple(self) -> tuple[int, int]:
        return (self.count, self.total_bytes)


@dataclass
class MigrationRecord:
    """A schema version recorded in the migration ledger."""

    version: int
    description: str
    applied_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> MigrationRecord:
        """Create a MigrationRecord from a database row."""
        return cls(
            version=row["version"],
            description=row["description"],
            applied_at=parse_timestamp(row["applied_at"]),
        )


@dataclass
class Message:
    """A single chat message."""

    id: str
    role: MessageRole
    content: str
    timestamp: int
    model: str | None = None
    image_ids: list[int] | None = None
    # Tool call fields, present on tool messages only
    tool_name: str | None = None
    tool_call: Any = None
    tool_result: Any = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Message:
        """Create a Message from a database row."""
        return cls(
            id=row["id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            timestamp=row["timestamp"],
            model=row["model"],
            image_ids=_load_json(row["image_ids"]),
            tool_name=row["tool_name"],
            tool_call=_load_json(row["tool_call"]),
            tool_result=_load_json(row["tool_result"]),
        )


@dataclass
class Conversation:
    """A conversation and its messages."""

    id: str
    title: str
    model: str
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    enabled_tools: Any = None
    archived: bool = False
    archived_at: datetime | None = None
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row, messages: list[Message] | None = None) -> Conversation:
        """Create a Conversation from a database row."""
        return cls(
            id=row["id"],
            title=row["title"],
            model=row["model"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            enabled_tools=_load_json(row["enabled_tools"]),
            archived=bool(row["archived"]),
            archived_at=parse_timestamp(row["archived_at"]) if row["archived_at"] else None,
            messages=messages or [],
        )


@dataclass
class ModelsCacheEntry:
    """Cached model list for one provider endpoint."""

    provider_key: str
    models: list[dict[str, Any]]
    timestamp: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ModelsCacheEntry:
        """Create a ModelsCacheEntry from a database row."""
        return cls(
            provider_key=row["provider_key"],
            models=json.loads(row["models_data"]),
            timestamp=row["timestamp"],
        )

    def is_stale(self, ttl_seconds: int, now_ms: int | None = None) -> bool:
        """Check whether the entry is older than the given TTL."""
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        return now_ms - self.timestamp >= ttl_seconds * 1000


def make_provider_key(provider: str, base_url: str) -> str:
    """Build the cache key for a provider endpoint."""
    return f"{provider}:{base_url}"
