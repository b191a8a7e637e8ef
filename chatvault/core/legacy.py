"""One-shot import of the pre-SQL key/value snapshot.

Older releases kept their state as JSON strings under fixed keys in a
key/value store. import_legacy_snapshot() copies such a snapshot into the
database in a single transaction and records that it ran, so a second call
is a no-op.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from chatvault.core.exceptions import LegacyImportError
from chatvault.core.models import Conversation, Message, MessageRole
from chatvault.core.storage import ChatRepository
from chatvault.core.storage.settings import APP_SETTINGS, SELECTED_CONVERSATION, WINDOW_GEOMETRY

logger = logging.getLogger(__name__)

LEGACY_IMPORT_MARKER = "legacy_import_version"
LEGACY_IMPORT_VERSION = 2

LEGACY_KEYS = {
    "conversations": "chatalyst_conversations",
    "selected_conversation": "chatalyst_selected_conversation",
    "settings": "chatalyst-settings",
    "models_cache": "chatalyst-models-cache",
    "favorite_models": "chatalyst-favorite-models",
    "window_geometry": "chatalyst_window_geometry",
}


@dataclass
class LegacyImportStats:
    """Counts from a legacy snapshot import."""

    conversations: int = 0
    messages: int = 0
    settings: int = 0
    models_cache_entries: int = 0
    favorite_providers: int = 0
    skipped: bool = False


def _decode(value: Any) -> Any:
    """Snapshot values are usually JSON strings; accept decoded values too."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _from_epoch_ms(value: int | float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _conversation_from_legacy(raw: dict[str, Any]) -> Conversation:
    messages = [
        Message(
            id=str(m["id"]),
            role=MessageRole(m.get("role", "user")),
            content=m.get("content", ""),
            timestamp=int(m.get("timestamp", 0)),
            model=m.get("model") or None,
            image_ids=m.get("imageIds"),
        )
        for m in raw.get("messages") or []
    ]
    created = _from_epoch_ms(raw.get("createdAt")) or datetime.now(timezone.utc)
    return Conversation(
        id=str(raw["id"]),
        title=raw.get("title", ""),
        model=raw.get("model") or "",
        created_at=created,
        updated_at=_from_epoch_ms(raw.get("updatedAt")) or created,
        enabled_tools=raw.get("enabledTools"),
        archived=bool(raw.get("archived", False)),
        archived_at=_from_epoch_ms(raw.get("archivedAt")),
        messages=messages,
    )


def import_legacy_snapshot(repo: ChatRepository, snapshot: dict[str, Any]) -> LegacyImportStats:
    """Import a legacy key/value snapshot unless an import already ran.

    Args:
        repo: Target repository
        snapshot: Mapping of legacy keys (see LEGACY_KEYS) to stored values

    Returns:
        LegacyImportStats with counts of imported records

    Raises:
        LegacyImportError: If a record is malformed. Nothing is imported.
    """
    stats = LegacyImportStats()
    try:
        with repo.transaction():
            if repo.settings.get(LEGACY_IMPORT_MARKER) is not None:
                stats.skipped = True
                return stats
            _import_records(repo, snapshot, stats)
            repo.settings.set(LEGACY_IMPORT_MARKER, str(LEGACY_IMPORT_VERSION))
    except (KeyError, TypeError, ValueError, AttributeError, sqlite3.IntegrityError) as e:
        raise LegacyImportError(f"Malformed legacy snapshot: {e!r}") from e

    logger.info(
        "Imported %d conversation(s) and %d message(s) from legacy snapshot",
        stats.conversations,
        stats.messages,
    )
    return stats


def _import_records(
    repo: ChatRepository, snapshot: dict[str, Any], stats: LegacyImportStats
) -> None:
    raw_conversations = _decode(snapshot.get(LEGACY_KEYS["conversations"])) or []
    conversations = [_conversation_from_legacy(raw) for raw in raw_conversations]
    repo.conversations.save_all(conversations)
    stats.conversations = len(conversations)
    stats.messages = sum(len(c.messages) for c in conversations)

    selected = snapshot.get(LEGACY_KEYS["selected_conversation"])
    if selected:
        repo.settings.set(SELECTED_CONVERSATION, str(_decode(selected)))
        stats.settings += 1

    for legacy_key, key in (("settings", APP_SETTINGS), ("window_geometry", WINDOW_GEOMETRY)):
        value = snapshot.get(LEGACY_KEYS[legacy_key])
        if value is not None:
            repo.settings.set_json(key, _decode(value))
            stats.settings += 1

    models_cache = _decode(snapshot.get(LEGACY_KEYS["models_cache"])) or {}
    for provider_key, entry in models_cache.items():
        repo.models_cache.put(provider_key, entry.get("models", []), int(entry["timestamp"]))
        stats.models_cache_entries += 1

    favorites = _decode(snapshot.get(LEGACY_KEYS["favorite_models"])) or {}
    for provider_key, model_ids in favorites.items():
        repo.models_cache.set_favorites(provider_key, model_ids)
        stats.favorite_providers += 1
