"""Model list cache and favorite models storage operations."""

from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager
from typing import Any

from chatvault.core.models import ModelsCacheEntry


class ModelsCacheStorage:
    """Storage for per-provider model lists and the user's favorite models.

    Entries are keyed by ``"<provider>:<base_url>"`` (see make_provider_key).
    """

    def __init__(
        self,
        get_connection: Callable[[], sqlite3.Connection],
        transaction: Callable[[], AbstractContextManager[sqlite3.Connection]],
        ttl_seconds: int = 60 * 60,
    ) -> None:
        self._get_connection = get_connection
        self._transaction = transaction
        self._ttl_seconds = ttl_seconds

    def put(
        self, provider_key: str, models: list[dict[str, Any]], timestamp: int | None = None
    ) -> None:
        """Cache the model list for a provider, replacing any previous entry."""
        timestamp = timestamp if timestamp is not None else int(time.time() * 1000)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO models_cache (provider_key, models_data, timestamp, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(provider_key) DO UPDATE SET
                    models_data = excluded.models_data,
                    timestamp = excluded.timestamp,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (provider_key, json.dumps(models), timestamp),
            )

    def get(self, provider_key: str, include_stale: bool = False) -> ModelsCacheEntry | None:
        """Get the cached entry for a provider, or None if missing or stale."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT provider_key, models_data, timestamp FROM models_cache WHERE provider_key = ?",
            (provider_key,),
        ).fetchone()
        if row is None:
            return None
        entry = ModelsCacheEntry.from_row(row)
        if not include_stale and entry.is_stale(self._ttl_seconds):
            return None
        return entry

    def load_all(self) -> dict[str, ModelsCacheEntry]:
        """Get every cached entry, stale or not."""
        conn = self._get_connection()
        cursor = conn.execute("SELECT provider_key, models_data, timestamp FROM models_cache")
        return {row["provider_key"]: ModelsCacheEntry.from_row(row) for row in cursor.fetchall()}

    def clear(self) -> int:
        """Delete all cached entries. Returns count deleted."""
        with self._transaction() as conn:
            return conn.execute("DELETE FROM models_cache").rowcount

    def get_favorites(self, provider_key: str) -> list[str]:
        """Get favorite model IDs for a provider in the order they were saved."""
        conn = self._get_connection()
        cursor = conn.execute(
            "SELECT model_id FROM favorite_models WHERE provider_key = ? ORDER BY id",
            (provider_key,),
        )
        return [row["model_id"] for row in cursor.fetchall()]

    def set_favorites(self, provider_key: str, model_ids: Iterable[str]) -> None:
        """Replace the favorite models of a provider."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM favorite_models WHERE provider_key = ?", (provider_key,))
            conn.executemany(
                """
                INSERT INTO favorite_models (provider_key, model_id) VALUES (?, ?)
                ON CONFLICT(provider_key, model_id) DO NOTHING
                """,
                [(provider_key, model_id) for model_id in model_ids],
            )
