"""Application settings storage operations."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

SELECTED_CONVERSATION = "selected_conversation"
APP_SETTINGS = "app_settings"
WINDOW_GEOMETRY = "window_geometry"


class SettingsStorage:
    """Key/value storage for application settings."""

    def __init__(
        self,
        get_connection: Callable[[], sqlite3.Connection],
        transaction: Callable[[], AbstractContextManager[sqlite3.Connection]],
    ) -> None:
        self._get_connection = get_connection
        self._transaction = transaction

    def get(self, key: str) -> str | None:
        """Get a setting value, or None if unset."""
        conn = self._get_connection()
        row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Insert or update a setting."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )

    def delete(self, key: str) -> bool:
        """Delete a setting. Returns False if it was not set."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM app_settings WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def get_json(self, key: str) -> Any:
        """Get a JSON-encoded setting, or None if unset."""
        value = self.get(key)
        return json.loads(value) if value is not None else None

    def set_json(self, key: str, value: Any) -> None:
        """Store a setting as JSON."""
        self.set(key, json.dumps(value))

    def all(self) -> dict[str, str]:
        """Get every setting."""
        conn = self._get_connection()
        cursor = conn.execute("SELECT key, value FROM app_settings ORDER BY key")
        return {row["key"]: row["value"] for row in cursor.fetchall()}
