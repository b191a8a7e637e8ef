"""Integration tests for the MCP tool handlers."""

import asyncio
import base64
import json
import tempfile
from pathlib import Path

import pytest

from chatvault.core.hashing import compute_digest
from chatvault.mcp.server import call_tool, dispatch, list_tools


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture(autouse=True)
def db_env(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the server at a scratch database."""
    db_path = temp_dir / "chatvault.db"
    monkeypatch.setenv("CHATVAULT_DB_PATH", str(db_path))
    return db_path


class TestTools:
    """Tests for the tool list and dispatch."""

    def test_tool_names(self) -> None:
        tools = asyncio.run(list_tools())

        assert {t.name for t in tools} == {
            "chatvault_calculate_hash",
            "chatvault_store_image",
            "chatvault_get_image",
            "chatvault_get_image_by_hash",
            "chatvault_get_conversation_images",
            "chatvault_delete_conversation_images",
            "chatvault_cleanup_orphaned_images",
            "chatvault_get_image_stats",
        }

    def test_calculate_hash(self) -> None:
        result = dispatch("chatvault_calculate_hash", {"data": b64(b"abc")})

        assert result == {"hash": compute_digest(b"abc")}

    def test_store_and_fetch(self) -> None:
        stored = dispatch(
            "chatvault_store_image",
            {"data": b64(bytes([1, 2, 3])), "mime_type": "image/png", "conversation_id": "c1"},
        )["image"]

        fetched = dispatch("chatvault_get_image", {"image_id": stored["id"]})["image"]
        by_hash = dispatch("chatvault_get_image_by_hash", {"hash": stored["hash"]})["image"]
        listed = dispatch("chatvault_get_conversation_images", {"conversation_id": "c1"})

        assert base64.b64decode(fetched["data"]) == bytes([1, 2, 3])
        assert fetched["mimeType"] == "image/png"
        assert by_hash == stored
        assert [m["id"] for m in listed["images"]] == [stored["id"]]
        assert dispatch("chatvault_get_image_stats", {}) == {"count": 1, "total_bytes": 3}

    def test_detach_and_cleanup(self) -> None:
        dispatch(
            "chatvault_store_image",
            {"data": b64(b"orphan"), "mime_type": "image/gif", "conversation_id": "c1"},
        )

        assert dispatch("chatvault_cleanup_orphaned_images", {}) == {"deleted": 0}
        assert dispatch("chatvault_delete_conversation_images", {"conversation_id": "c1"}) == {
            "removed": 1
        }
        assert dispatch("chatvault_cleanup_orphaned_images", {}) == {"deleted": 1}

    def test_missing_hash_is_null(self) -> None:
        assert dispatch("chatvault_get_image_by_hash", {"hash": "f" * 64}) == {"image": None}

    def test_call_tool_returns_json_text(self) -> None:
        content = asyncio.run(call_tool("chatvault_get_image_stats", {}))

        assert json.loads(content[0].text) == {"count": 0, "total_bytes": 0}


class TestToolErrors:
    """Tests for error results."""

    def test_not_found(self) -> None:
        result = dispatch("chatvault_get_image", {"image_id": 404})

        assert result["kind"] == "not_found"
        assert "404" in result["error"]

    def test_invalid_base64(self) -> None:
        result = dispatch("chatvault_calculate_hash", {"data": "***not base64***"})

        assert result["kind"] == "invalid"

    def test_missing_argument(self) -> None:
        result = dispatch("chatvault_store_image", {"data": b64(b"x"), "mime_type": "image/png"})

        assert result == {"error": "Missing argument: conversation_id", "kind": "invalid"}

    def test_non_numeric_image_id(self) -> None:
        result = dispatch("chatvault_get_image", {"image_id": "abc"})

        assert result["kind"] == "invalid"
        assert result["error"].startswith("Invalid argument")

    def test_data_of_wrong_type(self) -> None:
        """Test that non-string data is an invalid-argument result, not a raised TypeError."""
        result = dispatch("chatvault_calculate_hash", {"data": 123})

        assert result["kind"] == "invalid"

    def test_unknown_tool(self) -> None:
        result = dispatch("chatvault_nope", {})

        assert result["kind"] == "error"
        assert "Unknown tool" in result["error"]

    def test_unavailable(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        blocked = temp_dir / "dir.db"
        blocked.mkdir()
        monkeypatch.setenv("CHATVAULT_DB_PATH", str(blocked))

        result = dispatch("chatvault_get_image_stats", {})

        assert result["kind"] == "unavailable"
