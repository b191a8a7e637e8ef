"""MCP server implementation for Chatvault."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from chatvault.config import load_config
from chatvault.core.exceptions import (
    ChatVaultError,
    ImageNotFoundError,
    InvalidImageError,
    MigrationError,
    StoreUnavailableError,
)
from chatvault.core.storage import ChatRepository

logger = logging.getLogger(__name__)

server = Server("chatvault")


def _get_repo() -> ChatRepository:
    """Get a repository for the configured database."""
    return ChatRepository.from_config(load_config())


def _decode_data(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"'data' is not valid base64: {e}") from e


def _error_kind(error: ChatVaultError) -> str:
    if isinstance(error, ImageNotFoundError):
        return "not_found"
    if isinstance(error, StoreUnavailableError):
        return "unavailable"
    if isinstance(error, MigrationError):
        return "migration"
    if isinstance(error, InvalidImageError):
        return "invalid"
    return "error"


_CONVERSATION_ID = {"type": "string", "description": "Conversation ID"}
_IMAGE_DATA = {"type": "string", "description": "Image bytes, base64 encoded"}


@server.list_tools()  # type: ignore[no-untyped-call, untyped-decorator]
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="chatvault_calculate_hash",
            description="Compute the SHA-256 hex digest used to deduplicate images.",
            inputSchema={
                "type": "object",
                "properties": {"data": _IMAGE_DATA},
                "required": ["data"],
            },
        ),
        Tool(
            name="chatvault_store_image",
            description=(
                "Store an image and attach it to a conversation. Identical bytes are "
                "stored once; the first stored mime type is kept."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "data": _IMAGE_DATA,
                    "mime_type": {"type": "string", "description": "e.g. image/png"},
                    "conversation_id": _CONVERSATION_ID,
                },
                "required": ["data", "mime_type", "conversation_id"],
            },
        ),
        Tool(
            name="chatvault_get_image",
            description="Get a stored image by ID, bytes included (base64).",
            inputSchema={
                "type": "object",
                "properties": {"image_id": {"type": "integer", "description": "Image ID"}},
                "required": ["image_id"],
            },
        ),
        Tool(
            name="chatvault_get_image_by_hash",
            description="Get image metadata by digest. Returns null when not stored.",
            inputSchema={
                "type": "object",
                "properties": {"hash": {"type": "string", "description": "SHA-256 hex digest"}},
                "required": ["hash"],
            },
        ),
        Tool(
            name="chatvault_get_conversation_images",
            description="List the images attached to a conversation, oldest first.",
            inputSchema={
                "type": "object",
                "properties": {"conversation_id": _CONVERSATION_ID},
                "required": ["conversation_id"],
            },
        ),
        Tool(
            name="chatvault_delete_conversation_images",
            description=(
                "Remove all image references of a conversation. Images stay stored "
                "until chatvault_cleanup_orphaned_images runs."
            ),
            inputSchema={
                "type": "object",
                "properties": {"conversation_id": _CONVERSATION_ID},
                "required": ["conversation_id"],
            },
        ),
        Tool(
            name="chatvault_cleanup_orphaned_images",
            description="Delete images no conversation references. Returns the count deleted.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="chatvault_get_image_stats",
            description="Get the number of stored images and their total size in bytes.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def dispatch(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Run a tool synchronously and build its JSON result."""
    try:
        if name == "chatvault_calculate_hash":
            return {"hash": ChatRepository.calculate_hash(_decode_data(arguments["data"]))}
        elif name == "chatvault_store_image":
            return _handle_store_image(
                _decode_data(arguments["data"]),
                arguments["mime_type"],
                arguments["conversation_id"],
            )
        elif name == "chatvault_get_image":
            return _handle_get_image(int(arguments["image_id"]))
        elif name == "chatvault_get_image_by_hash":
            return _handle_get_image_by_hash(arguments["hash"])
        elif name == "chatvault_get_conversation_images":
            return _handle_conversation_images(arguments["conversation_id"])
        elif name == "chatvault_delete_conversation_images":
            return _handle_delete_conversation_images(arguments["conversation_id"])
        elif name == "chatvault_cleanup_orphaned_images":
            return _handle_cleanup()
        elif name == "chatvault_get_image_stats":
            return _handle_stats()
        return {"error": f"Unknown tool: {name}", "kind": "error"}
    except ChatVaultError as e:
        if isinstance(e, MigrationError):
            logger.error("Schema migration failed: %s", e)
        return {"error": str(e), "kind": _error_kind(e)}
    except KeyError as e:
        return {"error": f"Missing argument: {e.args[0]}", "kind": "invalid"}
    except (TypeError, ValueError) as e:
        return {"error": f"Invalid argument: {e}", "kind": "invalid"}


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    result = await asyncio.to_thread(dispatch, name, arguments)
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


def _handle_store_image(data: bytes, mime_type: str, conversation_id: str) -> dict[str, Any]:
    """Handle chatvault_store_image tool."""
    with _get_repo() as repo:
        return {"image": repo.store_image(data, mime_type, conversation_id).to_dict()}


def _handle_get_image(image_id: int) -> dict[str, Any]:
    """Handle chatvault_get_image tool."""
    with _get_repo() as repo:
        image = repo.get_image(image_id)
        return {
            "image": {
                **image.metadata.to_dict(),
                "data": base64.b64encode(image.data).decode("ascii"),
            }
        }


def _handle_get_image_by_hash(digest: str) -> dict[str, Any]:
    """Handle chatvault_get_image_by_hash tool."""
    with _get_repo() as repo:
        metadata = repo.get_image_by_hash(digest)
        return {"image": metadata.to_dict() if metadata else None}


def _handle_conversation_images(conversation_id: str) -> dict[str, Any]:
    """Handle chatvault_get_conversation_images tool."""
    with _get_repo() as repo:
        return {"images": [m.to_dict() for m in repo.get_conversation_images(conversation_id)]}


def _handle_delete_conversation_images(conversation_id: str) -> dict[str, Any]:
    """Handle chatvault_delete_conversation_images tool."""
    with _get_repo() as repo:
        return {"removed": repo.delete_conversation_images(conversation_id)}


def _handle_cleanup() -> dict[str, Any]:
    """Handle chatvault_cleanup_orphaned_images tool."""
    with _get_repo() as repo:
        return {"deleted": repo.cleanup_orphaned_images()}


def _handle_stats() -> dict[str, Any]:
    """Handle chatvault_get_image_stats tool."""
    with _get_repo() as repo:
        stats = repo.get_image_stats()
        return {"count": stats.count, "total_bytes": stats.total_bytes}


async def serve() -> None:
    """Run the MCP server.

    The schema is migrated before the server starts accepting calls; a failed
    migration aborts startup.
    """
    with _get_repo() as repo:
        repo.migrate()
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
