"""
MCP server for Chatvault.

Exposes the image store's command contracts via the Model Context Protocol.

Tools:
    - chatvault_calculate_hash: Digest of base64 bytes
    - chatvault_store_image: Store and attach an image to a conversation
    - chatvault_get_image: Fetch an image with its bytes
    - chatvault_get_image_by_hash: Look up an image by digest
    - chatvault_get_conversation_images: List a conversation's images
    - chatvault_delete_conversation_images: Drop a conversation's references
    - chatvault_cleanup_orphaned_images: Delete unreferenced images
    - chatvault_get_image_stats: Image count and total size

Usage:
    Install: pip install chatvault
    Run: mcp-server-chatvault
"""

import asyncio
import logging

from chatvault.log import configure_logging
from chatvault.mcp.server import serve as _serve


def serve() -> None:
    """Entry point for the MCP server."""
    configure_logging(logging.INFO)
    asyncio.run(_serve())


__all__ = ["serve"]
