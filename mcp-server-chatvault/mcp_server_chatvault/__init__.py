"""MCP server for Chatvault - chat history and content-addressed image store."""

from chatvault.mcp import serve


def main() -> None:
    """Entry point for mcp-server-chatvault."""
    serve()


__all__ = ["main", "serve"]
