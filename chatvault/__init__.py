"""
Chatvault: local persistence for a desktop chat application.

Chatvault stores conversations, messages, settings and cached model lists in a
single SQLite file, and keeps image attachments in a content-addressed store:
- Identical images are stored once, keyed by their SHA-256 digest
- Each conversation holds at most one reference to a given image
- Images no longer referenced anywhere can be reclaimed

Usage:
    from chatvault.config import get_default_db_path
    from chatvault.core import ChatRepository

    with ChatRepository(get_default_db_path()) as repo:
        meta = repo.store_image(png_bytes, "image/png", "conversation-1")
        repo.get_conversation_images("conversation-1")
"""

__version__ = "0.1.0"
