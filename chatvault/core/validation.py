"""Image attachment validation: declared type, size and file signature."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from chatvault.core.exceptions import InvalidImageError

MAX_IMAGE_SIZE = 10 * 1024 * 1024

SUPPORTED_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
)


@dataclass(frozen=True)
class _Signature:
    magic: bytes
    mime_type: str
    name: str
    extra_check: Callable[[bytes], bool] | None = None


def _is_webp(head: bytes) -> bool:
    # RIFF container with "WEBP" at offset 8
    return len(head) >= 12 and head[8:12] == b"WEBP"


_SIGNATURES = (
    _Signature(b"\xff\xd8\xff", "image/jpeg", "JPEG"),
    _Signature(b"\x89PNG\r\n\x1a\n", "image/png", "PNG"),
    _Signature(b"GIF87a", "image/gif", "GIF87a"),
    _Signature(b"GIF89a", "image/gif", "GIF89a"),
    _Signature(b"RIFF", "image/webp", "WebP", _is_webp),
)


def _normalize(mime_type: str) -> str:
    mime_type = mime_type.lower()
    return "image/jpeg" if mime_type == "image/jpg" else mime_type


def is_supported_type(mime_type: str) -> bool:
    return mime_type.lower() in SUPPORTED_TYPES


def detect_image_type(data: bytes) -> str | None:
    """Detect the mime type from the leading magic bytes, or None if unknown."""
    head = data[:16]
    for sig in _SIGNATURES:
        if head.startswith(sig.magic) and (sig.extra_check is None or sig.extra_check(head)):
            return sig.mime_type
    return None


def format_file_size(size: int) -> str:
    """Format a byte count for display (e.g. '1.5 KB')."""
    if size == 0:
        return "0 Bytes"
    value = float(size)
    for unit in ("Bytes", "KB", "MB"):
        if value < 1024:
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{round(value, 2):g} GB"


def validate_image(data: bytes, mime_type: str, max_size: int = MAX_IMAGE_SIZE) -> str:
    """Check an attachment before storing it. Returns the detected mime type.

    The declared type must be supported, the payload must fit ``max_size``,
    and the file signature must match the declared type (``image/jpg`` and
    ``image/jpeg`` are equivalent).

    Raises:
        InvalidImageError: If any check fails.
    """
    if not is_supported_type(mime_type):
        raise InvalidImageError(
            f"Unsupported image type: {mime_type}. Supported types: {', '.join(SUPPORTED_TYPES)}"
        )
    if len(data) > max_size:
        raise InvalidImageError(
            f"Image too large: {format_file_size(len(data))}. "
            f"Maximum size: {format_file_size(max_size)}"
        )
    if not data:
        raise InvalidImageError("File is empty")

    detected = detect_image_type(data)
    if detected is None:
        raise InvalidImageError("File signature does not match any supported image format")
    if _normalize(mime_type) != detected:
        raise InvalidImageError(
            f"File type mismatch: declared as {mime_type} but detected as {detected}"
        )
    return detected
