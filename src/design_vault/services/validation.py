"""
Input validation and sanitisation for uploads, updates and tags.

Validators raise ValidationError carrying the offending field so the API
and the gallery can surface field-level detail.
"""

import re
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

from ..config import get_max_file_size
from ..ui.handlers.error import ValidationError

SUPPORTED_IMAGE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
)

SUPPORTED_VIDEO_TYPES = (
    "video/mp4",
    "video/webm",
    "video/ogg",
    "video/avi",
    "video/mov",
    "video/quicktime",
    "video/x-msvideo",
    "video/3gpp",
    "video/3gpp2",
    "video/x-ms-wmv",
)

SUPPORTED_MIME_TYPES = SUPPORTED_IMAGE_TYPES + SUPPORTED_VIDEO_TYPES

MAX_TITLE_LENGTH = 200
MAX_TAGS = 20
MAX_TAG_LENGTH = 30
MAX_FILENAME_LENGTH = 100

_INVALID_TAG_CHARS = re.compile(r"[^a-z0-9-]")
_INVALID_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


def sanitize_tag(tag: str) -> str:
    """Lowercase, trim and strip everything except alphanumerics and hyphens."""
    return _INVALID_TAG_CHARS.sub("", tag.lower().strip())[:MAX_TAG_LENGTH]


def sanitize_tags(tags: Iterable[str]) -> list[str]:
    """Sanitise each tag, drop empty results and collapse duplicates (first wins)."""
    sanitized = (sanitize_tag(tag) for tag in tags if isinstance(tag, str))
    return list(dict.fromkeys(tag for tag in sanitized if tag))


def sanitize_filename(filename: str) -> str:
    cleaned = _INVALID_FILENAME_CHARS.sub("_", filename)
    return _REPEATED_UNDERSCORES.sub("_", cleaned)[:MAX_FILENAME_LENGTH]


def is_mov_filename(filename: str) -> bool:
    return filename.lower().endswith(".mov")


def is_supported_type(filename: str, content_type: str | None) -> bool:
    """MOV files are accepted whatever MIME type the client reported."""
    if is_mov_filename(filename):
        return True
    return (content_type or "").lower() in SUPPORTED_MIME_TYPES


def validate_upload(filename: str, size: int, content_type: str | None, max_size: int | None = None) -> None:
    """
    Validate a file before it is sent for upload.

    Args:
        filename: Original file name
        size: Size in bytes
        content_type: MIME type reported for the file
        max_size: Size limit, defaults to MAX_FILE_SIZE from configuration

    Raises:
        ValidationError: If the name is empty, the file too large or the type unsupported
    """
    if not filename or not filename.strip():
        raise ValidationError("File name is required", field="name")

    limit = max_size if max_size is not None else get_max_file_size()
    if size > limit:
        raise ValidationError(
            f"File size must be less than {limit // (1024 * 1024)}MB",
            field="size",
            code="file_too_large",
            details={"size": size, "max_size": limit},
        )

    if not is_supported_type(filename, content_type):
        raise ValidationError(
            f"Unsupported file type: {content_type or 'unknown'}",
            field="type",
            code="unsupported_file_type",
            details={"filename": filename},
        )


def validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title is required", field="title")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError("Title too long", field="title", details={"length": len(title)})
    return title


def validate_tag_list(tags: Any) -> list[str]:
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise ValidationError("Tags must be a list of strings", field="tags")
    if len(tags) > MAX_TAGS:
        raise ValidationError("Too many tags", field="tags", details={"count": len(tags)})
    return sanitize_tags(tags)


def validate_update_request(payload: Any) -> dict[str, Any]:
    """
    Validate a partial update body.

    Returns:
        The cleaned update containing only the provided fields, tags sanitised
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")

    update: dict[str, Any] = {}
    if payload.get("title") is not None:
        update["title"] = validate_title(payload["title"])
    if payload.get("tags") is not None:
        update["tags"] = validate_tag_list(payload["tags"])

    if not update:
        raise ValidationError("Nothing to update", field="body")
    return update


def validate_tag_request(payload: Any) -> tuple[str, str]:
    """Validate a tag generation body and return (filename, image_url)."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", field="body")

    filename = payload.get("filename")
    if not isinstance(filename, str) or not filename.strip():
        raise ValidationError("Filename is required", field="filename")

    image_url = payload.get("imageUrl")
    parsed = urlparse(image_url) if isinstance(image_url, str) else None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Valid image URL required", field="imageUrl")

    return filename, image_url
