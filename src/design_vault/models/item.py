"""
Gallery item models for Design Vault.

This module contains the persisted record shape (DatabaseFile) and the
canonical in-memory unit rendered by the gallery (GalleryItem), plus the
small result types returned by the Remote Data Gateway.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class MediaType(str, Enum):
    """Kind of media held by a gallery item."""

    IMAGE = "image"
    VIDEO = "video"
    GIF = "gif"

    @classmethod
    def from_mime(cls, mime_type: str | None) -> "MediaType":
        """Derive the media type from a MIME type."""
        mime = (mime_type or "").lower()
        if mime.startswith("video/"):
            return cls.VIDEO
        if mime == "image/gif":
            return cls.GIF
        return cls.IMAGE


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp from the persistence layer into an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        parsed = datetime.now(UTC)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_tags(tags: Any) -> tuple[str, ...]:
    """Coerce a raw tags value into a duplicate-free tuple without empty entries."""
    if not isinstance(tags, (list, tuple)):
        return ()
    cleaned = (tag.strip() for tag in tags if isinstance(tag, str))
    return tuple(dict.fromkeys(tag for tag in cleaned if tag))


@dataclass
class DatabaseFile:
    """
    Represents a row of the uploaded files table.

    ``file_path`` is a fully resolvable public URL, not a relative path.
    """

    id: str
    title: str
    file_path: str
    file_type: str
    file_size: int
    tags: list[str]
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DatabaseFile":
        """
        Create DatabaseFile from a row returned by the REST endpoint.

        Args:
            data: Dictionary containing the row

        Returns:
            DatabaseFile instance
        """
        updated_at = data.get("updated_at")
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            file_path=data.get("file_path") or "",
            file_type=data.get("file_type") or "",
            file_size=int(data.get("file_size") or 0),
            tags=list(normalize_tags(data.get("tags"))),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(updated_at) if updated_at else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape used on the wire."""
        return {
            "id": self.id,
            "title": self.title,
            "file_path": self.file_path,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "tags": list(self.tags),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class GalleryItem:
    """
    The canonical unit displayed by the gallery.

    Items are immutable values; mutations produce modified copies through
    ``with_tags`` and ``with_title`` so snapshots taken before an optimistic
    change stay intact.
    """

    id: str
    url: str
    title: str
    tags: tuple[str, ...]
    type: MediaType
    date_added: datetime
    file_size: int | None = None
    mime_type: str | None = None

    @classmethod
    def from_database_file(cls, record: DatabaseFile | dict[str, Any]) -> "GalleryItem":
        """Build a gallery item from a persisted record."""
        if isinstance(record, dict):
            record = DatabaseFile.from_dict(record)
        return cls(
            id=record.id,
            url=record.file_path,
            title=record.title,
            tags=tuple(record.tags),
            type=MediaType.from_mime(record.file_type),
            date_added=record.created_at,
            file_size=record.file_size,
            mime_type=record.file_type or None,
        )

    def with_tags(self, tags: Iterable[str]) -> "GalleryItem":
        return replace(self, tags=tuple(dict.fromkeys(tag for tag in tags if tag)))

    def with_title(self, title: str) -> "GalleryItem":
        return replace(self, title=title)

    @property
    def has_tags(self) -> bool:
        return len(self.tags) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "tags": list(self.tags),
            "type": self.type.value,
            "date_added": self.date_added.isoformat(),
            "file_size": self.file_size,
            "mime_type": self.mime_type,
        }


@dataclass
class PageResult:
    """One window of the collection returned by a paginated load."""

    items: list[GalleryItem]
    total_count: int
    has_more: bool


@dataclass
class TagSuggestion:
    """Tags proposed for a freshly uploaded item."""

    tags: list[str] = field(default_factory=list)
    fallback: bool = False


@dataclass
class StorageStats:
    """Aggregate figures over the whole collection."""

    total_files: int = 0
    total_size: int = 0
    image_count: int = 0
    video_count: int = 0
    gif_count: int = 0

    def add(self, media_type: MediaType, size: int | None) -> None:
        self.total_files += 1
        self.total_size += size or 0
        if media_type is MediaType.VIDEO:
            self.video_count += 1
        elif media_type is MediaType.GIF:
            self.gif_count += 1
        else:
            self.image_count += 1
