"""
Pytest configuration and fixtures for Design Vault tests.
"""

import asyncio
import io
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest
from PIL import Image

from design_vault.models import GalleryItem, MediaType, PageResult, StorageStats, TagSuggestion
from design_vault.ui.handlers.error import DeleteError, DatabaseError, TagGenerationError, UploadError

BASE_DATE = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def make_item(
    item_id: str,
    title: str | None = None,
    tags: Sequence[str] = (),
    media_type: MediaType = MediaType.IMAGE,
    minutes_ago: int = 0,
    file_size: int | None = 1024,
) -> GalleryItem:
    """Build a gallery item; a larger ``minutes_ago`` means an older item."""
    mime_type = {MediaType.IMAGE: "image/png", MediaType.VIDEO: "video/mp4", MediaType.GIF: "image/gif"}[media_type]
    return GalleryItem(
        id=item_id,
        url=f"https://cdn.example.com/{item_id}.{mime_type.split('/')[1]}",
        title=title or f"Item {item_id}",
        tags=tuple(tags),
        type=media_type,
        date_added=BASE_DATE - timedelta(minutes=minutes_ago),
        file_size=file_size,
        mime_type=mime_type,
    )


def make_items(count: int, prefix: str = "item") -> list[GalleryItem]:
    """Newest-first items ``item-0`` .. ``item-{count-1}``."""
    return [make_item(f"{prefix}-{i}", minutes_ago=i) for i in range(count)]


def create_test_image(format_type: str = "PNG", size: tuple[int, int] = (100, 100), mode: str = "RGB") -> bytes:
    """Create a test image in memory."""
    image = Image.new(mode, size, color="red")
    buffer = io.BytesIO()
    image.save(buffer, format=format_type)
    return buffer.getvalue()


class FakeGateway:
    """
    In-memory stand-in for RemoteDataGateway.

    ``hold_updates`` / ``hold_loads`` park calls on events the test releases
    explicitly, so completion order can be controlled.
    """

    def __init__(self, items: Sequence[GalleryItem] = ()):
        self.items = list(items)
        self.calls: dict[str, int] = {}
        self.update_requests: list[tuple[str, str | None, list[str] | None]] = []
        self.deleted: list[str] = []
        self.fail_updates: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_loads = False
        self.fail_uploads = False
        self.suggested_tags: list[str] | None = None

        self.hold_updates = False
        self.pending_updates: list[asyncio.Event] = []
        self.hold_loads = False
        self.pending_loads: list[asyncio.Event] = []
        self._upload_counter = 0

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def _maybe_hold(self, hold: bool, pending: list[asyncio.Event]) -> None:
        if hold:
            event = asyncio.Event()
            pending.append(event)
            await event.wait()

    async def load_page(self, page: int, page_size: int = 20, filters=None) -> PageResult:
        self._count("load_page")
        await self._maybe_hold(self.hold_loads, self.pending_loads)
        if self.fail_loads:
            raise DatabaseError("load failed")
        offset = (page - 1) * page_size
        window = self.items[offset : offset + page_size]
        return PageResult(items=window, total_count=len(self.items), has_more=offset + len(window) < len(self.items))

    async def load_all(self) -> list[GalleryItem]:
        self._count("load_all")
        await self._maybe_hold(self.hold_loads, self.pending_loads)
        if self.fail_loads:
            raise DatabaseError("load failed")
        return list(self.items)

    async def get_all_tags(self) -> list[str]:
        self._count("get_all_tags")
        return sorted({tag for item in self.items for tag in item.tags})

    async def get_no_tag_count(self) -> int:
        self._count("get_no_tag_count")
        return sum(1 for item in self.items if not item.tags)

    async def get_storage_stats(self) -> StorageStats:
        self._count("get_storage_stats")
        stats = StorageStats()
        for item in self.items:
            stats.add(item.type, item.file_size)
        return stats

    async def get_item(self, item_id: str) -> GalleryItem | None:
        self._count("get_item")
        return next((item for item in self.items if item.id == item_id), None)

    async def aclose(self) -> None:
        self._count("aclose")

    def _replace(self, updated: GalleryItem) -> None:
        self.items = [updated if item.id == updated.id else item for item in self.items]

    async def update(self, item_id: str, title: str | None = None, tags: list[str] | None = None) -> GalleryItem:
        self._count("update")
        self.update_requests.append((item_id, title, tags))
        if item_id in self.fail_updates:
            await self._maybe_hold(self.hold_updates, self.pending_updates)
            raise DatabaseError("update failed", details={"item_id": item_id})
        item = next(item for item in self.items if item.id == item_id)
        if title is not None:
            item = item.with_title(title)
        if tags is not None:
            item = item.with_tags(tags)
        self._replace(item)
        # Applied on receipt; only the response is held back
        await self._maybe_hold(self.hold_updates, self.pending_updates)
        return item

    async def delete(self, item_id: str) -> None:
        self._count("delete")
        if item_id in self.fail_deletes:
            raise DeleteError("delete failed", details={"item_id": item_id})
        self.deleted.append(item_id)
        self.items = [item for item in self.items if item.id != item_id]

    async def upload(self, filename, data, content_type, title=None, tags=()) -> GalleryItem:
        self._count("upload")
        if self.fail_uploads:
            raise UploadError("upload failed", details={"filename": filename})
        self._upload_counter += 1
        item = GalleryItem(
            id=f"uploaded-{self._upload_counter}",
            url=f"https://cdn.example.com/{filename}",
            title=title or filename,
            tags=tuple(tags),
            type=MediaType.from_mime(content_type),
            date_added=BASE_DATE + timedelta(minutes=self._upload_counter),
            file_size=len(data),
            mime_type=content_type,
        )
        self.items.insert(0, item)
        return item

    async def generate_tags(self, filename: str, image_url: str) -> TagSuggestion:
        self._count("generate_tags")
        if self.suggested_tags is None:
            raise TagGenerationError("tag service unavailable")
        return TagSuggestion(tags=list(self.suggested_tags))


class RecordingNotifier:
    """Notifier that keeps every notification for assertions."""

    def __init__(self) -> None:
        self.notifications = []

    def notify(self, notification) -> None:
        self.notifications.append(notification)

    def titles(self) -> list[str]:
        return [notification.title for notification in self.notifications]


@pytest.fixture
def items() -> list[GalleryItem]:
    return [
        make_item("a", "Login Form", tags=["form", "authentication"], minutes_ago=0),
        make_item("b", "Primary Button", tags=["button"], minutes_ago=1),
        make_item("c", "Dashboard Layout", tags=[], minutes_ago=2, file_size=4096),
        make_item("d", "Card Hover", tags=["card", "animation"], media_type=MediaType.VIDEO, minutes_ago=3),
        make_item("e", "Spinner", tags=[], media_type=MediaType.GIF, minutes_ago=4, file_size=512),
    ]


@pytest.fixture
def gateway(items) -> FakeGateway:
    return FakeGateway(items)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sample_image_data() -> bytes:
    """Provide sample image data for testing."""
    return create_test_image("PNG", (10, 10))
