"""
Local item store and pagination bookkeeping.

The store is the single piece of mutable gallery state. It keeps the items
in display order, bumps a version counter on every change so projections
can be memoised, and hides ids whose deletion is pending so a reload in the
middle of an undo window cannot resurrect them.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from ..models import FilterState, GalleryItem, GalleryMode


class LocalItemStore:
    """Ordered in-memory collection of gallery items keyed by id."""

    def __init__(self, items: Iterable[GalleryItem] = ()):
        self._items: list[GalleryItem] = []
        self._masked: set[str] = set()
        self.version = 0
        self.total_count = 0
        self.replace(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def items(self) -> list[GalleryItem]:
        return list(self._items)

    def ids(self) -> list[str]:
        return [item.id for item in self._items]

    def contains(self, item_id: str) -> bool:
        return any(item.id == item_id for item in self._items)

    def get(self, item_id: str) -> GalleryItem | None:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def _touch(self) -> None:
        self.version += 1

    def mask(self, item_ids: Iterable[str]) -> None:
        """Hide ids from subsequent replace/append calls."""
        self._masked.update(item_ids)

    def unmask(self, item_ids: Iterable[str]) -> None:
        self._masked.difference_update(item_ids)

    def is_masked(self, item_id: str) -> bool:
        return item_id in self._masked

    def replace(self, items: Iterable[GalleryItem]) -> None:
        seen: set[str] = set()
        kept = []
        for item in items:
            if item.id in self._masked or item.id in seen:
                continue
            seen.add(item.id)
            kept.append(item)
        self._items = kept
        self._touch()

    def append(self, items: Iterable[GalleryItem]) -> int:
        """Append items not already present. Returns how many were added."""
        present = set(self.ids())
        added = 0
        for item in items:
            if item.id in present or item.id in self._masked:
                continue
            present.add(item.id)
            self._items.append(item)
            added += 1
        self._touch()
        return added

    def prepend(self, item: GalleryItem) -> None:
        self._items = [item, *(existing for existing in self._items if existing.id != item.id)]
        self._touch()

    def remove(self, item_ids: Iterable[str]) -> list[GalleryItem]:
        """Remove the given ids and return the removed items in their previous order."""
        wanted = set(item_ids)
        removed = [item for item in self._items if item.id in wanted]
        if removed:
            self._items = [item for item in self._items if item.id not in wanted]
            self._touch()
        return removed

    def insert_ordered(self, item: GalleryItem) -> None:
        """
        Reinsert an item at its position by ``date_added`` (newest first).

        The position is derived from the ordering, not a remembered index,
        because the list may have changed since the item was removed.
        """
        if self.contains(item.id):
            return
        index = len(self._items)
        for position, existing in enumerate(self._items):
            if existing.date_added < item.date_added:
                index = position
                break
        self._items.insert(index, item)
        self._touch()

    def update(self, item_id: str, fn: Callable[[GalleryItem], GalleryItem]) -> GalleryItem | None:
        """Replace one item with ``fn(item)``. Returns the new item, or None if absent."""
        for position, item in enumerate(self._items):
            if item.id == item_id:
                updated = fn(item)
                self._items[position] = updated
                self._touch()
                return updated
        return None

    def set_total_count(self, total: int) -> None:
        if total != self.total_count:
            self.total_count = max(total, 0)
            self._touch()

    def adjust_total_count(self, delta: int) -> None:
        self.set_total_count(self.total_count + delta)


class LoadingStrategy(Enum):
    WINDOWED = "windowed"
    FULL = "full"


def needs_full_collection(search_query: str, filters: FilterState, gallery_mode: GalleryMode) -> bool:
    """Client-side filtering must see every item, not a page window."""
    return bool(search_query.strip()) or filters.has_active_filters or gallery_mode is GalleryMode.NO_TAG


@dataclass
class PaginationController:
    """
    Tracks which part of the collection the store holds.

    Every load takes a generation token from ``begin_load``. A result whose
    token is no longer current belongs to a superseded load and is dropped.
    """

    page_size: int = 20
    state: LoadingStrategy = LoadingStrategy.WINDOWED
    current_page: int = 1
    has_more: bool = False
    is_loading: bool = False
    is_loading_more: bool = False
    full_load_in_flight: bool = False
    generation: int = 0

    def begin_load(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, token: int) -> bool:
        return token == self.generation

    @property
    def busy(self) -> bool:
        return self.is_loading or self.is_loading_more or self.full_load_in_flight

    def can_load_more(self) -> bool:
        return self.state is LoadingStrategy.WINDOWED and self.has_more and not self.busy

    def windowed(self, page: int, has_more: bool) -> None:
        self.state = LoadingStrategy.WINDOWED
        self.current_page = page
        self.has_more = has_more

    def full(self) -> None:
        self.state = LoadingStrategy.FULL
        self.has_more = False
