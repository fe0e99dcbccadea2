"""
Filter and view state for the gallery.

FilterState is a value object replaced wholesale on every UI change.
ViewState holds the presentation-level choices, including the selection
used by batch operations.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import Enum

from .item import MediaType

NO_TAGS_SENTINEL = "__no_tags__"


class SortField(str, Enum):
    TITLE = "title"
    DATE = "date"
    TAGS = "tags"
    SIZE = "size"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class GalleryMode(str, Enum):
    """Selects the ordering/filtering strategy of the view projection."""

    RECENT = "recent"
    RANDOM = "random"
    NO_TAG = "no-tag"


class ViewMode(str, Enum):
    GRID = "grid"
    LIST = "list"


@dataclass(frozen=True)
class FilterState:
    """
    Criteria applied by the view projection.

    ``selected_tags`` may contain NO_TAGS_SENTINEL, which stands for
    "items without any tag" rather than a literal tag.
    """

    file_types: frozenset[MediaType] = frozenset()
    selected_tags: tuple[str, ...] = ()
    sort_by: SortField = SortField.DATE
    sort_order: SortOrder = SortOrder.DESC

    def __post_init__(self) -> None:
        # Raw strings become enum members; unknown values raise
        object.__setattr__(self, "file_types", frozenset(MediaType(t) for t in self.file_types))
        object.__setattr__(self, "selected_tags", tuple(dict.fromkeys(self.selected_tags)))
        object.__setattr__(self, "sort_by", SortField(self.sort_by))
        object.__setattr__(self, "sort_order", SortOrder(self.sort_order))

    @property
    def has_active_filters(self) -> bool:
        """True when a type or tag filter narrows the collection."""
        return bool(self.file_types) or bool(self.selected_tags)

    @property
    def includes_no_tags(self) -> bool:
        return NO_TAGS_SENTINEL in self.selected_tags

    @property
    def literal_tags(self) -> tuple[str, ...]:
        return tuple(tag for tag in self.selected_tags if tag != NO_TAGS_SENTINEL)

    def toggle_tag(self, tag: str) -> "FilterState":
        if tag in self.selected_tags:
            tags = tuple(t for t in self.selected_tags if t != tag)
        else:
            tags = (*self.selected_tags, tag)
        return replace(self, selected_tags=tags)

    def with_file_types(self, file_types: Iterable[MediaType | str]) -> "FilterState":
        return replace(self, file_types=frozenset(MediaType(t) for t in file_types))

    def with_sort(self, sort_by: SortField | str, sort_order: SortOrder | str | None = None) -> "FilterState":
        return replace(self, sort_by=SortField(sort_by), sort_order=SortOrder(sort_order or self.sort_order))

    def cleared(self) -> "FilterState":
        """Drop type and tag criteria, keeping the sort."""
        return replace(self, file_types=frozenset(), selected_tags=())


@dataclass
class ViewState:
    """Presentation state. ``selected_files`` holds ids chosen for batch operations."""

    mode: ViewMode = ViewMode.GRID
    gallery_mode: GalleryMode = GalleryMode.RECENT
    is_filter_open: bool = False
    selected_files: set[str] = field(default_factory=set)
