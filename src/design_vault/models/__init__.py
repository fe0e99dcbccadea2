"""
Models module for Design Vault.

This module contains the gallery data model:
- GalleryItem: Canonical in-memory unit rendered by the gallery
- DatabaseFile: Persisted record shape
- FilterState / ViewState: Filter criteria and presentation state
"""

from .filters import NO_TAGS_SENTINEL, FilterState, GalleryMode, SortField, SortOrder, ViewMode, ViewState
from .item import DatabaseFile, GalleryItem, MediaType, PageResult, StorageStats, TagSuggestion

__all__ = [
    "NO_TAGS_SENTINEL",
    "DatabaseFile",
    "FilterState",
    "GalleryItem",
    "GalleryMode",
    "MediaType",
    "PageResult",
    "SortField",
    "SortOrder",
    "StorageStats",
    "TagSuggestion",
    "ViewMode",
    "ViewState",
]
