"""
View projection: derives the displayed list from the store and view inputs.

Every function here is pure. Inputs are never mutated; each step returns a
new list. Pipeline order is text, type, tag, sort, then the gallery mode.
"""

import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ..models import FilterState, GalleryItem, GalleryMode, SortField, SortOrder

# Tag selections with this prefix are type selections handled by the type filter
TYPE_TAG_PREFIX = "type:"


@dataclass(frozen=True)
class ProjectedView:
    display_items: list[GalleryItem]
    filtered_items: list[GalleryItem]
    available_tags: list[str]
    total_items: int


def filter_items(items: Sequence[GalleryItem], search_query: str, filters: FilterState) -> list[GalleryItem]:
    """Apply the text, type and tag filters. Empty criteria leave the input unchanged."""
    filtered = list(items)

    query = search_query.strip().lower()
    if query:
        filtered = [
            item
            for item in filtered
            if query in item.title.lower() or any(query in tag.lower() for tag in item.tags)
        ]

    if filters.file_types:
        filtered = [item for item in filtered if item.type in filters.file_types]

    if filters.selected_tags:
        include_untagged = filters.includes_no_tags
        wanted = {tag for tag in filters.literal_tags if not tag.startswith(TYPE_TAG_PREFIX)}

        if include_untagged or wanted:
            filtered = [
                item
                for item in filtered
                if (include_untagged and not item.tags) or any(tag in wanted for tag in item.tags)
            ]

    return filtered


def _sort_key(sort_by: SortField):
    if sort_by is SortField.TITLE:
        return lambda item: item.title.casefold()
    if sort_by is SortField.TAGS:
        return lambda item: len(item.tags)
    if sort_by is SortField.SIZE:
        return lambda item: item.file_size or 0
    return lambda item: item.date_added


def sort_items(items: Iterable[GalleryItem], sort_by: SortField, sort_order: SortOrder) -> list[GalleryItem]:
    # sorted() is stable in both directions, so ties keep their incoming order
    return sorted(items, key=_sort_key(sort_by), reverse=sort_order is SortOrder.DESC)


def prioritize_newly_uploaded(items: Sequence[GalleryItem], newly_uploaded: Iterable[str]) -> list[GalleryItem]:
    """Stable partition: newly uploaded ids first, relative order kept on both sides."""
    fresh = set(newly_uploaded)
    if not fresh:
        return list(items)
    return [item for item in items if item.id in fresh] + [item for item in items if item.id not in fresh]


def seeded_shuffle(items: Sequence[GalleryItem], seed: int) -> list[GalleryItem]:
    """Fisher-Yates shuffle driven by a PRNG seeded with ``seed``. Same seed, same order."""
    rng = random.Random(seed)
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randrange(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def project_view(
    items: Sequence[GalleryItem],
    search_query: str,
    filters: FilterState,
    gallery_mode: GalleryMode,
    newly_uploaded: Iterable[str],
    seed: int,
    all_tags: Sequence[str],
    total_count: int,
) -> ProjectedView:
    """
    Run the full projection pipeline.

    Args:
        items: Current store contents
        search_query: Free-text query over titles and tags
        filters: Type, tag and sort criteria
        gallery_mode: recent, random or no-tag
        newly_uploaded: Ids floated to the front in recent mode
        seed: Seed of the random mode shuffle
        all_tags: Global tag aggregate offered by the filter UI
        total_count: Size of the whole collection

    Returns:
        ProjectedView with the displayed and filtered lists
    """
    filtered = sort_items(filter_items(items, search_query, filters), filters.sort_by, filters.sort_order)

    if gallery_mode is GalleryMode.RANDOM:
        display = seeded_shuffle(filtered, seed)
    elif gallery_mode is GalleryMode.NO_TAG:
        display = [item for item in filtered if not item.tags]
    else:
        display = prioritize_newly_uploaded(filtered, newly_uploaded)

    total_items = len(filtered) if search_query.strip() else total_count
    return ProjectedView(
        display_items=display,
        filtered_items=filtered,
        available_tags=list(all_tags),
        total_items=total_items,
    )

