"""
Unit tests for the view projection.
"""

import pytest

from design_vault.gallery.projection import (
    filter_items,
    prioritize_newly_uploaded,
    project_view,
    seeded_shuffle,
    sort_items,
)
from design_vault.models import NO_TAGS_SENTINEL, FilterState, GalleryMode, MediaType, SortField, SortOrder
from tests.conftest import make_item, make_items


def ids(items) -> list[str]:
    return [item.id for item in items]


class TestFilterItems:
    """Test cases for filter_items."""

    def test_identity_with_empty_criteria(self, items):
        """Test empty criteria return the input unchanged."""
        assert filter_items(items, "", FilterState()) == items
        assert filter_items(items, "   ", FilterState()) == items

    def test_does_not_mutate_input(self, items):
        """Test the input list is left untouched."""
        snapshot = list(items)
        filter_items(items, "form", FilterState(selected_tags=("button",)))
        assert items == snapshot

    def test_search_matches_title_and_tags(self, items):
        """Test the query matches titles and tags case-insensitively."""
        assert ids(filter_items(items, "LOGIN", FilterState())) == ["a"]
        assert ids(filter_items(items, "anim", FilterState())) == ["d"]

    def test_type_filter(self, items):
        """Test the type filter keeps the chosen media types."""
        filters = FilterState(file_types=frozenset({MediaType.VIDEO, MediaType.GIF}))
        assert ids(filter_items(items, "", filters)) == ["d", "e"]

    def test_tag_filter_is_union(self, items):
        """Test items carrying any selected tag are kept."""
        assert ids(filter_items(items, "", FilterState(selected_tags=("button", "card")))) == ["b", "d"]

    def test_no_tags_sentinel(self, items):
        """Test the sentinel selects items without tags."""
        assert ids(filter_items(items, "", FilterState(selected_tags=(NO_TAGS_SENTINEL,)))) == ["c", "e"]

    def test_no_tags_sentinel_combined(self, items):
        """Test the sentinel combined with a tag is a union."""
        filters = FilterState(selected_tags=(NO_TAGS_SENTINEL, "button"))
        assert ids(filter_items(items, "", filters)) == ["b", "c", "e"]

    def test_type_prefixed_tags_ignored(self, items):
        """Test type: selections do not act as tag filters."""
        assert filter_items(items, "", FilterState(selected_tags=("type:video",))) == items

    def test_filters_compose(self, items):
        """Test the search, type and tag filters combine."""
        filters = FilterState(file_types=frozenset({MediaType.IMAGE}), selected_tags=(NO_TAGS_SENTINEL,))
        assert ids(filter_items(items, "dash", filters)) == ["c"]


class TestSortItems:
    """Test cases for sort_items."""

    def test_title_case_insensitive(self):
        """Test titles sort case-insensitively."""
        items = [make_item("1", "beta"), make_item("2", "Alpha"), make_item("3", "gamma")]
        assert ids(sort_items(items, SortField.TITLE, SortOrder.ASC)) == ["2", "1", "3"]

    def test_date_desc(self, items):
        """Test newest first."""
        assert ids(sort_items(reversed(items), SortField.DATE, SortOrder.DESC)) == ["a", "b", "c", "d", "e"]

    def test_tags_count(self, items):
        """Test sorting by tag count, ties in incoming order."""
        assert ids(sort_items(items, SortField.TAGS, SortOrder.ASC)) == ["c", "e", "b", "a", "d"]

    def test_size(self, items):
        """Test sorting by size."""
        assert ids(sort_items(items, SortField.SIZE, SortOrder.DESC))[0] == "c"


class TestGalleryModes:
    """Test cases for mode specific ordering."""

    def test_prioritize_is_stable_partition(self):
        """Test newly uploaded items move first, both sides keep their order."""
        items = make_items(5)
        result = prioritize_newly_uploaded(items, {"item-3", "item-1"})
        assert ids(result) == ["item-1", "item-3", "item-0", "item-2", "item-4"]

    def test_seeded_shuffle_reproducible(self):
        """Test the same seed yields the same order."""
        items = make_items(20)
        assert seeded_shuffle(items, 42) == seeded_shuffle(items, 42)
        assert sorted(ids(seeded_shuffle(items, 42))) == sorted(ids(items))

    def test_seeded_shuffle_differs_by_seed(self):
        """Test different seeds give different orders."""
        items = make_items(20)
        assert seeded_shuffle(items, 1) != seeded_shuffle(items, 2)

    def test_seeded_shuffle_leaves_input(self):
        """Test the input list is not shuffled in place."""
        items = make_items(5)
        seeded_shuffle(items, 7)
        assert ids(items) == [f"item-{i}" for i in range(5)]


class TestProjectView:
    """Test cases for project_view."""

    def project(self, items, query="", filters=None, mode=GalleryMode.RECENT, newly=(), seed=1, total=100):
        return project_view(items, query, filters or FilterState(), mode, newly, seed, ["x"], total)

    def test_recent_mode(self, items):
        """Test recent mode floats newly uploaded items."""
        view = self.project(items, newly={"c"})

        assert ids(view.display_items) == ["c", "a", "b", "d", "e"]
        assert view.total_items == 100
        assert view.available_tags == ["x"]

    def test_no_tag_mode(self, items):
        """Test no-tag mode shows only untagged items."""
        view = self.project(items, mode=GalleryMode.NO_TAG)

        assert ids(view.display_items) == ["c", "e"]
        assert ids(view.filtered_items) == ["a", "b", "c", "d", "e"]

    def test_random_mode_reproducible(self, items):
        """Test random mode is a permutation fixed by the seed."""
        first = self.project(items, mode=GalleryMode.RANDOM, seed=123)
        second = self.project(items, mode=GalleryMode.RANDOM, seed=123)

        assert ids(first.display_items) == ids(second.display_items)
        assert sorted(ids(first.display_items)) == ["a", "b", "c", "d", "e"]

    def test_total_items_while_searching(self, items):
        """Test the total reflects the filtered count during a search."""
        assert self.project(items, query="button").total_items == 1

    @pytest.mark.parametrize("mode", list(GalleryMode))
    def test_display_is_subset_of_filtered(self, items, mode):
        """Test the displayed list never contains unfiltered items."""
        view = self.project(items, query="o", mode=mode, newly={"a"})
        assert set(ids(view.display_items)) <= set(ids(view.filtered_items))
