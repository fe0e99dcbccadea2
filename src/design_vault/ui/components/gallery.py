"""Gallery components for Design Vault."""

import random

import streamlit as st
import structlog

from design_vault.gallery import GallerySnapshot, Notification, NotificationLevel
from design_vault.models import NO_TAGS_SENTINEL, FilterState, GalleryItem, GalleryMode, MediaType, SortField, SortOrder
from design_vault.services.export import format_file_size

from ..handlers.gallery import GalleryRuntime

logger = structlog.get_logger(__name__)

MODE_LABELS = {
    GalleryMode.RECENT: "Recent",
    GalleryMode.RANDOM: "Random",
    GalleryMode.NO_TAG: "Untagged",
}


def render_notifications(notifications: list[Notification]) -> None:
    """Show queued notifications as toasts."""
    icons = {
        NotificationLevel.INFO: "ℹ️",
        NotificationLevel.SUCCESS: "✅",
        NotificationLevel.WARNING: "⚠️",
        NotificationLevel.ERROR: "❌",
    }
    for notification in notifications:
        message = notification.title
        if notification.description:
            message = f"**{notification.title}**  \n{notification.description}"
        st.toast(message, icon=icons[notification.level])


def render_pending_deletes(runtime: GalleryRuntime, snapshot: GallerySnapshot) -> None:
    """Offer an Undo button for every delete still inside its undo window."""
    coordinator = runtime.coordinator
    for item_id, title in snapshot.pending_deletes:
        col1, col2 = st.columns([4, 1])
        with col1:
            st.info(f'"{title}" was deleted')
        with col2:
            if st.button("Undo", key=f"undo_{item_id}", use_container_width=True):
                runtime.call(coordinator.undo_delete, item_id)
                st.rerun()


def render_filter_sidebar(runtime: GalleryRuntime, snapshot: GallerySnapshot) -> None:
    """Render search, mode, type, tag and sort controls."""
    coordinator = runtime.coordinator
    filters = snapshot.filters

    with st.sidebar:
        st.markdown("### Filters")

        query = st.text_input("Search", value=snapshot.search_query, placeholder="Title or tag")
        if query != snapshot.search_query:
            runtime.call(coordinator.set_search_query, query)

        modes = list(MODE_LABELS)
        mode = st.radio(
            "Mode",
            modes,
            index=modes.index(snapshot.gallery_mode),
            format_func=MODE_LABELS.get,
            horizontal=True,
        )
        if mode is not snapshot.gallery_mode:
            runtime.call(coordinator.set_gallery_mode, mode)
        if mode is GalleryMode.RANDOM and st.button("Shuffle", use_container_width=True):
            runtime.call(coordinator.set_gallery_mode, GalleryMode.RANDOM, random.randrange(2**32))

        file_types = st.multiselect(
            "File type",
            list(MediaType),
            default=sorted(filters.file_types, key=lambda t: t.value),
            format_func=lambda t: t.value,
        )
        tag_options = [NO_TAGS_SENTINEL, *snapshot.all_tags]
        selected_tags = st.multiselect(
            "Tags",
            tag_options,
            default=[tag for tag in filters.selected_tags if tag in tag_options],
            format_func=lambda t: f"No tags ({snapshot.no_tag_count})" if t == NO_TAGS_SENTINEL else t,
        )

        col1, col2 = st.columns(2)
        with col1:
            sort_by = st.selectbox(
                "Sort by", list(SortField), index=list(SortField).index(filters.sort_by), format_func=lambda f: f.value
            )
        with col2:
            sort_order = st.selectbox(
                "Order",
                list(SortOrder),
                index=list(SortOrder).index(filters.sort_order),
                format_func=lambda o: "Newest / Z-A" if o is SortOrder.DESC else "Oldest / A-Z",
            )

        updated = FilterState(
            file_types=frozenset(file_types), selected_tags=tuple(selected_tags), sort_by=sort_by, sort_order=sort_order
        )
        if updated != filters:
            runtime.call(coordinator.set_filters, updated)

        if filters.has_active_filters or snapshot.search_query:
            if st.button("Clear filters", use_container_width=True):
                runtime.call(coordinator.clear_filters)
                st.rerun()

        stats = snapshot.storage_stats
        if stats is not None:
            st.divider()
            st.caption(
                f"{stats.total_files} files · {format_file_size(stats.total_size)}  \n"
                f"{stats.image_count} images · {stats.gif_count} GIFs · {stats.video_count} videos"
            )


def render_item_media(item: GalleryItem) -> None:
    if item.type is MediaType.VIDEO:
        st.video(item.url)
    else:
        st.image(item.url, use_container_width=True)


def render_item_tags(runtime: GalleryRuntime, snapshot: GallerySnapshot, item: GalleryItem) -> None:
    """Existing tags with remove buttons, pending suggestions and a new tag input."""
    coordinator = runtime.coordinator

    if item.tags:
        cols = st.columns(min(len(item.tags), 4))
        for index, tag in enumerate(item.tags):
            with cols[index % len(cols)]:
                if st.button(f"{tag} ✕", key=f"remove_{item.id}_{tag}"):
                    runtime.run(coordinator.remove_tag(item.id, tag))
                    st.rerun()

    suggestions = snapshot.pending_tags.get(item.id, ())
    if suggestions:
        st.caption("Suggested tags")
        for tag in suggestions:
            col1, col2, col3 = st.columns([2, 1, 1])
            with col1:
                st.markdown(f"`{tag}`")
            with col2:
                if st.button("✓", key=f"confirm_{item.id}_{tag}"):
                    runtime.run(coordinator.confirm_tag(item.id, tag))
                    st.rerun()
            with col3:
                if st.button("✕", key=f"reject_{item.id}_{tag}"):
                    runtime.call(coordinator.reject_tag, item.id, tag)
                    st.rerun()

    with st.form(key=f"tag_form_{item.id}", clear_on_submit=True, border=False):
        new_tags = st.text_input("Add tags", key=f"new_tags_{item.id}", placeholder="comma, separated")
        if st.form_submit_button("Add") and new_tags.strip():
            runtime.run(coordinator.add_tags(item.id, new_tags.split(",")))
            st.rerun()


def render_item_card(runtime: GalleryRuntime, snapshot: GallerySnapshot, item: GalleryItem) -> None:
    coordinator = runtime.coordinator
    try:
        render_item_media(item)
    except Exception as e:
        logger.error("render_media_error", item_id=item.id, error=str(e))
        st.error("Preview unavailable")

    header = item.title
    if item.id in snapshot.newly_uploaded:
        header = f"🆕 {header}"
    st.markdown(f"**{header}**")
    details = item.date_added.strftime("%Y-%m-%d")
    if item.file_size:
        details += f" · {format_file_size(item.file_size)}"
    st.caption(details)

    is_selected = item.id in snapshot.selected_files
    if st.checkbox("Select", value=is_selected, key=f"select_{item.id}") != is_selected:
        runtime.call(coordinator.toggle_selection, item.id)

    with st.expander("Edit"):
        title = st.text_input("Title", value=item.title, key=f"title_{item.id}")
        if title != item.title and st.button("Save title", key=f"save_title_{item.id}"):
            runtime.run(coordinator.update_title(item.id, title))
            st.rerun()
        render_item_tags(runtime, snapshot, item)
        col1, col2 = st.columns(2)
        with col1:
            if st.button("↻ Reload", key=f"reload_{item.id}", use_container_width=True):
                runtime.run(coordinator.reload_item(item.id))
                st.rerun()
        with col2:
            if st.button("🗑️ Delete", key=f"delete_{item.id}", use_container_width=True):
                runtime.call(coordinator.delete_item, item.id)
                st.rerun()


def render_item_grid(runtime: GalleryRuntime, snapshot: GallerySnapshot, cols_per_row: int = 4) -> None:
    items = snapshot.view.display_items
    for i in range(0, len(items), cols_per_row):
        cols = st.columns(cols_per_row)
        for col, item in zip(cols, items[i : i + cols_per_row]):
            with col:
                render_item_card(runtime, snapshot, item)


def render_item_list(runtime: GalleryRuntime, snapshot: GallerySnapshot) -> None:
    for item in snapshot.view.display_items:
        with st.container():
            render_item_card(runtime, snapshot, item)
            st.divider()
