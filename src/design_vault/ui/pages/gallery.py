"""Gallery page for Design Vault."""

import streamlit as st
import structlog

from design_vault.gallery import GallerySnapshot
from design_vault.models import ViewMode
from design_vault.services.export import estimate_zip_size, format_file_size
from design_vault.services.media import UploadSource
from design_vault.ui.components.gallery import (
    render_filter_sidebar,
    render_item_grid,
    render_item_list,
    render_notifications,
    render_pending_deletes,
)
from design_vault.ui.handlers.error import create_user_friendly_message
from design_vault.ui.handlers.gallery import GalleryRuntime, get_gallery_runtime

logger = structlog.get_logger(__name__)


def render_upload_section(runtime: GalleryRuntime, snapshot: GallerySnapshot) -> None:
    coordinator = runtime.coordinator
    with st.expander("⬆️ Upload files", expanded=snapshot.is_empty):
        uploaded = st.file_uploader(
            "Drop images or videos",
            accept_multiple_files=True,
            key=f"uploader_{st.session_state.uploader_generation}",
        )
        if uploaded and st.button("Upload", type="primary", disabled=snapshot.is_uploading):
            sources = [UploadSource(f.name, f.getvalue(), f.type or "") for f in uploaded]
            with st.spinner(f"Uploading {len(sources)} file(s)..."):
                runtime.run(coordinator.on_files_dropped(sources))
            # A fresh key clears the uploader
            st.session_state.uploader_generation += 1
            st.rerun()


def render_selection_toolbar(runtime: GalleryRuntime, snapshot: GallerySnapshot) -> None:
    coordinator = runtime.coordinator
    selected = snapshot.selected_files

    col1, col2, col3, col4 = st.columns([1, 1, 2, 1])
    with col1:
        if st.button("Select all", use_container_width=True):
            runtime.call(coordinator.select_all)
            st.rerun()
    with col2:
        if st.button("Deselect", use_container_width=True, disabled=not selected):
            runtime.call(coordinator.deselect_all)
            st.rerun()
    with col3:
        with st.form("batch_tags", clear_on_submit=True, border=False):
            tags = st.text_input("Tag selected", placeholder="comma, separated", disabled=not selected)
            if st.form_submit_button("Apply", disabled=not selected) and tags.strip():
                runtime.run(coordinator.add_tags_to_selected(tags.split(",")))
                st.rerun()
    with col4:
        if st.button(f"Delete ({len(selected)})", use_container_width=True, disabled=not selected):
            runtime.run(coordinator.delete_selected())
            st.rerun()


def render_export_section(runtime: GalleryRuntime, snapshot: GallerySnapshot) -> None:
    coordinator = runtime.coordinator
    selected_items = snapshot.selected_items
    scope = "selected" if selected_items else "all"

    col1, col2 = st.columns([3, 1])
    with col1:
        if selected_items:
            st.caption(
                f"{len(selected_items)} selected, about {format_file_size(estimate_zip_size(selected_items))}"
            )
    with col2:
        if st.button(f"📦 Export {scope}", use_container_width=True):
            with st.spinner("Preparing archive..."):
                export = coordinator.export_selected() if selected_items else coordinator.export_all()
                st.session_state.export_result = runtime.run(export)

    result = st.session_state.get("export_result")
    if result is not None:
        st.download_button(
            f"Download {result.file_name}",
            data=result.data,
            file_name=result.file_name,
            mime="application/zip",
            use_container_width=True,
        )


def render_gallery_page() -> None:
    """Render the gallery with search, filters, editing and export."""
    st.session_state.setdefault("uploader_generation", 0)
    st.session_state.setdefault("export_result", None)

    try:
        runtime = get_gallery_runtime()
        runtime.ensure_initialized()
    except Exception as e:
        logger.error("gallery_runtime_error", error=str(e))
        st.error(create_user_friendly_message(e))
        return

    coordinator = runtime.coordinator
    render_filter_sidebar(runtime, runtime.snapshot())

    # Sidebar changes have been applied on the loop; render from a fresh copy
    snapshot = runtime.snapshot()

    col1, col2 = st.columns([3, 1])
    with col1:
        st.markdown("### 🎨 Design Vault")
    with col2:
        view_mode = st.segmented_control(
            "View",
            list(ViewMode),
            default=snapshot.view_mode,
            format_func=lambda m: m.value.title(),
            label_visibility="collapsed",
        )
        if view_mode is not None and view_mode is not snapshot.view_mode:
            runtime.call(coordinator.set_view_mode, view_mode)
            snapshot = runtime.snapshot()

    render_upload_section(runtime, snapshot)
    render_pending_deletes(runtime, snapshot)

    view = snapshot.view
    if not view.display_items:
        if snapshot.is_loading:
            st.info("Loading...")
        elif snapshot.search_query or snapshot.filters.has_active_filters:
            st.info("No files match the current search and filters.")
        else:
            st.info("The vault is empty. Upload some designs to get started.")
    else:
        st.caption(f"Showing {len(view.display_items)} of {view.total_items} files")
        render_selection_toolbar(runtime, snapshot)
        render_export_section(runtime, snapshot)
        st.divider()

        if snapshot.view_mode is ViewMode.GRID:
            render_item_grid(runtime, snapshot)
        else:
            render_item_list(runtime, snapshot)

        if snapshot.has_more:
            if st.button("Load more", use_container_width=True, disabled=snapshot.is_busy):
                runtime.run(coordinator.on_scroll_threshold_reached())
                st.rerun()

    render_notifications(runtime.notifier.drain())
