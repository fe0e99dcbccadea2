"""
Gallery coordinator.

Owns the local store, the pagination controller, the filter and view state
and the optimistic mutation layer, and decides after every search, filter
or mode change whether the store should hold a page window or the whole
collection. UI bindings call the synchronous setters and the async
operations; they read the result through ``snapshot()``.
"""

import asyncio
import dataclasses
import random
import time
from collections.abc import Coroutine, Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..config import GallerySettings
from ..logging_config import get_logger, log_user_action
from ..models import FilterState, GalleryItem, GalleryMode, MediaType, StorageStats, ViewMode, ViewState
from ..services.export import ExportResult, ExportService, ProgressCallback, zip_name_for
from ..services.media import MediaPreparer, UploadSource
from ..services.tagging import TagSuggestionService
from ..services.validation import sanitize_tags, validate_upload
from ..ui.handlers.error import USER_MESSAGES, DesignVaultError, ErrorCategory, ValidationError, handle_error
from .mutations import (
    AddTagsCommand,
    DeleteItemCommand,
    OptimisticMutationLayer,
    PendingDelete,
    RemoveTagCommand,
    UpdateTitleCommand,
)
from .ports import GalleryInputPort, LoggingNotifier, Notification, NotificationLevel, Notifier
from .projection import ProjectedView, project_view
from .store import LoadingStrategy, LocalItemStore, PaginationController, needs_full_collection

logger = get_logger(__name__)


@dataclass(frozen=True)
class GallerySnapshot:
    """
    Detached copy of everything a UI binding renders.

    Taken on the coordinator's event loop, so a script running on another
    thread never iterates the live store or sets while they change.
    """

    view: ProjectedView
    search_query: str
    filters: FilterState
    gallery_mode: GalleryMode
    view_mode: ViewMode
    selected_files: frozenset[str]
    selected_items: tuple[GalleryItem, ...]
    newly_uploaded: frozenset[str]
    pending_tags: Mapping[str, tuple[str, ...]]
    pending_deletes: tuple[tuple[str, str], ...]
    all_tags: tuple[str, ...]
    no_tag_count: int
    storage_stats: StorageStats | None
    has_more: bool
    is_loading: bool
    is_busy: bool
    is_uploading: bool
    is_empty: bool


class GalleryCoordinator(GalleryInputPort):
    """
    Client-side state coordinator for one gallery session.

    Args:
        gateway: Remote data gateway (or any object with the same methods)
        settings: Page size, undo window and timing tunables
        notifier: Output port for toast-style notifications
        media: Upload preparation (MOV transcoding)
        tagger: Tag suggestion after upload
        exporter: Zip export
    """

    def __init__(
        self,
        gateway: Any,
        settings: GallerySettings | None = None,
        notifier: Notifier | None = None,
        media: MediaPreparer | None = None,
        tagger: TagSuggestionService | None = None,
        exporter: ExportService | None = None,
    ):
        self.gateway = gateway
        self.settings = settings or GallerySettings()
        self.notifier = notifier or LoggingNotifier()
        self.media = media or MediaPreparer()
        self.tagger = tagger or TagSuggestionService(gateway)
        self.exporter = exporter or ExportService()

        self.store = LocalItemStore()
        self.pagination = PaginationController(page_size=self.settings.page_size)
        self.mutations = OptimisticMutationLayer(
            self.store, gateway, self.notifier, on_tags_changed=self.refresh_tag_aggregates
        )

        self.search_query = ""
        self.filters = FilterState()
        self.view = ViewState()
        self.random_seed = random.randrange(2**32)
        self.all_tags: list[str] = []
        self.no_tag_count = 0
        self.storage_stats: StorageStats | None = None
        self.newly_uploaded: set[str] = set()
        self.pending_tags: dict[str, list[str]] = {}
        self.pending_deletes: dict[str, PendingDelete] = {}
        self.is_uploading = False

        self._tasks: set[asyncio.Task] = set()
        self._timers: set[asyncio.Task] = set()
        self._restore_task: asyncio.Task | None = None
        self._projection_key: tuple | None = None
        self._projection: ProjectedView | None = None

    # Background work

    def _spawn(self, coro: Coroutine[Any, Any, Any], timer: bool = False) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        bucket = self._timers if timer else self._tasks
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until background loads, pending deletes and refreshes have finished."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            pending.extend(p._task for p in self.pending_deletes.values() if p._task and not p._task.done())
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel timers and debounced work, then wait for in-flight operations."""
        self._cancel_restore()
        for task in list(self._timers):
            task.cancel()
        await self.wait_idle()
        await self.exporter.aclose()

    def _notify(self, level: NotificationLevel, title: str, description: str = "", **kwargs: Any) -> None:
        self.notifier.notify(Notification(level=level, title=title, description=description, **kwargs))

    def _load_failed(self, error: Exception, operation: str) -> None:
        error_info = handle_error(error, {"operation": operation})
        logger.warning("gallery_load_failed", operation=operation, error_code=error_info.code)
        self._notify(NotificationLevel.ERROR, "Failed to load files", error_info.user_message)

    # Loading

    async def initialize(self) -> None:
        """Load the first page, the tag aggregates and the storage figures."""
        await asyncio.gather(self.load_files(), self._refresh_aggregates_quietly())

    async def load_files(self) -> bool:
        """Reset to the first page in windowed mode."""
        token = self.pagination.begin_load()
        self.pagination.is_loading = True
        try:
            result = await self.gateway.load_page(1, self.settings.page_size, self.filters)
        except Exception as e:
            if self.pagination.is_current(token):
                self._load_failed(e, "load_files")
            return False
        finally:
            if self.pagination.is_current(token):
                self.pagination.is_loading = False
                self.pagination.is_loading_more = False

        if not self.pagination.is_current(token):
            logger.debug("stale_load_discarded", operation="load_files", token=token)
            return False

        self.store.replace(result.items)
        self.store.set_total_count(result.total_count)
        self.pagination.windowed(1, result.has_more)
        self._prune_selection()
        logger.info("files_loaded", count=len(result.items), total_count=result.total_count, has_more=result.has_more)
        return True

    async def load_more_files(self) -> bool:
        """Append the next page. No-op without a gateway call when nothing more can be loaded."""
        if not self.pagination.can_load_more():
            return False

        token = self.pagination.begin_load()
        self.pagination.is_loading_more = True
        next_page = self.pagination.current_page + 1
        try:
            result = await self.gateway.load_page(next_page, self.settings.page_size, self.filters)
        except Exception as e:
            if self.pagination.is_current(token):
                self._load_failed(e, "load_more_files")
            return False
        finally:
            if self.pagination.is_current(token):
                self.pagination.is_loading = False
                self.pagination.is_loading_more = False

        if not self.pagination.is_current(token):
            return False

        added = self.store.append(result.items)
        self.store.set_total_count(result.total_count)
        self.pagination.windowed(next_page, result.has_more)
        logger.debug("more_files_loaded", page=next_page, added=added, has_more=result.has_more)
        return True

    async def load_all_items(self) -> bool:
        """Load the whole collection. A second call while one is outstanding is dropped."""
        if self.pagination.full_load_in_flight:
            logger.debug("full_load_already_in_flight")
            return False

        self.pagination.full_load_in_flight = True
        self.pagination.is_loading = True
        token = self.pagination.begin_load()
        start = time.perf_counter()
        try:
            items = await self.gateway.load_all()
        except Exception as e:
            if self.pagination.is_current(token):
                self._load_failed(e, "load_all_items")
            return False
        finally:
            self.pagination.full_load_in_flight = False
            if self.pagination.is_current(token):
                self.pagination.is_loading = False
                self.pagination.is_loading_more = False

        if not self.pagination.is_current(token):
            logger.debug("stale_load_discarded", operation="load_all_items", token=token)
            return False

        self.store.replace(items)
        self.store.set_total_count(len(self.store))
        self.pagination.full()
        self._prune_selection()
        logger.info("all_files_loaded", count=len(self.store), duration_seconds=time.perf_counter() - start)

        # Conditions may have changed while the full load was in flight
        self._sync_loading_strategy()
        return True

    async def refresh_tag_aggregates(self) -> None:
        all_tags, no_tag_count = await asyncio.gather(self.gateway.get_all_tags(), self.gateway.get_no_tag_count())
        self.all_tags = list(all_tags)
        self.no_tag_count = no_tag_count

    async def refresh_storage_stats(self) -> StorageStats | None:
        """Reload collection-wide counts and size. Failures keep the previous figures."""
        try:
            self.storage_stats = await self.gateway.get_storage_stats()
        except Exception as e:
            handle_error(e, {"operation": "refresh_storage_stats"})
        return self.storage_stats

    async def reload_item(self, item_id: str) -> GalleryItem | None:
        """
        Replace one item with the server's current copy.

        An item that no longer exists remotely is dropped from the store,
        the selection and the pending suggestions.
        """
        try:
            item = await self.gateway.get_item(item_id)
        except Exception as e:
            error_info = handle_error(e, {"operation": "reload_item", "item_id": item_id})
            self._notify(NotificationLevel.ERROR, "Failed to reload file", error_info.user_message)
            return None

        if item is None:
            if self.store.remove([item_id]):
                self.store.adjust_total_count(-1)
            self.view.selected_files.discard(item_id)
            self.pending_tags.pop(item_id, None)
            self._notify(NotificationLevel.WARNING, "File not found", USER_MESSAGES[ErrorCategory.NOT_FOUND])
            await self._refresh_aggregates_quietly()
            return None

        self.store.update(item_id, lambda _: item)
        return item

    def _needs_full_collection(self) -> bool:
        return needs_full_collection(self.search_query, self.filters, self.view.gallery_mode)

    def _sync_loading_strategy(self) -> None:
        if self._needs_full_collection():
            self._cancel_restore()
            if self.pagination.state is LoadingStrategy.WINDOWED and not self.pagination.full_load_in_flight:
                self._spawn(self.load_all_items())
            return

        if self.pagination.state is LoadingStrategy.FULL and self.view.gallery_mode is GalleryMode.RECENT:
            self._cancel_restore()
            self._restore_task = self._spawn(self._restore_window_after_delay())

    def _cancel_restore(self) -> None:
        if self._restore_task is not None and not self._restore_task.done():
            self._restore_task.cancel()
        self._restore_task = None

    async def _restore_window_after_delay(self) -> None:
        await asyncio.sleep(self.settings.window_restore_delay_seconds)
        if self._needs_full_collection() or self.view.gallery_mode is not GalleryMode.RECENT:
            return
        if self.pagination.state is LoadingStrategy.FULL:
            await self.load_files()

    # Search, filters, mode

    def set_search_query(self, query: str) -> None:
        self.search_query = query
        self._sync_loading_strategy()

    def set_filters(self, filters: FilterState) -> None:
        self.filters = filters
        self._sync_loading_strategy()

    def toggle_tag_filter(self, tag: str) -> None:
        self.set_filters(self.filters.toggle_tag(tag))

    def clear_filters(self) -> None:
        self.search_query = ""
        self.set_filters(self.filters.cleared())

    def set_gallery_mode(self, mode: GalleryMode | str, seed: int | None = None) -> None:
        """Switch gallery mode. Entering random mode takes a fresh seed unless one is given."""
        mode = GalleryMode(mode)
        if mode is GalleryMode.RANDOM:
            if seed is not None:
                self.random_seed = seed
            elif self.view.gallery_mode is not GalleryMode.RANDOM:
                self.random_seed = random.randrange(2**32)
        self.view.gallery_mode = mode
        self._sync_loading_strategy()

    # Projection

    def project(self) -> ProjectedView:
        """Derive the displayed list. Memoised on every input of the projection."""
        key = (
            self.store.version,
            self.search_query,
            self.filters,
            self.view.gallery_mode,
            frozenset(self.newly_uploaded),
            self.random_seed,
            tuple(self.all_tags),
        )
        if key != self._projection_key or self._projection is None:
            self._projection = project_view(
                self.store.items,
                self.search_query,
                self.filters,
                self.view.gallery_mode,
                self.newly_uploaded,
                self.random_seed,
                self.all_tags,
                self.store.total_count,
            )
            self._projection_key = key
        return self._projection

    def snapshot(self) -> GallerySnapshot:
        """Copy the renderable state. Call on the coordinator's event loop."""
        view = self.project()
        selected = frozenset(self.view.selected_files)
        return GallerySnapshot(
            view=view,
            search_query=self.search_query,
            filters=self.filters,
            gallery_mode=self.view.gallery_mode,
            view_mode=self.view.mode,
            selected_files=selected,
            selected_items=tuple(item for item in self.store if item.id in selected),
            newly_uploaded=frozenset(self.newly_uploaded),
            pending_tags={item_id: tuple(tags) for item_id, tags in self.pending_tags.items()},
            pending_deletes=tuple(
                (item_id, pending.command.snapshot.title if pending.command.snapshot else item_id)
                for item_id, pending in self.pending_deletes.items()
            ),
            all_tags=tuple(self.all_tags),
            no_tag_count=self.no_tag_count,
            storage_stats=dataclasses.replace(self.storage_stats) if self.storage_stats else None,
            has_more=self.has_more,
            is_loading=self.pagination.is_loading,
            is_busy=self.pagination.busy,
            is_uploading=self.is_uploading,
            is_empty=len(self.store) == 0,
        )

    def set_view_mode(self, mode: ViewMode | str) -> None:
        self.view.mode = ViewMode(mode)

    @property
    def has_more(self) -> bool:
        return self.pagination.has_more

    # Selection

    def _prune_selection(self) -> None:
        self.view.selected_files &= set(self.store.ids())

    def toggle_selection(self, item_id: str) -> None:
        if item_id in self.view.selected_files:
            self.view.selected_files.discard(item_id)
        elif self.store.contains(item_id):
            self.view.selected_files.add(item_id)

    def select_all(self) -> None:
        self.view.selected_files = {item.id for item in self.project().display_items}

    def deselect_all(self) -> None:
        self.view.selected_files = set()

    # Mutations

    async def add_tags(self, item_id: str, tags: Sequence[str]) -> bool:
        return await self.mutations.execute(AddTagsCommand(item_id, tags))

    async def add_tag(self, item_id: str, tag: str) -> bool:
        return await self.add_tags(item_id, [tag])

    async def remove_tag(self, item_id: str, tag: str) -> bool:
        return await self.mutations.execute(RemoveTagCommand(item_id, tag))

    async def update_title(self, item_id: str, title: str) -> bool:
        try:
            command = UpdateTitleCommand(item_id, title)
        except ValidationError as e:
            self._notify(NotificationLevel.ERROR, "Invalid title", e.user_message)
            return False
        return await self.mutations.execute(command)

    async def add_tags_to_selected(self, tags: Sequence[str]) -> list[str]:
        """Tag every selected item. Returns the ids whose update failed."""
        if not sanitize_tags(tags):
            self._notify(NotificationLevel.ERROR, "Invalid tag", "Tags may only contain letters, numbers and hyphens.")
            return []

        commands = [AddTagsCommand(item_id, tags) for item_id in sorted(self.view.selected_files)]
        failed = await self.mutations.execute_batch(commands)
        succeeded = len(commands) - len(failed)
        if succeeded:
            self._notify(NotificationLevel.SUCCESS, "Tags added", f"Updated {succeeded} item(s)")
        return [command.item_id for command in failed]

    def delete_item(self, item_id: str) -> PendingDelete | None:
        """Remove an item now and offer an undo window before the remote delete fires."""
        self.view.selected_files.discard(item_id)
        pending = self.mutations.delete_with_undo(item_id, self.settings.undo_window_seconds)
        if pending is None:
            return None

        self.pending_deletes[item_id] = pending
        self._spawn(self._forget_pending_delete(pending))
        title = pending.command.snapshot.title if pending.command.snapshot else item_id
        self._notify(
            NotificationLevel.INFO,
            "File deleted",
            f'"{title}" was deleted',
            action_label="Undo",
            action=lambda: self.undo_delete(item_id),
        )
        return pending

    async def _forget_pending_delete(self, pending: PendingDelete) -> None:
        await pending.wait()
        if self.pending_deletes.get(pending.item_id) is pending:
            del self.pending_deletes[pending.item_id]
        if pending.confirmed:
            self.pending_tags.pop(pending.item_id, None)
            await self._refresh_aggregates_quietly()

    def undo_delete(self, item_id: str) -> bool:
        pending = self.pending_deletes.get(item_id)
        if pending is None or not pending.undo():
            return False
        self._notify(NotificationLevel.SUCCESS, "File restored")
        return True

    async def delete_selected(self) -> list[str]:
        """
        Delete every selected item at once.

        Returns:
            Ids whose remote delete failed; those items are back in the store
        """
        ids = sorted(self.view.selected_files)
        if not ids:
            return []
        self.view.selected_files = set()
        log_user_action("batch_delete_requested", count=len(ids))

        failed = await self.mutations.execute_batch([DeleteItemCommand(item_id) for item_id in ids])
        failed_ids = [command.item_id for command in failed]
        deleted = len(ids) - len(failed_ids)

        if failed_ids:
            self._notify(
                NotificationLevel.ERROR,
                "Some files could not be deleted",
                f"{deleted} deleted, {len(failed_ids)} failed",
            )
        else:
            self._notify(NotificationLevel.SUCCESS, "Files deleted", f"{deleted} file(s) deleted")

        if deleted:
            await self._refresh_aggregates_quietly()
        return failed_ids

    async def _refresh_aggregates_quietly(self) -> None:
        try:
            await self.refresh_tag_aggregates()
        except Exception as e:
            handle_error(e, {"operation": "refresh_tag_aggregates"})
        await self.refresh_storage_stats()

    # Pending AI tag suggestions

    async def confirm_tag(self, item_id: str, tag: str) -> bool:
        """Move a suggested tag onto the item. On failure the suggestion goes back to pending."""
        suggestions = self.pending_tags.get(item_id, [])
        if tag not in suggestions:
            return False
        self._discard_pending_tag(item_id, tag)

        if await self.add_tag(item_id, tag):
            return True
        self.pending_tags.setdefault(item_id, []).append(tag)
        return False

    def reject_tag(self, item_id: str, tag: str) -> None:
        self._discard_pending_tag(item_id, tag)

    def _discard_pending_tag(self, item_id: str, tag: str) -> None:
        remaining = [t for t in self.pending_tags.get(item_id, []) if t != tag]
        if remaining:
            self.pending_tags[item_id] = remaining
        else:
            self.pending_tags.pop(item_id, None)

    # Upload

    async def on_files_dropped(self, files: Sequence[UploadSource]) -> None:
        """Upload a batch of files one by one. Ignored while another batch is running."""
        if self.is_uploading:
            logger.info("upload_batch_ignored", reason="upload_in_progress", count=len(files))
            return

        self.is_uploading = True
        try:
            uploaded = 0
            for source in files:
                if await self.upload_file(source) is not None:
                    uploaded += 1
        finally:
            self.is_uploading = False

        if uploaded:
            await self._refresh_aggregates_quietly()

    async def on_scroll_threshold_reached(self) -> None:
        await self.load_more_files()

    async def upload_file(self, source: UploadSource) -> GalleryItem | None:
        """Validate, prepare and upload one file, then queue its tag suggestions."""
        try:
            validate_upload(source.filename, source.size, source.content_type, self.settings.max_file_size)
            prepared = await self.media.prepare(source)
            item = await self.gateway.upload(
                prepared.filename,
                prepared.data,
                prepared.content_type,
                title=Path(source.filename).stem or source.filename,
            )
        except Exception as e:
            error_info = handle_error(e, {"operation": "upload", "filename": source.filename})
            self._notify(NotificationLevel.ERROR, "Upload failed", f"{source.filename}: {error_info.user_message}")
            return None

        self.store.prepend(item)
        self.store.adjust_total_count(1)
        self._mark_newly_uploaded(item.id)
        self._notify(NotificationLevel.SUCCESS, "Upload complete", item.title)

        suggestion = await self.tagger.suggest(source.filename, item.url, is_video=item.type is MediaType.VIDEO)
        suggested = [tag for tag in suggestion.tags if tag not in item.tags]
        if suggested:
            self.pending_tags[item.id] = suggested
        logger.info("upload_tags_suggested", item_id=item.id, tags=suggested, fallback=suggestion.fallback)
        return item

    def _mark_newly_uploaded(self, item_id: str) -> None:
        self.newly_uploaded.add(item_id)
        self._spawn(self._expire_newly_uploaded(item_id), timer=True)

    async def _expire_newly_uploaded(self, item_id: str) -> None:
        await asyncio.sleep(self.settings.newly_uploaded_ttl_seconds)
        self.newly_uploaded.discard(item_id)

    # Export

    async def export_items(
        self, items: Iterable[GalleryItem], selected: bool, on_progress: ProgressCallback | None = None
    ) -> ExportResult | None:
        items = list(items)
        try:
            result = await self.exporter.build_zip(items, zip_name_for(items, selected), on_progress)
        except DesignVaultError as e:
            self._notify(NotificationLevel.ERROR, "Export failed", e.user_message)
            return None

        if result.failed:
            self._notify(
                NotificationLevel.WARNING,
                "Export finished with errors",
                f"{len(result.successful)}/{len(items)} files exported",
            )
        else:
            self._notify(NotificationLevel.SUCCESS, "Export ready", result.file_name)
        return result

    async def export_selected(self, on_progress: ProgressCallback | None = None) -> ExportResult | None:
        items = [item for item in self.store if item.id in self.view.selected_files]
        return await self.export_items(items, selected=True, on_progress=on_progress)

    async def export_all(self, on_progress: ProgressCallback | None = None) -> ExportResult | None:
        """Export the whole collection, not just the loaded window."""
        try:
            items = await self.gateway.load_all()
        except Exception as e:
            self._load_failed(e, "export_all")
            return None
        items = [item for item in items if not self.store.is_masked(item.id)]
        return await self.export_items(items, selected=False, on_progress=on_progress)
