"""
Optimistic mutation layer.

Every edit is a command with four steps: ``apply`` captures a snapshot and
changes the local store synchronously, ``confirm`` sends the change to the
gateway, and either ``on_confirmed`` or ``revert`` settles it. Reverts touch
only the item the command changed, so concurrent edits of other items
survive a failure.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from ..logging_config import get_logger, log_user_action
from ..models import GalleryItem
from ..services.validation import sanitize_tags, validate_title
from ..ui.handlers.error import handle_error
from .ports import Notification, NotificationLevel, Notifier
from .store import LocalItemStore

logger = get_logger(__name__)


class MutationGateway(Protocol):
    async def update(self, item_id: str, title: str | None = None, tags: list[str] | None = None) -> GalleryItem: ...

    async def delete(self, item_id: str) -> None: ...


class OptimisticCommand(ABC):
    """A local-first edit of one item."""

    failure_title = "Update failed"
    touches_tags = False

    def __init__(self, item_id: str):
        self.item_id = item_id
        self.snapshot: GalleryItem | None = None

    @abstractmethod
    def apply(self, store: LocalItemStore) -> bool:
        """Capture the snapshot and change the store. Returns False when there is nothing to confirm."""

    @abstractmethod
    async def confirm(self, gateway: MutationGateway) -> None:
        """Send the change to the gateway. Raises on failure."""

    @abstractmethod
    def revert(self, store: LocalItemStore) -> None:
        """Undo the local change without clobbering unrelated edits."""

    def on_confirmed(self, store: LocalItemStore) -> None:
        """Hook run after a successful confirmation."""


class AddTagsCommand(OptimisticCommand):
    """
    Add one or more tags to an item.

    The remote call carries the full tag set captured at dispatch time, so
    rapid consecutive adds never lose each other's tags.
    """

    failure_title = "Failed to add tag"
    touches_tags = True

    def __init__(self, item_id: str, tags: Sequence[str]):
        super().__init__(item_id)
        self.tags = sanitize_tags(tags)
        self.added: list[str] = []
        self.resulting_tags: list[str] = []

    def apply(self, store: LocalItemStore) -> bool:
        item = store.get(self.item_id)
        if item is None:
            return False
        self.snapshot = item
        self.added = [tag for tag in self.tags if tag not in item.tags]
        if not self.added:
            return False
        self.resulting_tags = [*item.tags, *self.added]
        store.update(self.item_id, lambda current: current.with_tags([*current.tags, *self.added]))
        return True

    async def confirm(self, gateway: MutationGateway) -> None:
        await gateway.update(self.item_id, tags=self.resulting_tags)

    def revert(self, store: LocalItemStore) -> None:
        added = set(self.added)
        store.update(self.item_id, lambda current: current.with_tags(t for t in current.tags if t not in added))


class RemoveTagCommand(OptimisticCommand):
    failure_title = "Failed to remove tag"
    touches_tags = True

    def __init__(self, item_id: str, tag: str):
        super().__init__(item_id)
        self.tag = tag
        self.position = 0
        self.resulting_tags: list[str] = []

    def apply(self, store: LocalItemStore) -> bool:
        item = store.get(self.item_id)
        if item is None or self.tag not in item.tags:
            return False
        self.snapshot = item
        self.position = item.tags.index(self.tag)
        self.resulting_tags = [t for t in item.tags if t != self.tag]
        store.update(self.item_id, lambda current: current.with_tags(t for t in current.tags if t != self.tag))
        return True

    async def confirm(self, gateway: MutationGateway) -> None:
        await gateway.update(self.item_id, tags=self.resulting_tags)

    def revert(self, store: LocalItemStore) -> None:
        def restore(current: GalleryItem) -> GalleryItem:
            if self.tag in current.tags:
                return current
            tags = list(current.tags)
            tags.insert(min(self.position, len(tags)), self.tag)
            return current.with_tags(tags)

        store.update(self.item_id, restore)


class UpdateTitleCommand(OptimisticCommand):
    failure_title = "Failed to rename"

    def __init__(self, item_id: str, title: str):
        super().__init__(item_id)
        self.title = validate_title(title).strip()

    def apply(self, store: LocalItemStore) -> bool:
        item = store.get(self.item_id)
        if item is None or item.title == self.title:
            return False
        self.snapshot = item
        store.update(self.item_id, lambda current: current.with_title(self.title))
        return True

    async def confirm(self, gateway: MutationGateway) -> None:
        await gateway.update(self.item_id, title=self.title)

    def revert(self, store: LocalItemStore) -> None:
        if self.snapshot is None:
            return
        previous = self.snapshot.title
        # A later rename wins over this revert
        store.update(
            self.item_id,
            lambda current: current.with_title(previous) if current.title == self.title else current,
        )


class DeleteItemCommand(OptimisticCommand):
    """Remove an item. The id stays masked so reloads cannot bring it back mid-flight."""

    failure_title = "Delete failed"

    def apply(self, store: LocalItemStore) -> bool:
        removed = store.remove([self.item_id])
        if not removed:
            return False
        self.snapshot = removed[0]
        store.mask([self.item_id])
        store.adjust_total_count(-1)
        return True

    async def confirm(self, gateway: MutationGateway) -> None:
        await gateway.delete(self.item_id)

    def revert(self, store: LocalItemStore) -> None:
        if self.snapshot is None:
            return
        store.unmask([self.item_id])
        if not store.contains(self.item_id):
            store.insert_ordered(self.snapshot)
            store.adjust_total_count(1)


class PendingDelete:
    """
    A delete waiting out its undo window.

    The remote delete fires only after ``window`` seconds unless ``undo`` is
    called first. ``resolved`` is set exactly once, by whichever of undo or
    the deferred delete gets there first, so the item is never restored twice.
    """

    def __init__(self, command: DeleteItemCommand, layer: "OptimisticMutationLayer", window: float):
        self.command = command
        self.layer = layer
        self.window = window
        self.resolved = False
        self.confirmed: bool | None = None
        self._task: asyncio.Task | None = None

    @property
    def item_id(self) -> str:
        return self.command.item_id

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._delete_after_window())

    async def _delete_after_window(self) -> None:
        await asyncio.sleep(self.window)
        if self.resolved:
            return
        self.resolved = True
        self.confirmed = await self.layer.settle(self.command)

    def undo(self) -> bool:
        """Cancel the deferred delete and restore the item. False once the delete is resolved."""
        if self.resolved:
            return False
        self.resolved = True
        if self._task is not None:
            self._task.cancel()
        self.command.revert(self.layer.store)
        log_user_action("delete_undone", item_id=self.item_id)
        return True

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class OptimisticMutationLayer:
    """Runs commands against the store and gateway. Never raises into its caller."""

    def __init__(
        self,
        store: LocalItemStore,
        gateway: MutationGateway,
        notifier: Notifier,
        on_tags_changed: Callable[[], Awaitable[None]] | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.on_tags_changed = on_tags_changed

    def begin(self, command: OptimisticCommand) -> bool:
        """Apply a command locally. Runs synchronously, before any remote call."""
        return command.apply(self.store)

    async def settle(self, command: OptimisticCommand, refresh_tags: bool = True) -> bool:
        """Confirm an applied command, reverting and notifying on failure."""
        try:
            await command.confirm(self.gateway)
        except Exception as e:
            error_info = handle_error(e, {"item_id": command.item_id, "command": type(command).__name__})
            command.revert(self.store)
            logger.warning(
                "optimistic_mutation_reverted",
                item_id=command.item_id,
                command=type(command).__name__,
                error_code=error_info.code,
            )
            self.notifier.notify(
                Notification(
                    level=NotificationLevel.ERROR,
                    title=command.failure_title,
                    description=error_info.user_message,
                )
            )
            return False

        command.on_confirmed(self.store)
        if refresh_tags and command.touches_tags:
            await self._refresh_tags()
        return True

    async def execute(self, command: OptimisticCommand) -> bool:
        """
        Apply, confirm and settle a single command.

        Returns:
            True when the change is confirmed or there was nothing to change
        """
        if not self.begin(command):
            return True
        return await self.settle(command)

    async def execute_batch(self, commands: Sequence[OptimisticCommand]) -> list[OptimisticCommand]:
        """
        Apply all commands together, confirm them concurrently and revert only the failures.

        Returns:
            The commands that failed and were reverted
        """
        applied = [command for command in commands if self.begin(command)]
        if not applied:
            return []

        results = await asyncio.gather(*(self.settle(command, refresh_tags=False) for command in applied))
        failed = [command for command, ok in zip(applied, results, strict=True) if not ok]

        if any(command.touches_tags for command in applied) and len(failed) < len(applied):
            await self._refresh_tags()

        logger.info("batch_mutation_settled", total=len(applied), failed=len(failed))
        return failed

    def delete_with_undo(self, item_id: str, window: float) -> PendingDelete | None:
        """Remove an item now and schedule the remote delete after the undo window."""
        command = DeleteItemCommand(item_id)
        if not self.begin(command):
            return None
        pending = PendingDelete(command, self, window)
        pending.start()
        log_user_action("delete_requested", item_id=item_id, undo_window=window)
        return pending

    async def _refresh_tags(self) -> None:
        if self.on_tags_changed is None:
            return
        try:
            await self.on_tags_changed()
        except Exception as e:
            handle_error(e, {"operation": "refresh_tags"})
            logger.warning("tag_aggregate_refresh_failed", error=str(e))
