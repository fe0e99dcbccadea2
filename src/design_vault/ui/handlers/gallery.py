"""Gallery handlers for Design Vault."""

import asyncio
import queue
import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import streamlit as st
import structlog

from design_vault.config import GallerySettings
from design_vault.gallery import GalleryCoordinator, GallerySnapshot, Notification
from design_vault.services.gateway import RemoteDataGateway
from design_vault.services.media import MediaPreparer
from design_vault.services.tagging import TagSuggestionService

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RUNTIME_KEY = "gallery_runtime"


class QueueNotifier:
    """Collects notifications raised on the gallery loop until the next script run drains them."""

    def __init__(self) -> None:
        self._queue: queue.Queue[Notification] = queue.Queue()

    def notify(self, notification: Notification) -> None:
        self._queue.put(notification)

    def drain(self) -> list[Notification]:
        notifications = []
        while True:
            try:
                notifications.append(self._queue.get_nowait())
            except queue.Empty:
                return notifications


class GalleryRuntime:
    """
    Owns a gallery coordinator running on a dedicated event loop thread.

    Streamlit reruns the page script on every interaction, so the coordinator
    and its background tasks (pending deletes, debounced restores) live on a
    long-running loop and the script submits work to it.
    """

    def __init__(self, coordinator: GalleryCoordinator, notifier: QueueNotifier):
        self.coordinator = coordinator
        self.notifier = notifier
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name="gallery-loop", daemon=True)
        self._thread.start()
        self.initialized = False

    def run(self, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        """Run a coroutine on the gallery loop and wait for its result."""
        return asyncio.run_coroutine_threadsafe(awaitable, self.loop).result(timeout)

    def call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a synchronous coordinator method on the gallery loop."""

        async def invoke() -> T:
            return func(*args)

        return self.run(invoke())

    def ensure_initialized(self) -> None:
        if not self.initialized:
            self.run(self.coordinator.initialize())
            self.initialized = True
            logger.info("gallery_initialized")

    def snapshot(self) -> GallerySnapshot:
        """Read the coordinator state on its own loop."""
        return self.call(self.coordinator.snapshot)

    def close(self) -> None:
        """Finish background work, release HTTP clients and stop the loop thread."""
        self.run(self.coordinator.aclose())
        self.run(self.coordinator.gateway.aclose())
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        self.loop.close()


def create_gallery_runtime() -> GalleryRuntime:
    """Wire a coordinator and its collaborators from configuration."""
    notifier = QueueNotifier()
    gateway = RemoteDataGateway.from_config()
    coordinator = GalleryCoordinator(
        gateway,
        GallerySettings.from_config(),
        notifier,
        media=MediaPreparer.from_config(),
        tagger=TagSuggestionService(gateway),
    )
    logger.info("gallery_runtime_created")
    return GalleryRuntime(coordinator, notifier)


def get_gallery_runtime() -> GalleryRuntime:
    """
    Return the gallery runtime of the current browser session.

    Search, filters, selection and pending deletes belong to one session, so
    the runtime lives in ``st.session_state`` and is created on first use.
    """
    runtime = st.session_state.get(RUNTIME_KEY)
    if runtime is None:
        runtime = create_gallery_runtime()
        st.session_state[RUNTIME_KEY] = runtime
    return runtime
