"""
Ports between the gallery core and whatever UI drives it.

The core depends only on these abstractions: a Notifier to surface
toast-style messages, and the GalleryInputPort that a UI binding calls when
files are dropped or the user scrolls near the end of the list.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from ..logging_config import get_logger
from ..services.media import UploadSource

logger = get_logger(__name__)


class NotificationLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A dismissible message, optionally carrying one action (e.g. Undo)."""

    level: NotificationLevel
    title: str
    description: str = ""
    action_label: str | None = None
    action: Callable[[], Any] | None = None


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Default notifier that only writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        log = logger.error if notification.level is NotificationLevel.ERROR else logger.info
        log(
            "notification",
            level=notification.level.value,
            title=notification.title,
            description=notification.description,
            action=notification.action_label,
        )


class GalleryInputPort(ABC):
    """Capabilities a UI binding invokes in place of DOM drop/intersection listeners."""

    @abstractmethod
    async def on_files_dropped(self, files: Sequence[UploadSource]) -> None:
        """Upload a batch of files."""

    @abstractmethod
    async def on_scroll_threshold_reached(self) -> None:
        """Load the next page when the user nears the end of the list."""
