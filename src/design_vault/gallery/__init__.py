"""
Gallery core for Design Vault.

This package contains the client-side state coordinator:
- LocalItemStore / PaginationController: Working set and loading strategy
- OptimisticMutationLayer: Local-first edits with confirm or revert
- project_view: Pure derivation of the displayed list
- GalleryCoordinator: Ties the above together behind the UI ports
"""

from .coordinator import GalleryCoordinator, GallerySnapshot
from .mutations import (
    AddTagsCommand,
    DeleteItemCommand,
    OptimisticCommand,
    OptimisticMutationLayer,
    PendingDelete,
    RemoveTagCommand,
    UpdateTitleCommand,
)
from .ports import GalleryInputPort, LoggingNotifier, Notification, NotificationLevel, Notifier
from .projection import ProjectedView, project_view
from .store import LoadingStrategy, LocalItemStore, PaginationController

__all__ = [
    "AddTagsCommand",
    "DeleteItemCommand",
    "GalleryCoordinator",
    "GalleryInputPort",
    "GallerySnapshot",
    "LoadingStrategy",
    "LocalItemStore",
    "LoggingNotifier",
    "Notification",
    "NotificationLevel",
    "Notifier",
    "OptimisticCommand",
    "OptimisticMutationLayer",
    "PaginationController",
    "PendingDelete",
    "ProjectedView",
    "RemoveTagCommand",
    "UpdateTitleCommand",
    "project_view",
]
