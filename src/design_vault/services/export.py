"""
Zip export of gallery items.

Each item's media is downloaded from its public URL and packed into an
in-memory archive. Items that fail to download are reported, not fatal,
unless nothing at all could be downloaded.
"""

import io
import math
import zipfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from urllib.parse import urlparse

import httpx

from ..logging_config import get_logger
from ..models import GalleryItem
from ..ui.handlers.error import InternalError, ValidationError
from .validation import sanitize_filename

logger = get_logger(__name__)

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "application/pdf": "pdf",
    "text/plain": "txt",
}

COMPRESSION_LEVEL = 6


class ExportStatus(Enum):
    PREPARING = "preparing"
    DOWNLOADING = "downloading"
    COMPRESSING = "compressing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ExportProgress:
    current_file: int
    total_files: int
    current_file_name: str
    status: ExportStatus
    percentage: int


@dataclass
class ExportResult:
    file_name: str
    data: bytes
    successful: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)


ProgressCallback = Callable[[ExportProgress], None]


def file_extension_for(item: GalleryItem) -> str:
    """Extension from the MIME type, then the URL suffix, then ``bin``."""
    if item.mime_type:
        known = MIME_EXTENSIONS.get(item.mime_type)
        if known:
            return known
        parts = item.mime_type.split("/")
        if len(parts) == 2 and parts[1]:
            return parts[1]

    path = urlparse(item.url).path
    name = path.rsplit("/", 1)[-1]
    if "." in name:
        return name.rsplit(".", 1)[1]
    return "bin"


def unique_name(name: str, taken: set[str]) -> str:
    """Return ``name`` or ``name (n).ext`` so no entry in the archive is overwritten."""
    if name not in taken:
        return name
    base, dot, extension = name.rpartition(".")
    counter = 1
    while True:
        candidate = f"{base} ({counter}).{extension}" if dot else f"{name} ({counter})"
        if candidate not in taken:
            return candidate
        counter += 1


def zip_name_for(items: Sequence[GalleryItem], selected: bool, today: datetime | None = None) -> str:
    if not selected:
        date = (today or datetime.now(UTC)).strftime("%Y-%m-%d")
        name = f"gallery-export-{date}-{len(items)}-files"
    elif len(items) == 1:
        name = f"{items[0].title}-export"
    else:
        name = f"selected-files-{len(items)}-items"
    return f"{sanitize_filename(name)}.zip"


def estimate_zip_size(items: Sequence[GalleryItem]) -> int:
    # Media is already compressed; assume about 10% savings
    return round(sum(item.file_size or 0 for item in items) * 0.9)


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    exponent = min(int(math.log(size, 1024)), len(units) - 1)
    value = round(size / 1024**exponent, 2)
    return f"{value:g} {units[exponent]}"


class ExportService:
    """Builds zip archives from gallery items."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 60.0):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def build_zip(
        self,
        items: Sequence[GalleryItem],
        zip_name: str = "gallery-files.zip",
        on_progress: ProgressCallback | None = None,
    ) -> ExportResult:
        """
        Download items and pack them into a zip archive.

        Args:
            items: Items to export
            zip_name: File name of the archive
            on_progress: Called with an ExportProgress at each step

        Returns:
            ExportResult with the archive bytes and per-file outcome

        Raises:
            ValidationError: If there is nothing to export
            InternalError: If no file could be downloaded
        """
        if not items:
            raise ValidationError("No files to download", field="items")

        total = len(items)
        completed = 0

        def report(status: ExportStatus, current_name: str = "") -> None:
            if on_progress is None:
                return
            percentage = 100 if status is ExportStatus.COMPLETE else round(completed / total * 100)
            on_progress(ExportProgress(completed + 1, total, current_name, status, percentage))

        report(ExportStatus.PREPARING)
        client = await self._get_client()
        result = ExportResult(file_name=zip_name, data=b"")
        buffer = io.BytesIO()
        taken: set[str] = set()

        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESSION_LEVEL) as archive:
            for item in items:
                name = f"{sanitize_filename(item.title)}.{file_extension_for(item)}"
                report(ExportStatus.DOWNLOADING, name)
                try:
                    response = await client.get(item.url)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    logger.warning("export_download_failed", item_id=item.id, file_name=name, error=str(e))
                    result.failed.append((name, str(e)))
                    completed += 1
                    continue

                entry = unique_name(name, taken)
                taken.add(entry)
                archive.writestr(entry, response.content)
                result.successful.append(entry)
                completed += 1

            if not result.successful:
                report(ExportStatus.ERROR)
                raise InternalError("Failed to download any files", details={"total": total})

            report(ExportStatus.COMPRESSING)

        result.data = buffer.getvalue()
        report(ExportStatus.COMPLETE)
        logger.info(
            "zip_export_completed",
            zip_name=zip_name,
            successful=len(result.successful),
            failed=len(result.failed),
            size=len(result.data),
        )
        return result
