"""
Remote data gateway for Design Vault.

Reads go straight to the hosted REST endpoint of the uploaded files table;
mutations go through the Design Vault API so storage and row changes stay
paired on the server. The gateway keeps no cache: every call is a network
round trip returning normalized GalleryItem values.
"""

import json
import time
from typing import Any

import httpx

from ..config import (
    Config,
    get_api_base_url,
    get_config,
    get_max_file_size,
    get_supabase_anon_key,
    get_supabase_url,
    get_table_name,
)
from ..logging_config import get_logger, log_performance
from ..models import FilterState, GalleryItem, MediaType, PageResult, SortField, SortOrder, StorageStats, TagSuggestion
from ..ui.handlers.error import (
    DatabaseError,
    DeleteError,
    DesignVaultError,
    NetworkError,
    NotFoundError,
    TagGenerationError,
    UploadError,
    ValidationError,
)
from .validation import sanitize_tags, validate_upload

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20

SORT_COLUMNS = {
    SortField.DATE: "created_at",
    SortField.SIZE: "file_size",
    SortField.TITLE: "title",
    SortField.TAGS: "created_at",
}

TYPE_FILTERS = {
    MediaType.IMAGE: "file_type.like.image/*",
    MediaType.VIDEO: "file_type.like.video/*",
    MediaType.GIF: "file_type.eq.image/gif",
}


def parse_content_range(header: str | None) -> int | None:
    """Extract the total from a ``Content-Range: 0-19/57`` header."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


def _response_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


def _error_for_response(
    response: httpx.Response, operation: str, default: type[DesignVaultError]
) -> DesignVaultError:
    message = _response_message(response)
    details = {"operation": operation, "status_code": response.status_code}
    if response.status_code == 400:
        return ValidationError(message, details=details)
    if response.status_code == 404:
        return NotFoundError(message, details=details)
    return default(message, details=details)


class RemoteDataGateway:
    """
    Async client for the persistence collaborator.

    Args:
        supabase_url: Base URL of the hosted backend
        anon_key: Public key for REST reads
        api_base_url: Base URL of the Design Vault API
        table: Name of the uploaded files table
        transport: Optional httpx transport, shared by both clients
        timeout: Per-request timeout for reads and small mutations
        upload_timeout: Per-request timeout for uploads
        max_file_size: Client-side upload size limit
    """

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        api_base_url: str,
        table: str = "uploaded_files",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        upload_timeout: float = 300.0,
        max_file_size: int | None = None,
    ) -> None:
        self.table = table
        self.upload_timeout = upload_timeout
        self.max_file_size = max_file_size
        self._rest = httpx.AsyncClient(
            base_url=supabase_url.rstrip("/") + "/rest/v1",
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self._api = httpx.AsyncClient(base_url=api_base_url.rstrip("/"), timeout=timeout, transport=transport)

    @classmethod
    def from_config(
        cls, config: Config | None = None, transport: httpx.AsyncBaseTransport | None = None
    ) -> "RemoteDataGateway":
        config = config or get_config()
        return cls(
            supabase_url=get_supabase_url(),
            anon_key=get_supabase_anon_key(),
            api_base_url=get_api_base_url(),
            table=get_table_name(),
            transport=transport,
            timeout=config.get("GATEWAY_TIMEOUT", 30.0, float),
            max_file_size=get_max_file_size(),
        )

    async def aclose(self) -> None:
        await self._rest.aclose()
        await self._api.aclose()

    async def __aenter__(self) -> "RemoteDataGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _select(self, operation: str, params: dict[str, Any], headers: dict[str, str] | None = None):
        try:
            response = await self._rest.get(f"/{self.table}", params=params, headers=headers)
        except httpx.TransportError as e:
            raise NetworkError(
                f"{operation} failed: {e}", details={"operation": operation}, original_exception=e
            ) from e

        if response.status_code not in (200, 206):
            raise _error_for_response(response, operation, DatabaseError)
        return response

    async def load_page(
        self, page: int, page_size: int = DEFAULT_PAGE_SIZE, filters: FilterState | None = None
    ) -> PageResult:
        """
        Load one page of the collection.

        Args:
            page: 1-based page number
            page_size: Items per page
            filters: Optional sort override and type filter

        Returns:
            PageResult with the page items, the exact total and whether more remain
        """
        start = time.perf_counter()
        offset = (max(page, 1) - 1) * page_size
        column, direction = "created_at", "desc"
        params: dict[str, Any] = {"select": "*", "offset": offset, "limit": page_size}

        if filters is not None:
            column = SORT_COLUMNS[filters.sort_by]
            direction = "asc" if filters.sort_order is SortOrder.ASC else "desc"
            if filters.file_types:
                clauses = sorted(TYPE_FILTERS[file_type] for file_type in filters.file_types)
                params["or"] = f"({','.join(clauses)})"
        params["order"] = f"{column}.{direction}"

        response = await self._select("load_page", params, headers={"Prefer": "count=exact"})
        items = [GalleryItem.from_database_file(row) for row in response.json() or []]
        total = parse_content_range(response.headers.get("content-range"))
        total_count = total if total is not None else offset + len(items)
        has_more = offset + len(items) < total_count

        log_performance("load_page", time.perf_counter() - start, page=page, count=len(items))
        logger.debug("page_loaded", page=page, count=len(items), total_count=total_count, has_more=has_more)
        return PageResult(items=items, total_count=total_count, has_more=has_more)

    async def load_all(self) -> list[GalleryItem]:
        """Fetch the whole collection, newest first."""
        start = time.perf_counter()
        response = await self._select("load_all", {"select": "*", "order": "created_at.desc"})
        items = [GalleryItem.from_database_file(row) for row in response.json() or []]
        log_performance("load_all", time.perf_counter() - start, count=len(items))
        return items

    async def get_item(self, item_id: str) -> GalleryItem | None:
        response = await self._select("get_item", {"select": "*", "id": f"eq.{item_id}", "limit": 1})
        rows = response.json() or []
        return GalleryItem.from_database_file(rows[0]) if rows else None

    async def get_all_tags(self) -> list[str]:
        """Union of all tags across the collection, trimmed, de-duplicated and sorted."""
        response = await self._select("get_all_tags", {"select": "tags"})
        tags: set[str] = set()
        for row in response.json() or []:
            row_tags = row.get("tags")
            if not isinstance(row_tags, list):
                continue
            tags.update(tag.strip() for tag in row_tags if isinstance(tag, str) and tag.strip())
        return sorted(tags)

    async def get_no_tag_count(self) -> int:
        """Count items whose tags are null, not a list, or empty."""
        response = await self._select("get_no_tag_count", {"select": "tags"})
        rows = response.json() or []
        return sum(1 for row in rows if not isinstance(row.get("tags"), list) or not row.get("tags"))

    async def get_storage_stats(self) -> StorageStats:
        response = await self._select("get_storage_stats", {"select": "file_type,file_size"})
        stats = StorageStats()
        for row in response.json() or []:
            stats.add(MediaType.from_mime(row.get("file_type")), int(row.get("file_size") or 0))
        return stats

    async def update(self, item_id: str, title: str | None = None, tags: list[str] | None = None) -> GalleryItem:
        """
        Partially update an item. Tags are sent as the full resulting set.

        Raises:
            NotFoundError: If the item no longer exists
            ValidationError: If the server rejects the payload
            DatabaseError: On any other failure
        """
        payload: dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if tags is not None:
            payload["tags"] = sanitize_tags(tags)

        try:
            response = await self._api.patch(f"/api/update-file/{item_id}", json=payload)
        except httpx.TransportError as e:
            raise NetworkError(f"Update failed: {e}", details={"item_id": item_id}, original_exception=e) from e

        if response.status_code != 200:
            raise _error_for_response(response, "update", DatabaseError)

        logger.debug("item_updated", item_id=item_id, fields=sorted(payload))
        return GalleryItem.from_database_file(response.json()["data"]["file"])

    async def delete(self, item_id: str) -> None:
        """
        Delete an item and its stored object. A second delete of the same id fails.

        Raises:
            NotFoundError: If the item does not exist
            DeleteError: On any other failure
        """
        try:
            response = await self._api.delete(f"/api/delete-file/{item_id}")
        except httpx.TransportError as e:
            raise NetworkError(f"Delete failed: {e}", details={"item_id": item_id}, original_exception=e) from e

        if response.status_code != 200:
            raise _error_for_response(response, "delete", DeleteError)
        logger.debug("item_deleted", item_id=item_id)

    async def upload(
        self,
        filename: str,
        data: bytes,
        content_type: str,
        title: str | None = None,
        tags: tuple[str, ...] | list[str] = (),
    ) -> GalleryItem:
        """
        Upload a file and create its record. Never retried.

        Raises:
            ValidationError: If the file fails client-side validation
            UploadError: If the upload fails remotely
        """
        validate_upload(filename, len(data), content_type, self.max_file_size)

        form = {"title": title or filename, "tags": json.dumps(sanitize_tags(tags))}
        files = {"file": (filename, data, content_type)}
        start = time.perf_counter()
        try:
            response = await self._api.post("/api/upload-file", data=form, files=files, timeout=self.upload_timeout)
        except httpx.TransportError as e:
            raise UploadError(f"Upload failed: {e}", details={"filename": filename}, original_exception=e) from e

        if response.status_code != 200:
            raise _error_for_response(response, "upload", UploadError)

        item = GalleryItem.from_database_file(response.json()["data"]["file"])
        log_performance("upload", time.perf_counter() - start, filename=filename, size=len(data))
        return item

    async def generate_tags(self, filename: str, image_url: str) -> TagSuggestion:
        """
        Ask the API for tag suggestions.

        Raises:
            TagGenerationError: If the endpoint cannot be reached or answers with an error
        """
        try:
            response = await self._api.post("/api/generate-tags", json={"filename": filename, "imageUrl": image_url})
        except httpx.TransportError as e:
            raise TagGenerationError(f"Tag suggestion failed: {e}", original_exception=e) from e

        if response.status_code != 200:
            raise TagGenerationError(
                f"Tag suggestion failed: {_response_message(response)}",
                details={"status_code": response.status_code},
            )

        try:
            body = response.json()
            return TagSuggestion(tags=list(body.get("tags") or []), fallback=bool(body.get("fallback", False)))
        except (ValueError, AttributeError, TypeError) as e:
            raise TagGenerationError(f"Tag suggestion returned an unreadable body: {e}", original_exception=e) from e
