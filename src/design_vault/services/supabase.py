"""
Service-role client for the hosted backend (PostgREST + storage API).

Only the API server uses this client; it holds the service role key and
performs the paired storage and row operations behind upload, update and
delete.
"""

from typing import Any

import httpx

from ..config import Config, get_config, get_storage_bucket, get_supabase_service_key, get_supabase_url, get_table_name
from ..logging_config import get_logger
from ..ui.handlers.error import DatabaseError, StorageError

logger = get_logger(__name__)


def _failure_message(response: httpx.Response) -> str:
    text = response.text.strip()
    return text or response.reason_phrase or f"HTTP {response.status_code}"


class SupabaseAdminClient:
    def __init__(
        self,
        url: str,
        service_key: str,
        table: str = "uploaded_files",
        bucket: str = "design-vault",
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base = url.rstrip("/")
        self.storage_base = self.api_base + "/storage/v1"
        self.table = table
        self.bucket = bucket
        self._client = httpx.AsyncClient(
            base_url=self.api_base + "/rest/v1",
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: Config | None = None) -> "SupabaseAdminClient":
        config = config or get_config()
        return cls(
            url=get_supabase_url(),
            service_key=get_supabase_service_key(),
            table=get_table_name(),
            bucket=get_storage_bucket(),
            timeout=config.get("SUPABASE_TIMEOUT", 60.0, float),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # Table

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if url.startswith(self.storage_base):
                raise StorageError(f"{operation} failed: {e}", details={"operation": operation}) from e
            raise DatabaseError(f"{operation} failed: {e}", details={"operation": operation}) from e

    async def get_row(self, row_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", f"/{self.table}", "get_row", params={"select": "*", "id": f"eq.{row_id}"})
        if response.status_code != 200:
            raise DatabaseError(f"Failed to fetch row: {_failure_message(response)}", details={"id": row_id})
        rows = response.json()
        return rows[0] if rows else None

    async def insert_row(self, row: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST", f"/{self.table}", "insert_row", json=row, headers={"Prefer": "return=representation"}
        )
        if response.status_code not in (200, 201):
            raise DatabaseError(f"Failed to save file record: {_failure_message(response)}")
        rows = response.json()
        return rows[0] if isinstance(rows, list) else rows

    async def update_row(self, row_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
        """Apply a partial update. Returns None when no row has ``row_id``."""
        response = await self._request(
            "PATCH",
            f"/{self.table}",
            "update_row",
            params={"id": f"eq.{row_id}"},
            json=fields,
            headers={"Prefer": "return=representation"},
        )
        if response.status_code != 200:
            raise DatabaseError(f"Failed to update file: {_failure_message(response)}", details={"id": row_id})
        rows = response.json()
        return rows[0] if rows else None

    async def delete_row(self, row_id: str) -> None:
        response = await self._request("DELETE", f"/{self.table}", "delete_row", params={"id": f"eq.{row_id}"})
        if response.status_code not in (200, 204):
            raise DatabaseError(f"Failed to delete file record: {_failure_message(response)}", details={"id": row_id})

    async def ping(self) -> None:
        response = await self._request("GET", f"/{self.table}", "ping", params={"select": "id", "limit": 1})
        if response.status_code != 200:
            raise DatabaseError(f"Database check failed: {_failure_message(response)}")

    # Storage

    def public_url(self, key: str, bucket: str | None = None) -> str:
        return f"{self.storage_base}/object/public/{bucket or self.bucket}/{key.lstrip('/')}"

    def key_from_public_url(self, url: str, bucket: str | None = None) -> str | None:
        """Recover the object key from a public URL produced by ``public_url``."""
        marker = f"/object/public/{bucket or self.bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1].split("?", 1)[0] or None

    async def list_buckets(self) -> list[str]:
        response = await self._request("GET", f"{self.storage_base}/bucket", "list_buckets")
        if response.status_code != 200:
            raise StorageError(f"Failed to list buckets: {_failure_message(response)}")
        return [bucket.get("name") or bucket.get("id") for bucket in response.json()]

    async def ensure_bucket(self, bucket: str | None = None) -> None:
        """Create the public bucket when it does not exist yet."""
        name = bucket or self.bucket
        if name in await self.list_buckets():
            return
        response = await self._request(
            "POST", f"{self.storage_base}/bucket", "create_bucket", json={"id": name, "name": name, "public": True}
        )
        if response.status_code not in (200, 201, 409):
            raise StorageError(f"Failed to create bucket '{name}': {_failure_message(response)}")
        logger.info("storage_bucket_created", bucket=name)

    async def upload_object(self, key: str, data: bytes, content_type: str, bucket: str | None = None) -> str:
        normalized_key = key.lstrip("/")
        response = await self._request(
            "POST",
            f"{self.storage_base}/object/{bucket or self.bucket}/{normalized_key}",
            "upload_object",
            content=data,
            headers={"Content-Type": content_type, "Cache-Control": "3600", "x-upsert": "false"},
        )
        if response.status_code not in (200, 201):
            raise StorageError(
                f"Failed to upload file: {_failure_message(response)}",
                details={"key": normalized_key, "status_code": response.status_code},
            )
        return normalized_key

    async def remove_object(self, key: str, bucket: str | None = None) -> bool:
        """Best-effort removal. Failures are logged and reported as False."""
        normalized_key = key.lstrip("/")
        url = f"{self.storage_base}/object/{bucket or self.bucket}/{normalized_key}"
        try:
            response = await self._client.delete(url)
        except httpx.HTTPError as e:
            logger.warning("storage_remove_failed", key=normalized_key, error=str(e))
            return False
        if response.status_code not in (200, 204):
            logger.warning(
                "storage_remove_failed",
                key=normalized_key,
                status_code=response.status_code,
                message=_failure_message(response),
            )
            return False
        return True
