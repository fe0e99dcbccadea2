"""
Integration tests: coordinator and gateway against an in-memory backend over HTTP.
"""

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from design_vault.config import GallerySettings
from design_vault.gallery import GalleryCoordinator
from design_vault.gallery.store import LoadingStrategy
from design_vault.services.gateway import RemoteDataGateway
from design_vault.services.media import UploadSource
from design_vault.ui.handlers.error import NotFoundError
from tests.conftest import RecordingNotifier

pytestmark = pytest.mark.integration

START = datetime(2024, 6, 1, tzinfo=UTC)


class InMemoryBackend:
    """Serves the table REST reads and the Design Vault API from a list of rows."""

    def __init__(self, count: int):
        self.rows = [
            {
                "id": str(i),
                "title": f"Screen {i}",
                "file_path": f"https://cdn.example.com/{i}.png",
                "file_type": "image/png",
                "file_size": 100 * (i + 1),
                "tags": ["button"] if i % 2 else [],
                "created_at": (START - timedelta(minutes=i)).isoformat(),
            }
            for i in range(count)
        ]
        self.tag_service_up = False
        self.tag_service_html = False
        self.requests: list[tuple[str, str]] = []

    def find(self, file_id: str) -> dict | None:
        return next((row for row in self.rows if row["id"] == file_id), None)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if request.url.host == "db.example.com":
            return self.select(request)

        path = request.url.path
        if request.method == "PATCH" and path.startswith("/api/update-file/"):
            row = self.find(path.rsplit("/", 1)[1])
            if row is None:
                return httpx.Response(404, json={"success": False, "error": "File not found"})
            row.update(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "data": {"file": row}})

        if request.method == "DELETE" and path.startswith("/api/delete-file/"):
            row = self.find(path.rsplit("/", 1)[1])
            if row is None:
                return httpx.Response(404, json={"success": False, "error": "File not found"})
            self.rows.remove(row)
            return httpx.Response(200, json={"success": True})

        if request.method == "POST" and path == "/api/upload-file":
            row = {
                "id": f"new-{len(self.rows)}",
                "title": "login-form",
                "file_path": "https://cdn.example.com/login-form.png",
                "file_type": "image/png",
                "file_size": len(request.content),
                "tags": [],
                "created_at": (START + timedelta(minutes=1)).isoformat(),
            }
            self.rows.insert(0, row)
            return httpx.Response(200, json={"success": True, "data": {"file": row}})

        if request.method == "POST" and path == "/api/generate-tags":
            if self.tag_service_html:
                return httpx.Response(200, text="<html>gateway page</html>")
            if not self.tag_service_up:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json={"tags": ["login", "form"]})

        return httpx.Response(405)

    def select(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        rows = self.rows
        if "id" in params:
            rows = [row for row in rows if f"eq.{row['id']}" == params["id"]]
        if "offset" not in params:
            return httpx.Response(200, json=rows)

        offset, limit = int(params["offset"]), int(params["limit"])
        window = rows[offset : offset + limit]
        end = offset + max(len(window), 1) - 1
        return httpx.Response(206, json=window, headers={"Content-Range": f"{offset}-{end}/{len(rows)}"})


def make_coordinator(backend: InMemoryBackend, notifier: RecordingNotifier) -> GalleryCoordinator:
    gateway = RemoteDataGateway(
        "https://db.example.com",
        "anon-key",
        "https://api.example.com",
        transport=httpx.MockTransport(backend.handler),
        max_file_size=1024 * 1024,
    )
    settings = GallerySettings(page_size=3, undo_window_seconds=0.01, window_restore_delay_seconds=0.01)
    return GalleryCoordinator(gateway, settings, notifier)


async def close(coordinator: GalleryCoordinator) -> None:
    await coordinator.aclose()
    await coordinator.gateway.aclose()


class TestGalleryFlow:
    """End-to-end flows through the coordinator, gateway and HTTP."""

    def setup_method(self):
        """Set up test fixtures."""
        self.backend = InMemoryBackend(7)
        self.notifier = RecordingNotifier()
        self.coordinator = make_coordinator(self.backend, self.notifier)

    @pytest.mark.asyncio
    async def test_paging_and_search(self):
        """Test windowed paging, a full-collection search and the window restore."""
        coordinator = self.coordinator
        await coordinator.initialize()

        assert coordinator.store.ids() == ["0", "1", "2"]
        assert coordinator.store.total_count == 7
        assert coordinator.all_tags == ["button"]
        assert coordinator.no_tag_count == 4

        await coordinator.on_scroll_threshold_reached()
        await coordinator.on_scroll_threshold_reached()
        assert len(coordinator.store) == 7
        assert coordinator.has_more is False

        coordinator.set_search_query("screen 5")
        await coordinator.wait_idle()
        assert coordinator.pagination.state is LoadingStrategy.FULL
        assert [item.id for item in coordinator.project().display_items] == ["5"]

        coordinator.set_search_query("")
        await coordinator.wait_idle()
        assert coordinator.store.ids() == ["0", "1", "2"]
        await close(coordinator)

    @pytest.mark.asyncio
    async def test_tag_round_trip(self):
        """Test a confirmed tag reaches the backend and the tag aggregates."""
        coordinator = self.coordinator
        await coordinator.initialize()

        assert await coordinator.add_tag("0", "Hero") is True

        assert self.backend.find("0")["tags"] == ["hero"]
        assert coordinator.all_tags == ["button", "hero"]
        assert coordinator.no_tag_count == 3
        await close(coordinator)

    @pytest.mark.asyncio
    async def test_update_of_vanished_item_reverts(self):
        """Test an item deleted elsewhere reverts the local edit and explains why."""
        coordinator = self.coordinator
        await coordinator.initialize()
        self.backend.rows.remove(self.backend.find("1"))

        assert await coordinator.update_title("1", "Renamed") is False

        assert coordinator.store.get("1").title == "Screen 1"
        assert self.notifier.notifications[-1].description == "File not found. It may have been deleted."
        await close(coordinator)

    @pytest.mark.asyncio
    async def test_delete_after_undo_window(self):
        """Test the row is deleted once and a second delete reports not found."""
        coordinator = self.coordinator
        await coordinator.initialize()

        coordinator.delete_item("0")
        await coordinator.wait_idle()

        assert self.backend.find("0") is None
        assert coordinator.store.total_count == 6
        with pytest.raises(NotFoundError):
            await coordinator.gateway.delete("0")
        await close(coordinator)

    @pytest.mark.asyncio
    async def test_upload_falls_back_when_tag_service_down(self, sample_image_data):
        """Test an upload still gets keyword suggestions when the tag endpoint fails."""
        coordinator = self.coordinator
        await coordinator.initialize()

        await coordinator.on_files_dropped([UploadSource("login-form.png", sample_image_data, "image/png")])

        item = coordinator.store.items[0]
        assert item.title == "login-form"
        assert coordinator.pending_tags[item.id] == ["form", "input", "authentication"]
        assert ("POST", "/api/generate-tags") in self.backend.requests
        await close(coordinator)

    @pytest.mark.asyncio
    async def test_unreadable_tag_response_keeps_batch_going(self, sample_image_data):
        """Test an HTML page from the tag endpoint falls back and the rest of the batch uploads."""
        self.backend.tag_service_html = True
        coordinator = self.coordinator
        await coordinator.initialize()

        await coordinator.on_files_dropped(
            [
                UploadSource("login-form.png", sample_image_data, "image/png"),
                UploadSource("card.png", sample_image_data, "image/png"),
            ]
        )

        assert self.backend.requests.count(("POST", "/api/upload-file")) == 2
        card, login = coordinator.store.items[:2]
        assert coordinator.pending_tags[login.id] == ["form", "input", "authentication"]
        assert coordinator.pending_tags[card.id] == ["card", "container"]
        assert coordinator.is_uploading is False
        assert "Upload failed" not in self.notifier.titles()
        await close(coordinator)

    @pytest.mark.asyncio
    async def test_upload_uses_generated_tags(self, sample_image_data):
        """Test tags from the endpoint become pending suggestions."""
        self.backend.tag_service_up = True
        coordinator = self.coordinator

        item = await coordinator.upload_file(UploadSource("login-form.png", sample_image_data, "image/png"))

        assert coordinator.pending_tags[item.id] == ["login", "form"]
        await close(coordinator)
