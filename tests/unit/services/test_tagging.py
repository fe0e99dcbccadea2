"""
Unit tests for tag suggestion and generation.
"""

import json

import httpx
import pytest

from design_vault.models import TagSuggestion
from design_vault.services.tagging import (
    TagGenerator,
    TagSuggestionService,
    generate_fallback_tags,
    parse_generated_tags,
)
from design_vault.ui.handlers.error import NetworkError


class TestFallbackTags:
    """Test cases for the filename keyword table."""

    def test_login_form(self):
        """Test keywords from several entries combine without duplicates."""
        tags = generate_fallback_tags("login-form.png")

        assert "authentication" in tags
        assert tags.count("form") == 1
        assert tags == ["form", "input", "authentication"]

    def test_default_image_tags(self):
        """Test files without keywords get the generic defaults."""
        assert generate_fallback_tags("IMG_0001.png") == ["ui-component", "design"]

    def test_default_video_tags(self):
        """Test the video defaults."""
        assert generate_fallback_tags("clip.mp4", is_video=True) == ["ui-component", "video"]

    def test_video_table(self):
        """Test the video table differs from the image table."""
        assert generate_fallback_tags("button-press.mov", is_video=True) == ["button", "interaction"]
        assert generate_fallback_tags("button-press.png") == ["button", "interactive"]

    def test_capped_at_four(self):
        """Test at most four tags are returned."""
        assert len(generate_fallback_tags("dark-dashboard-card-button-nav.png")) == 4


class TestParseGeneratedTags:
    """Test cases for parsing the model answer."""

    def test_parse(self):
        """Test comma-separated output is lowercased and unquoted."""
        tags = parse_generated_tags('"Primary-Button", Data-Table, `toast`')
        assert tags == ["primary-button", "data-table", "toast"]

    def test_drops_long_and_empty(self):
        """Test over-long and empty entries are dropped."""
        assert parse_generated_tags("modal, , " + "x" * 30) == ["modal"]

    def test_capped_at_six(self):
        """Test at most six tags are kept."""
        assert len(parse_generated_tags(",".join(f"tag{i}" for i in range(10)))) == 6


class StubSource:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def generate_tags(self, filename: str, image_url: str) -> TagSuggestion:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class TestTagSuggestionService:
    """Test cases for client-side tag suggestion."""

    @pytest.mark.asyncio
    async def test_uses_source(self):
        """Test suggestions from the source are sanitised."""
        service = TagSuggestionService(StubSource(TagSuggestion(tags=["Modal", "modal", "Overlay"])))
        suggestion = await service.suggest("x.png", "https://cdn.example.com/x.png")

        assert suggestion.tags == ["modal", "overlay"]
        assert suggestion.fallback is False

    @pytest.mark.asyncio
    async def test_falls_back_on_error(self):
        """Test a failing source falls back to the keyword table."""
        service = TagSuggestionService(StubSource(error=NetworkError("unreachable")))
        suggestion = await service.suggest("login-form.png", "https://cdn.example.com/login-form.png")

        assert "authentication" in suggestion.tags
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_falls_back_on_unexpected_exception(self):
        """Test an exception outside the error taxonomy still falls back."""
        service = TagSuggestionService(StubSource(error=ValueError("Expecting value: line 1 column 1 (char 0)")))
        suggestion = await service.suggest("modal-dialog.png", "https://cdn.example.com/modal-dialog.png")

        assert suggestion.tags == ["modal", "overlay"]
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_falls_back_on_empty(self):
        """Test an empty suggestion falls back."""
        service = TagSuggestionService(StubSource(TagSuggestion(tags=["!!!"])))
        suggestion = await service.suggest("card.png", "https://cdn.example.com/card.png")

        assert suggestion.tags == ["card", "container"]
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_videos_skip_source(self):
        """Test videos use the video table without calling the source."""
        source = StubSource(TagSuggestion(tags=["unused"]))
        suggestion = await TagSuggestionService(source).suggest("card-flip.mp4", "https://x", is_video=True)

        assert source.calls == 0
        assert suggestion.tags == ["card", "animation"]
        assert suggestion.fallback is True


def completion(content: str) -> dict:
    return {"choices": [{"message": {"content": content}}]}


class TestTagGenerator:
    """Test cases for server-side tag generation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.delays: list[float] = []

    async def fake_sleep(self, delay: float) -> None:
        self.delays.append(delay)

    def make_generator(self, handler, **kwargs) -> TagGenerator:
        return TagGenerator(
            "sk-test",
            transport=httpx.MockTransport(handler),
            sleep=self.fake_sleep,
            base_url="https://llm.example.com/v1",
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_success(self):
        """Test a successful completion."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("primary-button, card, toast"))

        suggestion = await self.make_generator(handler).generate("a.png", "https://cdn.example.com/a.png")

        assert suggestion.tags == ["primary-button", "card", "toast"]
        assert suggestion.fallback is False
        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        image_part = seen["body"]["messages"][0]["content"][1]
        assert image_part["image_url"]["url"] == "https://cdn.example.com/a.png"
        assert self.delays == []

    @pytest.mark.asyncio
    async def test_retries_with_backoff_then_falls_back(self):
        """Test one attempt plus three retries with 2, 4 and 8 second waits."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(500, json={"error": "overloaded"})

        suggestion = await self.make_generator(handler).generate("login-form.png", "https://cdn.example.com/l.png")

        assert len(attempts) == 4
        assert self.delays == [2, 4, 8]
        assert suggestion.fallback is True
        assert "authentication" in suggestion.tags

    @pytest.mark.asyncio
    async def test_recovers_on_retry(self):
        """Test a transient failure followed by success."""
        responses = iter([httpx.Response(503), httpx.Response(200, json=completion("modal"))])

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        suggestion = await self.make_generator(handler).generate("a.png", "https://cdn.example.com/a.png")

        assert suggestion.tags == ["modal"]
        assert self.delays == [2]

    @pytest.mark.asyncio
    async def test_unusable_completion_is_retried(self):
        """Test a completion without usable tags counts as a failure."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=completion(""))

        generator = self.make_generator(handler, max_retries=1)
        suggestion = await generator.generate("x.png", "https://cdn.example.com/x.png")

        assert self.delays == [2]
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test a missing key goes straight to the fallback."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        generator = TagGenerator(None, transport=httpx.MockTransport(handler), sleep=self.fake_sleep)
        suggestion = await generator.generate("nav-bar.png", "https://cdn.example.com/n.png")

        assert suggestion.tags == ["navigation", "menu"]
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """Test malformed completions raise inside the attempt and are absorbed."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        generator = self.make_generator(handler, max_retries=0)
        suggestion = await generator.generate("form.png", "https://cdn.example.com/f.png")

        assert suggestion.fallback is True
