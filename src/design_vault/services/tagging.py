"""
Tag suggestion for uploaded design assets.

TagGenerator runs on the API server and asks a vision model to name the UI
components visible in an image. TagSuggestionService runs next to the gallery
and talks to the API through the gateway. Both fall back to a filename
keyword table, so tag suggestion never fails from the caller's point of view.
"""

import asyncio
import re
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx

from ..config import Config, get_config
from ..logging_config import get_logger
from ..models import TagSuggestion
from ..ui.handlers.error import TagGenerationError, handle_error
from .validation import sanitize_tags

logger = get_logger(__name__)

MAX_FALLBACK_TAGS = 4
MAX_GENERATED_TAGS = 6
MAX_GENERATED_TAG_LENGTH = 25

IMAGE_KEYWORDS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("button",), ("button", "interactive")),
    (("form",), ("form", "input")),
    (("card",), ("card", "container")),
    (("nav",), ("navigation", "menu")),
    (("chart", "graph"), ("chart", "data-viz")),
    (("table",), ("table", "data-display")),
    (("modal", "dialog"), ("modal", "overlay")),
    (("dashboard",), ("dashboard", "layout")),
    (("login", "auth"), ("authentication", "form")),
    (("profile",), ("profile", "user")),
    (("settings",), ("settings", "configuration")),
    (("dark",), ("dark-mode",)),
    (("light",), ("light-mode",)),
]

VIDEO_KEYWORDS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("button",), ("button", "interaction")),
    (("card",), ("card", "animation")),
    (("form",), ("form", "input")),
    (("nav",), ("navigation", "menu")),
    (("dashboard",), ("dashboard", "layout")),
    (("animation", "anim"), ("animation", "motion")),
    (("transition",), ("transition", "motion")),
]

IMAGE_DEFAULT_TAGS = ("ui-component", "design")
VIDEO_DEFAULT_TAGS = ("ui-component", "video")

TAGGING_PROMPT = """Look at this UI design and list the specific design-system components and patterns it shows.

Prefer precise component names over generic ones, for example primary-button, icon-button,
text-input, toggle-switch, breadcrumb, sidebar-nav, line-chart, donut-chart, data-table,
avatar-list, badge, progress-bar, toast, modal, metric-card, hero-section, pricing-table,
dark-mode, rounded-corners, compact-layout.

File name: "{filename}"

Name 4 to 6 components you can actually see. Answer with the names separated by commas and nothing else."""


def generate_fallback_tags(filename: str, is_video: bool = False) -> list[str]:
    """
    Derive tags from keywords in the file name.

    Args:
        filename: Name of the uploaded file
        is_video: Use the video keyword table

    Returns:
        At most four de-duplicated tags, a generic default when nothing matches
    """
    name = filename.lower()
    table = VIDEO_KEYWORDS if is_video else IMAGE_KEYWORDS
    tags: list[str] = []
    for keywords, keyword_tags in table:
        if any(keyword in name for keyword in keywords):
            tags.extend(keyword_tags)

    if not tags:
        tags.extend(VIDEO_DEFAULT_TAGS if is_video else IMAGE_DEFAULT_TAGS)

    return list(dict.fromkeys(tags))[:MAX_FALLBACK_TAGS]


_QUOTES = re.compile(r"^[\"'`]+|[\"'`]+$")
_CODE_FENCE = re.compile(r"```.*$")


def parse_generated_tags(text: str) -> list[str]:
    """Parse the comma-separated model answer into clean tags."""
    tags = []
    for raw in text.split(","):
        tag = _QUOTES.sub("", raw.strip().lower())
        tag = _CODE_FENCE.sub("", tag).strip()
        if not tag or len(tag) >= MAX_GENERATED_TAG_LENGTH or "\n" in tag:
            continue
        tags.append(tag)
    return tags[:MAX_GENERATED_TAGS]


class TagSource(Protocol):
    async def generate_tags(self, filename: str, image_url: str) -> TagSuggestion: ...


class TagSuggestionService:
    """Client-side tag suggestion. Every failure is absorbed into the fallback table."""

    def __init__(self, source: TagSource):
        self.source = source

    async def suggest(self, filename: str, image_url: str, is_video: bool = False) -> TagSuggestion:
        if is_video:
            return TagSuggestion(tags=generate_fallback_tags(filename, is_video=True), fallback=True)

        try:
            suggestion = await self.source.generate_tags(filename, image_url)
        except Exception as e:
            error_info = handle_error(e, {"operation": "suggest_tags", "filename": filename})
            logger.info("tag_suggestion_fallback", filename=filename, error_code=error_info.code)
            return TagSuggestion(tags=generate_fallback_tags(filename), fallback=True)

        tags = sanitize_tags(suggestion.tags)
        if not tags:
            return TagSuggestion(tags=generate_fallback_tags(filename), fallback=True)
        return TagSuggestion(tags=tags, fallback=suggestion.fallback)


class TagGenerator:
    """
    Server-side tag generation backed by the OpenAI chat completions API.

    One initial attempt plus ``max_retries`` retries, each bounded by
    ``timeout`` seconds, with exponential backoff of 2, 4, 8... seconds
    between attempts. After the last failure the filename table is used and
    the suggestion is flagged as a fallback.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o",
        timeout: float = 30.0,
        max_retries: int = 3,
        *,
        base_url: str = "https://api.openai.com/v1",
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key.strip() if api_key else None
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self._sleep = sleep
        if not self.api_key:
            logger.warning("openai_api_key_missing", detail="tag generation will use filename keywords")

    @classmethod
    def from_config(cls, config: Config | None = None) -> "TagGenerator":
        config = config or get_config()
        return cls(
            api_key=config.get("OPENAI_API_KEY"),
            model=config.get("OPENAI_MODEL", "gpt-4o"),
            timeout=config.get("TAG_GENERATION_TIMEOUT", 30.0, float),
            max_retries=config.get("TAG_GENERATION_MAX_RETRIES", 3, int),
        )

    def _build_payload(self, filename: str, image_url: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": TAGGING_PROMPT.format(filename=filename)},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
        }

    async def _request_tags(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> list[str]:
        response = await client.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        if response.status_code != 200:
            raise TagGenerationError(
                f"OpenAI API error {response.status_code}", details={"status_code": response.status_code}
            )

        data = response.json()
        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise TagGenerationError("Malformed completion response", original_exception=e) from e

        tags = parse_generated_tags(text)
        if not tags:
            raise TagGenerationError("Completion contained no usable tags")
        return tags

    async def generate(self, filename: str, image_url: str) -> TagSuggestion:
        """Generate tags for an image. Never raises."""
        if not self.api_key:
            return TagSuggestion(tags=generate_fallback_tags(filename), fallback=True)

        payload = self._build_payload(filename, image_url)
        attempts = self.max_retries + 1
        last_error: Exception | None = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    tags = await asyncio.wait_for(self._request_tags(client, payload), timeout=self.timeout)
                    logger.info("tags_generated", filename=filename, tags=tags, attempt=attempt)
                    return TagSuggestion(tags=tags, fallback=False)
                except (TimeoutError, httpx.HTTPError, TagGenerationError) as e:
                    last_error = e
                    logger.warning(
                        "tag_generation_attempt_failed",
                        filename=filename,
                        attempt=attempt,
                        max_attempts=attempts,
                        error=str(e) or type(e).__name__,
                    )

                if attempt < attempts:
                    await self._sleep(2**attempt)

        logger.warning(
            "tag_generation_fallback",
            filename=filename,
            attempts=attempts,
            error=str(last_error) if last_error else None,
        )
        return TagSuggestion(tags=generate_fallback_tags(filename), fallback=True)
