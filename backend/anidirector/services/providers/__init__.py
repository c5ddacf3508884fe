"""Generative media collaborator implementations.

Every provider implements `MediaGenerator`: text calls return parsed JSON
dicts, image calls return an encoded image reference
(`data:image/png;base64,...`). Providers raise `GenerationError` with the
`transient` flag set for rate limits, timeouts and server errors.
"""

from __future__ import annotations

import enum
from typing import Any, Protocol, Sequence

import httpx

from anidirector.config import Settings, get_settings
from anidirector.schemas import StoryConfig


class ImageMode(str, enum.Enum):
    """Concept illustration or a four-panel storyboard sheet."""

    CONCEPT = "concept"
    BOARD = "board"


class MediaGenerator(Protocol):
    """The external generation service, as consumed by the core."""

    async def generate_idea(self) -> dict[str, Any]:
        ...

    async def generate_storyboard(self, config: StoryConfig) -> dict[str, Any]:
        ...

    async def generate_character_design(self, name: str, description: str) -> str:
        ...

    async def generate_image(
        self,
        prompt: str,
        reference_images: Sequence[str],
        character_descriptions: Sequence[str],
        aspect_ratio: str,
        mode: ImageMode,
        *,
        model: str | None = None,
    ) -> str:
        ...


def get_media_client(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> MediaGenerator:
    """Return the mock client when USE_MOCK_API is set, else the OpenRouter client."""
    settings = settings or get_settings()
    if settings.USE_MOCK_API:
        from anidirector.services.providers.mock import MockMediaClient
        return MockMediaClient()

    from anidirector.services.providers.openrouter import OpenRouterMediaClient
    return OpenRouterMediaClient(settings, http_client=http_client)
