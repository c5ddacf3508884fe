from __future__ import annotations
"""Image generation services — scene illustrations and character portraits.

Both extend BaseGenService so every collaborator call shares the same
single-retry policy for transient failures and the same metrics.
"""

import enum
import logging
from typing import Any, Sequence

from anidirector.config import Settings, get_settings
from anidirector.services.base_gen_service import BaseGenService, GenServiceConfig
from anidirector.services.providers import ImageMode, MediaGenerator

logger = logging.getLogger(__name__)


class ImageTier(str, enum.Enum):
    """Model tier chosen in the cue sheet."""

    STANDARD = "standard"
    PRO = "pro"


def _service_config(settings: Settings) -> GenServiceConfig:
    return GenServiceConfig(
        max_retries=1,
        retry_delay=settings.GENERATION_RETRY_DELAY,
        timeout=settings.GENERATION_TIMEOUT,
    )


class ImageGenService(BaseGenService[str]):
    """Scene image generation through the collaborator."""

    service_name = "image_gen"

    def __init__(self, client: MediaGenerator, settings: Settings | None = None, **kwargs: Any) -> None:
        self.settings = settings or get_settings()
        super().__init__(_service_config(self.settings), **kwargs)
        self.client = client

    def model_for(self, tier: ImageTier) -> str:
        if ImageTier(tier) is ImageTier.PRO:
            return self.settings.IMAGE_MODEL_PRO
        return self.settings.IMAGE_MODEL

    async def _generate(self, **kwargs: Any) -> str:
        return await self.client.generate_image(
            kwargs["prompt"],
            kwargs.get("reference_images") or [],
            kwargs.get("character_descriptions") or [],
            kwargs["aspect_ratio"],
            kwargs.get("mode", ImageMode.CONCEPT),
            model=kwargs.get("model"),
        )

    async def generate(
        self,
        prompt: str,
        *,
        reference_images: Sequence[str] = (),
        character_descriptions: Sequence[str] = (),
        aspect_ratio: str = "16:9",
        mode: ImageMode = ImageMode.CONCEPT,
        tier: ImageTier = ImageTier.STANDARD,
    ) -> str:
        """Generate one image and return its encoded reference."""
        result = await self.execute(
            prompt=prompt,
            reference_images=list(reference_images)[: self.settings.MAX_REFERENCE_IMAGES],
            character_descriptions=list(character_descriptions),
            aspect_ratio=aspect_ratio,
            mode=mode,
            model=self.model_for(tier),
        )
        return result.data


class CharacterDesignService(BaseGenService[str]):
    """Character portrait generation for the casting step."""

    service_name = "character_design"

    def __init__(self, client: MediaGenerator, settings: Settings | None = None, **kwargs: Any) -> None:
        super().__init__(_service_config(settings or get_settings()), **kwargs)
        self.client = client

    async def _generate(self, **kwargs: Any) -> str:
        return await self.client.generate_character_design(kwargs["name"], kwargs["description"])

    async def generate(self, name: str, description: str) -> str:
        result = await self.execute(name=name, description=description)
        logger.info("Character portrait generated for %r", name)
        return result.data
