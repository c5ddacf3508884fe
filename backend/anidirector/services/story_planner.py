"""Story idea and storyboard plan generation.

The collaborator returns loosely shaped JSON; this module turns it into
validated `StoryConfig` fields and a `StoryboardData` with consistent timing.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from anidirector.config import Settings, get_settings
from anidirector.errors import GenerationError
from anidirector.schemas import SecondaryCharacter, StoryboardData, StoryConfig
from anidirector.services.base_gen_service import BaseGenService, GenServiceConfig
from anidirector.services.providers import MediaGenerator

logger = logging.getLogger(__name__)

DEFAULT_SCENE_DURATION = 3

_IDEA_FIELDS = (
    "title",
    "protagonist_name",
    "protagonist_description",
    "rescue_target_name",
    "rescue_target_description",
    "danger_threat",
    "danger_tool",
    "danger_location",
    "setting",
)


def normalize_plan(raw: dict[str, Any]) -> StoryboardData:
    """Validate a raw plan and lay scenes end to end in time.

    `start_offset` of each scene is the sum of the preceding durations; a
    missing or zero duration becomes DEFAULT_SCENE_DURATION. Generation
    flags and image references from the model are discarded.
    """
    scenes = []
    offset = 0.0
    for item in raw.get("scenes") or []:
        if not isinstance(item, dict):
            raise GenerationError(f"Storyboard plan scene is not an object: {item!r:.80}")
        scene = dict(item)
        duration = scene.get("duration") or DEFAULT_SCENE_DURATION
        scene.update({
            "duration": duration,
            "startOffset": offset,
            "conceptImageRef": None,
            "conceptGenerating": False,
            "boardImageRef": None,
            "boardGenerating": False,
        })
        for snake in ("start_offset", "concept_image_ref", "concept_generating",
                      "board_image_ref", "board_generating"):
            scene.pop(snake, None)
        offset += float(duration)
        scenes.append(scene)

    payload = {k: v for k, v in raw.items() if k != "scenes"}
    payload["scenes"] = scenes
    try:
        return StoryboardData.model_validate(payload)
    except PydanticValidationError as e:
        raise GenerationError(f"Storyboard plan has an invalid shape: {e}") from e


def apply_idea(config: StoryConfig, idea: dict[str, Any]) -> StoryConfig:
    """Return a copy of `config` with the suggested fields filled in.

    A single suggested secondary character is appended unless one with the
    same name is already listed.
    """
    parsed = StoryConfig.model_validate(idea)
    suggested = parsed.model_dump(include=set(_IDEA_FIELDS), exclude_unset=True)
    updated = config.model_copy(update=suggested, deep=True)

    name = idea.get("secondaryCharacterName") or idea.get("secondary_character_name")
    if name and all(sc.name != name for sc in updated.secondary_characters):
        description = (
            idea.get("secondaryCharacterDescription")
            or idea.get("secondary_character_description")
            or ""
        )
        updated.secondary_characters.append(SecondaryCharacter(name=name, description=description))
    return updated


class StoryPlanService(BaseGenService[dict]):
    """Text calls to the collaborator: ideas and storyboard plans."""

    service_name = "story_plan"

    def __init__(self, client: MediaGenerator, settings: Settings | None = None, **kwargs: Any) -> None:
        settings = settings or get_settings()
        super().__init__(
            GenServiceConfig(
                max_retries=1,
                retry_delay=settings.GENERATION_RETRY_DELAY,
                timeout=settings.GENERATION_TIMEOUT,
            ),
            **kwargs,
        )
        self.client = client

    async def _generate(self, **kwargs: Any) -> dict:
        if kwargs["kind"] == "idea":
            return await self.client.generate_idea()
        return await self.client.generate_storyboard(kwargs["config"])

    async def suggest_idea(self, config: StoryConfig) -> StoryConfig:
        result = await self.execute(kind="idea")
        try:
            return apply_idea(config, result.data)
        except PydanticValidationError as e:
            raise GenerationError(f"Story idea has an invalid shape: {e}") from e

    async def plan_storyboard(self, config: StoryConfig) -> StoryboardData:
        result = await self.execute(kind="plan", config=config)
        storyboard = normalize_plan(result.data)
        logger.info("Storyboard plan ready: %d scene(s)", len(storyboard.scenes))
        return storyboard
