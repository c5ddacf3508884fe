from __future__ import annotations
"""Pydantic v2 schemas for storyboard scenes."""

import re
from typing import Any, ClassVar

from pydantic import Field, field_validator

from anidirector.schemas.base import CamelModel

_ACT_DIGIT = re.compile(r"[123]")


class Scene(CamelModel):
    """One storyboard frame. `id` defines narrative order within a storyboard."""

    id: int
    act: int = Field(1, ge=1, le=3)
    start_offset: float = 0
    duration: float = 3
    visual_description: str = ""
    generation_prompt: str = ""
    camera_angle: str = ""
    involved_character_names: list[str] = Field(default_factory=list)

    concept_image_ref: str | None = None
    concept_generating: bool = False
    board_image_ref: str | None = None
    board_generating: bool = False

    legacy_keys: ClassVar[dict[str, str]] = {
        "startTimeSeconds": "startOffset",
        "videoPrompt": "generationPrompt",
        "charactersInvolved": "involvedCharacterNames",
        "generatedImageUrl": "conceptImageRef",
        "isGeneratingImage": "conceptGenerating",
        "storyboardImageUrl": "boardImageRef",
        "isGeneratingStoryboard": "boardGenerating",
    }

    @field_validator("act", mode="before")
    @classmethod
    def _parse_act(cls, value: Any) -> Any:
        """Accept act labels such as "Act 2" or "2막"."""
        if isinstance(value, str):
            m = _ACT_DIGIT.search(value)
            if not m:
                raise ValueError(f"Unrecognized act label: {value!r}")
            return int(m.group(0))
        return value

    @property
    def is_generating(self) -> bool:
        return self.concept_generating or self.board_generating


class StoryboardData(CamelModel):
    """The ordered scene list plus the overall style note."""

    scenes: list[Scene] = Field(default_factory=list)
    overall_style_note: str = ""

    legacy_keys: ClassVar[dict[str, str]] = {"overallVibe": "overallStyleNote"}

    def find_scene(self, scene_id: int) -> Scene | None:
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None
