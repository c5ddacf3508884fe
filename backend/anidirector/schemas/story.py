from __future__ import annotations
"""Pydantic v2 schemas for the narrative parameters of a project."""

import enum
from typing import ClassVar

from pydantic import Field

from anidirector.schemas.base import CamelModel


class AspectRatio(str, enum.Enum):
    WIDE = "16:9"
    CLASSIC = "4:3"
    VERTICAL = "9:16"


class SecondaryCharacter(CamelModel):
    """A sidekick, villain or human listed in the brief."""

    name: str
    description: str = ""
    id: str | None = Field(None, description="Roster id, linked after casting")


class StoryConfig(CamelModel):
    """Narrative parameters entered in the setup step."""

    title: str = ""

    protagonist_name: str = ""
    protagonist_description: str = ""
    protagonist_id: str | None = None

    rescue_target_name: str = ""
    rescue_target_description: str = ""

    danger_threat: str = ""
    danger_tool: str = ""
    danger_location: str = ""
    setting: str = ""

    secondary_characters: list[SecondaryCharacter] = Field(default_factory=list)
    aspect_ratio: AspectRatio = AspectRatio.WIDE

    # Deprecated single observer slot, kept so older projects still load
    observer: str = ""

    legacy_keys: ClassVar[dict[str, str]] = {
        "mainCharacterName": "protagonistName",
        "mainCharacterDescription": "protagonistDescription",
        "mainCharacterId": "protagonistId",
        "additionalCharacters": "secondaryCharacters",
        "targetToSave": "rescueTargetName",
        "targetToSaveDescription": "rescueTargetDescription",
        "backgroundSetting": "setting",
        "humanCharacter": "observer",
    }
