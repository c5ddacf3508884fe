from __future__ import annotations
"""Pydantic v2 schemas for persisted project snapshots and backups."""

from datetime import datetime
from typing import ClassVar

from pydantic import Field

from anidirector.models.project import ProjectStage
from anidirector.schemas.base import CamelModel
from anidirector.schemas.character import Character
from anidirector.schemas.scene import StoryboardData
from anidirector.schemas.story import StoryConfig


class SavedProject(CamelModel):
    """A point-in-time snapshot of one project.

    A save replaces any prior record with the same id.
    """

    id: str = Field(..., min_length=1)
    name: str
    updated_at: datetime
    characters: list[Character] = Field(default_factory=list)
    story_config: StoryConfig
    storyboard_data: StoryboardData | None = None
    stage: ProjectStage = ProjectStage.SETUP_STORY

    legacy_keys: ClassVar[dict[str, str]] = {"step": "stage"}


class BackupDocument(CamelModel):
    """Portable save file, independent of local store ids."""

    version: str
    export_date: datetime
    story_config: StoryConfig
    characters: list[Character]
    storyboard: StoryboardData
