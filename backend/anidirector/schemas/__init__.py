"""Pydantic v2 schemas package."""

from anidirector.schemas.character import Character
from anidirector.schemas.project import BackupDocument, SavedProject
from anidirector.schemas.scene import Scene, StoryboardData
from anidirector.schemas.story import AspectRatio, SecondaryCharacter, StoryConfig

__all__ = [
    "AspectRatio",
    "BackupDocument",
    "Character",
    "SavedProject",
    "Scene",
    "SecondaryCharacter",
    "StoryConfig",
    "StoryboardData",
]
