"""ORM model package — registers all models with Base.metadata."""

from anidirector.models.character import CharacterRecord
from anidirector.models.legacy import LEGACY_CHARACTERS_BLOB, LEGACY_PROJECTS_BLOB, LegacyBlob
from anidirector.models.project import ProjectRecord, ProjectStage

__all__ = [
    "CharacterRecord",
    "LegacyBlob",
    "LEGACY_CHARACTERS_BLOB",
    "LEGACY_PROJECTS_BLOB",
    "ProjectRecord",
    "ProjectStage",
]
