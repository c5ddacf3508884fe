from __future__ import annotations
"""Legacy flat-blob storage, read once per collection during migration."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from anidirector.database import Base

LEGACY_CHARACTERS_BLOB = "mv_director_characters"
LEGACY_PROJECTS_BLOB = "mv_director_projects"


class LegacyBlob(Base):
    """One serialized JSON list stored under a fixed name."""

    __tablename__ = "legacy_blobs"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
