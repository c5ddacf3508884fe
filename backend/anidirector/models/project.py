from __future__ import annotations
"""Project ORM model — a whole-record snapshot of one storyboard project."""

import enum
from typing import Optional

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from anidirector.database import Base


class ProjectStage(int, enum.Enum):
    """Wizard stage a project was saved in."""

    SETUP_STORY = 0
    ASSIGN_CHARACTERS = 1
    STORYBOARD = 2


class ProjectRecord(Base):
    """A persisted project snapshot.

    Rows are replaced wholesale on every save; there is no field-level merge.
    """

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # ISO-8601, UTC
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    stage: Mapped[int] = mapped_column(
        Integer, nullable=False, default=ProjectStage.SETUP_STORY.value
    )
    characters: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    story_config: Mapped[dict] = mapped_column(JSON, nullable=False)
    storyboard_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
