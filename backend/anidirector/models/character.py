from __future__ import annotations
"""Character ORM model — one roster member, durable across projects."""

from typing import Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from anidirector.database import Base


class CharacterRecord(Base):
    """A roster member with its optional encoded portrait."""

    __tablename__ = "characters"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Roster order; the in-memory list is the source of truth on every save
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
